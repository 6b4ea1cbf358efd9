"""Keystone test suite.

- startup/: configuration schema and bootstrap sequencer
- middleware/: security headers, rate limiting, CORS
- api/: health endpoint and request validation
- auth/: access control allow-list
"""

from __future__ import annotations
