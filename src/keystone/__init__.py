"""Keystone - HTTP service bootstrap.

Validated environment configuration, security middleware, request validation
and a liveness endpoint, started by an ordered bootstrap sequence.
"""

import time

__version__ = "0.1.0"

# Monotonic reading taken when the package is first imported, which is the
# first thing the ``keystone`` entry point does.
PROCESS_STARTED_AT = time.monotonic()

__all__ = [
    "PROCESS_STARTED_AT",
    "__version__",
]
