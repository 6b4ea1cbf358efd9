"""Keystone Startup System.

Configuration validation and the ordered bootstrap sequence. Startup either
completes fully or fails before a listener is opened.
"""

from __future__ import annotations

from keystone.startup.config_schema import (
    KeystoneConfig,
    capture_environment,
    load_config,
)
from keystone.startup.orchestrator import BootstrapSequencer, BootstrapState

__all__ = [
    "BootstrapSequencer",
    "BootstrapState",
    "KeystoneConfig",
    "capture_environment",
    "load_config",
]
