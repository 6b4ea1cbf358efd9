"""Global pytest configuration for logging setup.

Keeps caplog able to capture records from every Keystone module.
"""

import logging

import pytest


@pytest.fixture(autouse=True)
def configure_caplog(caplog: pytest.LogCaptureFixture) -> None:
    """Capture DEBUG and above from the keystone loggers in every test."""
    keystone_logger = logging.getLogger("keystone")
    keystone_logger.propagate = True

    caplog.set_level(logging.DEBUG)
    caplog.set_level(logging.DEBUG, logger="keystone")
