"""Allow ``python -m keystone``."""

from keystone.main import run

run()
