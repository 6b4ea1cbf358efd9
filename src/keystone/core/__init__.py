"""Core building blocks shared across the Keystone service."""
