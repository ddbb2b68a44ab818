"""Marketplace notification handlers: auction finalization, order and report emails."""

__version__ = "1.0.0"
