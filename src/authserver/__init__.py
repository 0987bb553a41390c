"""Credential and token lifecycle server."""

__version__ = "0.1.0"
