"""Sandboxed multi-language code judge."""

__version__ = "1.0.0"
