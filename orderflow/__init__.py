"""Order lifecycle and one-time code verification service."""

__version__ = "1.0.0"
