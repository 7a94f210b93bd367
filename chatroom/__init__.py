"""Chat room backend with presence expiry."""

__version__ = "1.0.0"
