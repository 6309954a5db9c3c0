"""Upload timing server."""

__version__ = "0.1.0"
