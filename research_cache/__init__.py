"""Interview research URL deduplication and content cache."""

__version__ = "0.1.0"
