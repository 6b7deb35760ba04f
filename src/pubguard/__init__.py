"""Pre-publish safety gate for npm package releases."""

__version__ = "0.1.0"
