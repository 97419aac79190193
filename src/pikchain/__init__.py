"""pikchain - resilience layer for the photo registry client."""

__version__ = "0.1.0"
