"""Split, merge, convert and secure PDF documents behind a small HTTP API."""

__version__ = "1.0.0"
