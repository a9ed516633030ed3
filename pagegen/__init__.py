"""Retrieval-grounded, streaming structured page generation."""

__version__ = "0.1.0"
