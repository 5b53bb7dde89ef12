"""Lumina - semantic vault indexing and retrieval."""

__version__ = "0.1.0"
