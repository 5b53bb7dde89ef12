"""Exceptions raised by the vault index."""

from __future__ import annotations


class VaultError(Exception):
    """Base class for vault index errors."""


class EmbeddingError(VaultError):
    """The embedding model failed to produce a vector."""


class IndexValidationError(VaultError):
    """The persisted index is corrupt or from an incompatible version."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"Index validation failed: {reason}")


class IndexBusyError(VaultError):
    """A mutation was requested while the index is being rebuilt."""
