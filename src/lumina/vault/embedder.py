"""Text embedding for the vault index.

The index only needs ``embed(text) -> vector``. The default implementation
wraps a sentence-transformers model; tests substitute their own object.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Any, Protocol

from lumina.vault.errors import EmbeddingError
from lumina.vault.schema import EMBEDDING_DIM

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "all-MiniLM-L6-v2"


class Embedder(Protocol):
    """Anything that turns text into a fixed-length vector."""

    def embed(self, text: str) -> Sequence[float]: ...


class SentenceTransformerEmbedder:
    """Embedder backed by a sentence-transformers model.

    The model is loaded on first use, so constructing the embedder is cheap
    and a missing model only fails the first embedding call.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL) -> None:
        self.model_name = model_name
        self._model: Any = None
        self._lock = threading.Lock()

    def _get_model(self) -> Any:
        with self._lock:
            if self._model is None:
                try:
                    from sentence_transformers import SentenceTransformer
                    self._model = SentenceTransformer(self.model_name)
                except Exception as e:
                    raise EmbeddingError(
                        f"Failed to initialize embedding model {self.model_name}: {e}"
                    ) from e
                logger.info("Embedder initialized (%s)", self.model_name)
            return self._model

    def embed(self, text: str) -> list[float]:
        model = self._get_model()
        try:
            vector = model.encode(text, normalize_embeddings=True)
        except Exception as e:
            raise EmbeddingError(f"Embedding generation failed: {e}") from e
        return [float(v) for v in vector]


def fit_dimension(vector: Sequence[float], dim: int = EMBEDDING_DIM) -> list[float]:
    """Truncate or zero-pad a vector to exactly ``dim`` values."""
    values = list(vector)
    if len(values) != dim:
        logger.warning("Unexpected embedding size: %d, expected %d", len(values), dim)
    if len(values) > dim:
        return values[:dim]
    return values + [0.0] * (dim - len(values))
