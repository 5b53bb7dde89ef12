"""Lumina configuration management.

Loads and merges settings from user-level and vault-level settings.json
files, then applies environment overrides.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from lumina.utils.paths import (
    get_user_data_dir,
    get_user_settings_path,
    get_vault_settings_path,
)
from lumina.vault.embedder import DEFAULT_MODEL
from lumina.vault.schema import EMBEDDING_DIM


DEFAULT_SETTINGS: dict[str, Any] = {
    "data_dir": None,
    "vault_path": None,
    "model": DEFAULT_MODEL,
    "embedding_dim": EMBEDDING_DIM,
    "indexing": {
        "batch_size": 5,
    },
    "search": {
        "threshold": 0.3,
        "limit": 20,
        "similar_limit": 10,
        "cache_size": 100,
    },
}


@dataclass
class LuminaSettings:
    """Merged Lumina settings."""

    data_dir: str | None = None
    vault_path: str | None = None
    model: str = DEFAULT_MODEL
    embedding_dim: int = EMBEDDING_DIM
    batch_size: int = 5
    search_threshold: float = 0.3
    search_limit: int = 20
    similar_limit: int = 10
    cache_size: int = 100

    @property
    def data_path(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return get_user_data_dir()

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_dir": self.data_dir,
            "vault_path": self.vault_path,
            "model": self.model,
            "embedding_dim": self.embedding_dim,
            "indexing": {
                "batch_size": self.batch_size,
            },
            "search": {
                "threshold": self.search_threshold,
                "limit": self.search_limit,
                "similar_limit": self.similar_limit,
                "cache_size": self.cache_size,
            },
        }


def load_json_file(path: Path) -> dict[str, Any]:
    """Load a JSON file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base, returning new dict.

    - Dicts are recursively merged
    - Lists are replaced (not appended)
    - Scalars are replaced
    """
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(vault_root: Path | None = None) -> LuminaSettings:
    """Load and merge settings from user + vault levels.

    Precedence: environment > vault settings > user settings > defaults.
    Recognized environment variables: LUMINA_DATA_DIR, LUMINA_MODEL.
    """
    merged = dict(DEFAULT_SETTINGS)

    user_settings = load_json_file(get_user_settings_path())
    if user_settings:
        merged = deep_merge(merged, user_settings)

    if vault_root is not None:
        vault_settings = load_json_file(get_vault_settings_path(vault_root))
        if vault_settings:
            merged = deep_merge(merged, vault_settings)

    if os.environ.get("LUMINA_DATA_DIR"):
        merged["data_dir"] = os.environ["LUMINA_DATA_DIR"]
    if os.environ.get("LUMINA_MODEL"):
        merged["model"] = os.environ["LUMINA_MODEL"]

    indexing = merged.get("indexing") or {}
    search = merged.get("search") or {}
    vault_path = merged.get("vault_path")
    if vault_path is None and vault_root is not None:
        vault_path = str(vault_root)

    return LuminaSettings(
        data_dir=merged.get("data_dir"),
        vault_path=vault_path,
        model=merged.get("model", DEFAULT_MODEL),
        embedding_dim=merged.get("embedding_dim", EMBEDDING_DIM),
        batch_size=indexing.get("batch_size", 5),
        search_threshold=search.get("threshold", 0.3),
        search_limit=search.get("limit", 20),
        similar_limit=search.get("similar_limit", 10),
        cache_size=search.get("cache_size", 100),
    )


def save_settings(settings: LuminaSettings, path: Path) -> None:
    """Save settings to a JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings.to_dict(), indent=2) + "\n",
        encoding="utf-8",
    )


def validate_settings(settings: LuminaSettings) -> list[str]:
    """Validate settings, returning list of error messages (empty if valid)."""
    errors = []

    if not isinstance(settings.model, str) or not settings.model:
        errors.append("model must be a non-empty string")

    if not isinstance(settings.embedding_dim, int) or settings.embedding_dim < 1:
        errors.append("embedding_dim must be a positive integer")

    if not isinstance(settings.batch_size, int) or settings.batch_size < 1:
        errors.append("indexing.batch_size must be a positive integer")

    if not isinstance(settings.cache_size, int) or settings.cache_size < 1:
        errors.append("search.cache_size must be a positive integer")

    for name in ("search_limit", "similar_limit"):
        value = getattr(settings, name)
        if not isinstance(value, int) or value < 1:
            errors.append(f"search.{name.removeprefix('search_')} must be a positive integer")

    threshold = settings.search_threshold
    if not isinstance(threshold, (int, float)) or not (-1.0 <= threshold <= 1.0):
        errors.append("search.threshold must be a float between -1.0 and 1.0")

    return errors
