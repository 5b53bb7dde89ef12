"""Path helpers for Lumina."""

from __future__ import annotations

from pathlib import Path

from lumina.vault.schema import INDEX_DIR_NAME


def get_user_data_dir() -> Path:
    """Get user-level data directory (~/.lumina)."""
    return Path.home() / ".lumina"


def get_index_dir(data_dir: Path) -> Path:
    """Get <data_dir>/vault-index/, creating if needed."""
    d = data_dir / INDEX_DIR_NAME
    d.mkdir(parents=True, exist_ok=True)
    return d


def get_user_settings_path() -> Path:
    """Get user-level settings.json path."""
    return get_user_data_dir() / "settings.json"


def get_vault_settings_path(vault_root: Path) -> Path:
    """Get vault-level settings.json path."""
    return vault_root / ".lumina" / "settings.json"
