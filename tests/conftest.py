"""Shared test fixtures for Lumina."""

from __future__ import annotations

import hashlib
import math
import re
from pathlib import Path

import pytest

from lumina.config import LuminaSettings
from lumina.services import VaultServices, create_services
from lumina.vault.errors import EmbeddingError
from lumina.vault.indexer import IndexManager
from lumina.vault.schema import EMBEDDING_DIM
from lumina.vault.search import SearchEngine


class FakeEmbedder:
    """Deterministic bag-of-words embedder: each word hashes into one dimension."""

    def __init__(self, dim: int = EMBEDDING_DIM, fail_on: str | None = None) -> None:
        self.dim = dim
        self.fail_on = fail_on
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise EmbeddingError("model exploded")
        vec = [0.0] * self.dim
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            idx = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dim
            vec[idx] += 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        return [v / norm for v in vec] if norm else vec


GEARS_MD = (
    "# Gear Design\n\n"
    "Spur gears transmit torque between parallel shafts. Tooth count and module\n"
    "decide the pitch diameter, and the pressure angle shapes the tooth profile.\n\n"
    "## Materials\n\n"
    "Nylon gears run quietly without lubrication, while steel gears carry far\n"
    "higher loads. Brass is a common choice for small clock mechanisms.\n"
)

RECIPES_TXT = (
    "Sourdough bread needs a lively starter, flour, water and salt. Mix and rest.\n"
    "\n"
    "Bake the loaf in a covered dutch oven for twenty minutes, then uncover it\n"
    "and bake until the crust turns deep brown and sounds hollow when tapped.\n"
)

UTILS_PY = (
    "import math\n\n"
    "def circle_area(radius):\n"
    "    \"\"\"Return the area of a circle with the given radius.\"\"\"\n"
    "    return math.pi * radius * radius\n\n"
    "def circle_circumference(radius):\n"
    "    \"\"\"Return the circumference of a circle with the given radius.\"\"\"\n"
    "    return 2 * math.pi * radius\n"
)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep user-level settings and env overrides out of every test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("LUMINA_DATA_DIR", raising=False)
    monkeypatch.delenv("LUMINA_MODEL", raising=False)
    monkeypatch.delenv("LUMINA_CORS_ORIGINS", raising=False)
    return home


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def index_dir(tmp_path: Path) -> Path:
    d = tmp_path / "data" / "vault-index"
    d.mkdir(parents=True)
    return d


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """Create a small vault with markdown, text, code and ignored files."""
    root = tmp_path / "vault"
    root.mkdir()
    (root / "gears.md").write_text(GEARS_MD, encoding="utf-8")
    (root / "notes").mkdir()
    (root / "notes" / "recipes.txt").write_text(RECIPES_TXT, encoding="utf-8")
    (root / "src").mkdir()
    (root / "src" / "utils.py").write_text(UTILS_PY, encoding="utf-8")

    # Never indexed
    (root / ".hidden.md").write_text(GEARS_MD, encoding="utf-8")
    (root / "node_modules").mkdir()
    (root / "node_modules" / "pkg.js").write_text("function x() {}\n" * 20, encoding="utf-8")
    (root / "image.png").write_bytes(b"\x89PNG")
    return root


@pytest.fixture
def indexer(index_dir: Path, embedder: FakeEmbedder) -> IndexManager:
    return IndexManager(index_dir, embedder)


@pytest.fixture
def search_engine(index_dir: Path, embedder: FakeEmbedder) -> SearchEngine:
    return SearchEngine(index_dir, embedder)


@pytest.fixture
def settings(tmp_path: Path, vault: Path) -> LuminaSettings:
    return LuminaSettings(data_dir=str(tmp_path / "data"), vault_path=str(vault))


@pytest.fixture
def services(settings: LuminaSettings, embedder: FakeEmbedder) -> VaultServices:
    return create_services(settings, embedder=embedder)
