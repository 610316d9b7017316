"""Pytest configuration and fixtures for ContextRank tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Optional

import pytest

from contextrank.embeddings import HashEmbeddingModel
from contextrank.models import SourceFile
from contextrank.parser import collect_source_files
from contextrank.storage import AnalysisCache


class FakeClock:
    """Manually advanced clock for cache eviction tests."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


class FakeGenerator:
    """Generative provider returning canned answers keyed by file path substring."""

    def __init__(self, answers: Optional[Dict[str, object]] = None, default: object = "classification: helper\nposition: parallel"):
        self.answers = answers or {}
        self.default = default
        self.prompts: List[str] = []

    def generate(self, prompt: str):
        self.prompts.append(prompt)
        for fragment, answer in self.answers.items():
            if f"File: {fragment}" in prompt:
                if isinstance(answer, Exception):
                    raise answer
                return answer
        return self.default


class AsyncHashEmbedder(HashEmbeddingModel):
    """Hash embedder exposing a coroutine ``embed_text``."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    async def embed_text(self, text: str) -> List[float]:
        self.calls += 1
        return HashEmbeddingModel.embed_text(self, text)


class CountingEmbedder(HashEmbeddingModel):
    """Synchronous hash embedder that counts calls."""

    def __init__(self):
        super().__init__()
        self.texts: List[str] = []

    def embed_text(self, text: str) -> List[float]:
        self.texts.append(text)
        return super().embed_text(text)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolated_home(temp_dir: Path, monkeypatch):
    """Point every config and cache path at a temporary directory.

    config_manager imports the paths at module load, so both modules are
    patched.
    """
    home = temp_dir / "home"
    monkeypatch.setattr("contextrank.config.BASE_DIR", home)
    monkeypatch.setattr("contextrank.config.CACHE_DB_PATH", home / "cache.db")
    monkeypatch.setattr("contextrank.config.CONFIG_FILE", home / "config.toml")
    monkeypatch.setattr("contextrank.config_manager.BASE_DIR", home)
    monkeypatch.setattr("contextrank.config_manager.CONFIG_FILE", home / "config.toml")
    return home


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def sample_files(sample_project_path: Path) -> List[SourceFile]:
    return collect_source_files(sample_project_path)


@pytest.fixture
def scenario_a_files() -> List[SourceFile]:
    return [
        SourceFile(path="src/userService.js", content="function getUser(id){ return db.find(id) }"),
        SourceFile(
            path="src/userController.js",
            content="import {getUser} from './userService'\nfunction handleGetUser(req,res){ return getUser(req.id) }",
        ),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(clock: FakeClock) -> Generator[AnalysisCache, None, None]:
    cache = AnalysisCache(":memory:", clock=clock)
    yield cache
    cache.close()


@pytest.fixture
def file_cache(temp_dir: Path, clock: FakeClock) -> Generator[AnalysisCache, None, None]:
    cache = AnalysisCache(temp_dir / "cache" / "analysis.db", clock=clock)
    yield cache
    cache.close()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def counting_embedder() -> CountingEmbedder:
    return CountingEmbedder()


@pytest.fixture
def async_embedder() -> AsyncHashEmbedder:
    return AsyncHashEmbedder()


@pytest.fixture
def make_generator():
    """Factory for generators with per-file answers."""
    return FakeGenerator
