"""
CAIRN Test Configuration
========================

Shared fixtures: fake embedding providers, chunk factories, fixed clocks and
isolated settings.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from cairn.core.secure_config import Settings
from cairn.models.chunk import Chunk


class StaticEmbeddings:
    """Provider returning fixed vectors for known texts."""

    def __init__(self, vectors: Dict[str, Sequence[float]], default: Optional[Sequence[float]] = None):
        self.vectors = dict(vectors)
        self.default = default
        self.calls: List[str] = []

    async def embed(self, text: str) -> Sequence[float]:
        self.calls.append(text)
        if text in self.vectors:
            return self.vectors[text]
        if self.default is not None:
            return self.default
        raise KeyError(f"no vector for {text!r}")


class FailingEmbeddings:
    """Provider that always fails with the given exception."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error or RuntimeError("model crashed")
        self.calls = 0

    async def embed(self, text: str) -> Sequence[float]:
        self.calls += 1
        raise self.error


class HangingEmbeddings:
    """Provider that never answers."""

    async def embed(self, text: str) -> Sequence[float]:
        await asyncio.sleep(3600)
        return [1.0]


class ClosableEmbeddings(StaticEmbeddings):
    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """No .cairn file and no CAIRN_* variables leak into a test."""
    for name in (
        "CAIRN_LOG_LEVEL",
        "CAIRN_EMBEDDINGS_PROVIDER",
        "CAIRN_OLLAMA_URL",
        "CAIRN_CACHE_TTL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield tmp_path


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Settings from defaults plus dotted-key overrides."""

    def _make(overrides: Optional[Dict[str, Any]] = None) -> Settings:
        return Settings(overrides=overrides or {})

    return _make


@pytest.fixture
def make_chunk() -> Callable[..., Chunk]:
    counter = {"n": 0}

    def _make(
        text: str,
        source_id: str = "doc-1",
        chunk_index: Optional[int] = None,
        id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Chunk:
        counter["n"] += 1
        return Chunk(
            id=id or f"chunk-{counter['n']}",
            text=text,
            source_id=source_id,
            chunk_index=chunk_index if chunk_index is not None else counter["n"] - 1,
            metadata=metadata or {},
        )

    return _make


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mammal_chunks(make_chunk) -> List[Chunk]:
    return [
        make_chunk("cats are mammals", source_id="zoo", id="cats"),
        make_chunk("dogs are mammals", source_id="zoo", id="dogs"),
        make_chunk("the stock market fell", source_id="news", id="stocks"),
    ]


@pytest.fixture
def mammal_provider() -> StaticEmbeddings:
    """Roughly orthogonal vectors for the mammal chunks."""
    return StaticEmbeddings(
        {
            "cats are mammals": [1.0, 0.1, 0.0, 0.0],
            "dogs are mammals": [0.9, 0.2, 0.0, 0.0],
            "the stock market fell": [0.0, 0.0, 1.0, 0.0],
            "mammals": [1.0, 0.15, 0.0, 0.0],
        },
        default=[0.0, 0.0, 0.0, 1.0],
    )
