"""Test configuration and shared fixtures."""

from typing import Mapping, Optional

import pytest

from tests.helpers import FakeConverter, FakeSeparator, mock_http_client, wav_bytes
from villager_voice.mix import SoundfileMixTool, StemCombiner
from villager_voice.persist import JsonDocumentBackend, LocalArtifactStore, ResultCache
from villager_voice.pipeline import StageOrchestrator
from villager_voice.refs import Resolver
from villager_voice.services import ConversionService, SeparationService


@pytest.fixture
def store(tmp_path) -> LocalArtifactStore:
    """Artifact store in a temp directory."""
    return LocalArtifactStore(tmp_path / "temp")


@pytest.fixture
def backend(tmp_path):
    b = JsonDocumentBackend(tmp_path / "data" / "cache.json")
    yield b
    b.close()


@pytest.fixture
def cache(backend, store) -> ResultCache:
    return ResultCache(backend, store)


@pytest.fixture
def combiner(store) -> StemCombiner:
    return StemCombiner(store, SoundfileMixTool())


@pytest.fixture
def make_orchestrator(store, cache, combiner):
    """Factory building an orchestrator around fake services."""
    
    def _make(
        separator: Optional[SeparationService] = None,
        converter: Optional[ConversionService] = None,
        routes: Optional[Mapping[str, bytes]] = None,
    ) -> StageOrchestrator:
        resolver = Resolver(store, client=mock_http_client(routes or {}))
        return StageOrchestrator(
            store,
            cache,
            resolver,
            separator or FakeSeparator({}),
            converter or FakeConverter(wav_bytes(1.0)),
            combiner,
        )
    
    return _make
