"""
Wiring: build the store, cache, resolver, combiner and orchestrator
from Settings.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

import httpx

from .config.settings import Settings
from .errors import UpstreamError
from .mix import StemCombiner, build_mix_tool
from .ops import Reclaimer
from .persist import (
    CacheBackend,
    JsonDocumentBackend,
    LocalArtifactStore,
    ResultCache,
    SqliteBackend,
    ensure_dirs,
)
from .pipeline import StageOrchestrator
from .refs import Resolver
from .services import (
    ConversionService,
    SeparationService,
    StemOutput,
    VoiceProfile,
    build_replicate_services,
)


class UnconfiguredService(SeparationService, ConversionService):
    """Stand-in used when no Replicate token is configured."""

    def separate(self, audio: str) -> Mapping[str, StemOutput]:
        raise UpstreamError("REPLICATE_API_TOKEN is not configured")

    def convert(self, audio: str, profile: VoiceProfile) -> StemOutput:
        raise UpstreamError("REPLICATE_API_TOKEN is not configured")


@dataclass
class Runtime:
    """Everything one process needs to serve the pipeline."""

    settings: Settings
    store: LocalArtifactStore
    backend: CacheBackend
    cache: ResultCache
    resolver: Resolver
    combiner: StemCombiner
    orchestrator: StageOrchestrator
    reclaimer: Reclaimer

    async def aclose(self) -> None:
        await self.reclaimer.stop()
        if self.resolver.client is not None:
            await self.resolver.client.aclose()
        self.backend.close()


def build_backend(settings: Settings) -> CacheBackend:
    """Select the cache backend configured in ``settings.cache.backend``."""
    sp = settings.paths.to_store_paths()
    if settings.cache.backend == "sqlite":
        return SqliteBackend(sp.cache_db)
    return JsonDocumentBackend(sp.cache_file)


def build_runtime(
    settings: Optional[Settings] = None,
    separator: Optional[SeparationService] = None,
    converter: Optional[ConversionService] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Runtime:
    """
    Construct a Runtime.

    Args:
        settings: Settings (defaults to ``Settings.from_env()``)
        separator: Separation service override
        converter: Conversion service override
        http_client: Shared client for remote fetches

    Returns:
        Runtime with all components wired together
    """
    settings = settings or Settings.from_env()
    sp = settings.paths.to_store_paths()
    ensure_dirs(sp)

    store = LocalArtifactStore(sp.artifacts_dir)
    backend = build_backend(settings)
    cache = ResultCache(backend, store, prune_stale=settings.cache.prune_stale)
    resolver = Resolver(store, client=http_client)

    if separator is None or converter is None:
        if settings.replicate.api_token:
            default_sep, default_conv = build_replicate_services(
                settings.replicate.api_token,
                poll_interval_s=settings.replicate.poll_interval_s,
            )
        else:
            default_sep = default_conv = UnconfiguredService()
        separator = separator or default_sep
        converter = converter or default_conv

    combiner = StemCombiner(
        store,
        build_mix_tool(settings.mix.tool, settings.mix.ffmpeg_binary),
        sample_rate=settings.mix.sample_rate,
        channels=settings.mix.channels,
    )
    orchestrator = StageOrchestrator(store, cache, resolver, separator, converter, combiner)
    reclaimer = Reclaimer(
        store,
        max_age_s=settings.cache.max_age_s,
        interval_s=settings.cache.sweep_interval_s,
    )

    return Runtime(
        settings=settings,
        store=store,
        backend=backend,
        cache=cache,
        resolver=resolver,
        combiner=combiner,
        orchestrator=orchestrator,
        reclaimer=reclaimer,
    )
