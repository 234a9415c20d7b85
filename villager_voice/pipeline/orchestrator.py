"""
Stage orchestrator - Ingest -> Separate? -> Convert -> Combine?

Stages are driven by the caller, one call per stage. Each cached stage
checks the result cache first; on a miss its inputs are materialized,
the external service runs, outputs land in the artifact store, and only
then is the cache entry written. No state is kept between calls.
"""

import asyncio
import re
import time
from pathlib import Path
from typing import Iterable, Mapping, Optional

import structlog

from ..errors import InputError, MissingStemsError, UpstreamError
from ..mix import StemCombiner
from ..persist import ArtifactStore, ResultCache, content_hash, fingerprint
from ..refs import (
    AudioReference,
    Instrumental,
    LabeledStem,
    LocalRef,
    RemoteRef,
    Resolver,
    StemSet,
    reference_token,
)
from ..services import (
    VOICE_PROFILE,
    ConversionService,
    SeparationService,
    StemOutput,
    VoiceProfile,
)
from ..telemetry import log_stage
from .results import (
    CombineResult,
    ConversionResult,
    IngestResult,
    ProcessResult,
    SeparationResult,
)

logger = structlog.get_logger(__name__)

STAGE_INGEST = "ingest"
STAGE_SEPARATE = "separate"
STAGE_CONVERT = "convert"
STAGE_COMBINE = "combine"

THREE_STEMS = ("drums", "bass", "other")

# Client-supplied extensions outside this shape fall back to .wav
UPLOAD_EXT_RE = re.compile(r"\.[a-z0-9]{1,5}")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _upload_ext(original_name: str) -> str:
    ext = Path(original_name or "").suffix.lower()
    return ext if UPLOAD_EXT_RE.fullmatch(ext) else ".wav"


class StageOrchestrator:
    """
    Runs the stage chain with cache short-circuits and stem fallback.

    Usage:
        >>> orch = StageOrchestrator(store, cache, resolver, separator, converter, combiner)
        >>> up = await orch.ingest(data, "song.mp3")
        >>> sep = await orch.separate(up.ref)
        >>> conv = await orch.convert(sep.vocals)
        >>> mix = await orch.combine(conv.audio, sep.instrumental)
    """

    def __init__(
        self,
        store: ArtifactStore,
        cache: ResultCache,
        resolver: Resolver,
        separator: SeparationService,
        converter: ConversionService,
        combiner: StemCombiner,
        profile: VoiceProfile = VOICE_PROFILE,
    ):
        self.store = store
        self.cache = cache
        self.resolver = resolver
        self.separator = separator
        self.converter = converter
        self.combiner = combiner
        self.profile = profile

    # Ingest

    async def ingest(self, data: bytes, original_name: str = "upload.wav") -> IngestResult:
        """
        Store uploaded bytes under their content hash.

        Re-uploading identical bytes returns the same filename and does
        not create a second artifact.

        Args:
            data: Raw audio bytes
            original_name: Client-side filename (extension is kept)

        Returns:
            IngestResult

        Raises:
            InputError: Empty payload
            StoreError: Write failure
        """
        if not data:
            raise InputError("No audio file provided")

        start = time.perf_counter()
        digest = content_hash(data)
        key = fingerprint(STAGE_INGEST, digest)

        cached = self.cache.lookup(key)
        if cached is not None:
            result = IngestResult.from_payload(cached)
            log_stage(STAGE_INGEST, _elapsed_ms(start), cached=True, filename=result.filename)
            return result

        filename = await asyncio.to_thread(self.store.put, data, ext=_upload_ext(original_name))
        result = IngestResult(filename=filename)
        self.cache.store(key, result.to_payload(), [filename])

        log_stage(STAGE_INGEST, _elapsed_ms(start), cached=False, filename=filename, size=len(data))
        return result

    # Separate

    async def separate(self, ref: AudioReference) -> SeparationResult:
        """
        Split audio into vocals and an instrumental.

        Instrumental priority:
            1. ``instrumental`` stem as-is
            2. ``drums`` + ``bass`` + ``other`` as a StemSet for later mixing
            3. ``other`` alone (degraded)
            4. MissingStemsError

        Args:
            ref: Source audio reference

        Returns:
            SeparationResult whose stems are all local artifacts

        Raises:
            NotFoundError: Local source is gone
            UpstreamError: Separation service failed
            MissingStemsError: No vocals, or no usable instrumental
        """
        start = time.perf_counter()
        token = reference_token(ref)
        key = fingerprint(STAGE_SEPARATE, token)

        cached = self.cache.lookup(key)
        if cached is not None:
            result = SeparationResult.from_payload(cached)
            log_stage(STAGE_SEPARATE, _elapsed_ms(start), cached=True, source=token)
            return result

        source = await self.resolver.resolve(ref, purpose="source")
        data_uri = await asyncio.to_thread(self.resolver.to_data_uri, source)

        logger.info("separation_request", source=source)
        stems = await asyncio.to_thread(self.separator.separate, data_uri)
        stems = {name: out for name, out in (stems or {}).items() if out}

        if "vocals" not in stems:
            raise MissingStemsError("Separation service did not return vocals")

        instrumental_plan = self._plan_instrumental(stems)
        base = Path(source).stem

        vocals = await self._persist_stem(stems["vocals"], "vocals", base)

        if instrumental_plan == "instrumental":
            instrumental: Instrumental = await self._persist_stem(stems["instrumental"], "instrumental", base)
        elif instrumental_plan == "stems":
            labeled = []
            for name in THREE_STEMS:
                labeled.append(LabeledStem(name, await self._persist_stem(stems[name], name, base)))
            instrumental = StemSet(tuple(labeled))
        else:
            logger.warning("instrumental_fallback_other", source=source)
            instrumental = await self._persist_stem(stems["other"], "instrumental", base)

        result = SeparationResult(
            vocals=vocals,
            instrumental=instrumental,
            instrumental_source=instrumental_plan,
            degraded=instrumental_plan == "other",
        )
        self.cache.store(key, result.to_payload(), result.artifact_files())

        log_stage(
            STAGE_SEPARATE,
            _elapsed_ms(start),
            cached=False,
            source=token,
            instrumental_source=instrumental_plan,
        )
        return result

    @staticmethod
    def _plan_instrumental(stems: Mapping[str, StemOutput]) -> str:
        if "instrumental" in stems:
            return "instrumental"
        if all(name in stems for name in THREE_STEMS):
            return "stems"
        if "other" in stems:
            return "other"
        raise MissingStemsError(
            "Separation did not return instrumental or required stems (drums, bass, other)"
        )

    async def _persist_stem(self, output: StemOutput, purpose: str, base: Optional[str]) -> LocalRef:
        """Store one service output (locator or bytes) as a local artifact."""
        if isinstance(output, str):
            filename = await self.resolver.resolve(
                RemoteRef(output), purpose=purpose, original_name=base
            )
        elif isinstance(output, (bytes, bytearray)):
            filename = await asyncio.to_thread(
                self.store.put, bytes(output), purpose=purpose, original_name=base
            )
        elif isinstance(output, Iterable):
            filename = await asyncio.to_thread(self._write_chunks, output, purpose, base)
        else:
            raise UpstreamError(f"Unsupported service output for {purpose}: {type(output).__name__}")
        return LocalRef(filename)

    def _write_chunks(self, chunks: Iterable[bytes], purpose: str, base: Optional[str]) -> str:
        with self.store.open_writer(purpose=purpose, original_name=base) as writer:
            for chunk in chunks:
                writer.write(chunk)
        return writer.filename

    # Convert

    async def convert(self, ref: AudioReference) -> ConversionResult:
        """
        Convert vocals (or a raw upload) to the target voice.

        Local inputs are sent as data URIs, remote ones verbatim. A
        locator answer is kept as a RemoteRef without downloading it;
        a byte answer is stored as a new artifact.

        Args:
            ref: Input audio reference

        Returns:
            ConversionResult

        Raises:
            NotFoundError: Local input is gone
            UpstreamError: Conversion service failed
        """
        start = time.perf_counter()
        token = reference_token(ref)
        key = fingerprint(STAGE_CONVERT, token)

        cached = self.cache.lookup(key)
        if cached is not None:
            result = ConversionResult.from_payload(cached)
            log_stage(STAGE_CONVERT, _elapsed_ms(start), cached=True, source=token)
            return result

        if isinstance(ref, LocalRef):
            filename = await self.resolver.resolve(ref)
            audio_input = await asyncio.to_thread(self.resolver.to_data_uri, filename)
        else:
            audio_input = ref.url

        logger.info("conversion_request", source=token)
        output = await asyncio.to_thread(self.converter.convert, audio_input, self.profile)

        if isinstance(output, str):
            result = ConversionResult(audio=RemoteRef(output))
            files: list[str] = []
        else:
            result = ConversionResult(audio=await self._persist_stem(output, "villager", None))
            files = [result.audio.filename]

        self.cache.store(key, result.to_payload(), files)

        log_stage(STAGE_CONVERT, _elapsed_ms(start), cached=False, source=token)
        return result

    # Combine

    async def combine(self, vocals: AudioReference, instrumental: Optional[Instrumental]) -> CombineResult:
        """
        Mix converted vocals with every instrumental artifact.

        Not cached. Remote inputs are downloaded first. With no
        instrumental the vocals reference is returned as given, without
        being resolved.

        Args:
            vocals: Converted vocals reference
            instrumental: Single reference, StemSet, or None

        Returns:
            CombineResult

        Raises:
            NotFoundError: A local input is gone
            UpstreamError: Download or mixing tool failed
        """
        start = time.perf_counter()

        if instrumental is None:
            instrumental_refs: list[AudioReference] = []
        elif isinstance(instrumental, StemSet):
            instrumental_refs = instrumental.refs
        else:
            instrumental_refs = [instrumental]

        if not instrumental_refs:
            log_stage(STAGE_COMBINE, _elapsed_ms(start), inputs=1, mixed=False)
            return CombineResult(audio=vocals, mixed=False)

        vocals_file = await self.resolver.resolve(vocals, purpose="villager")
        instrumental_files = await self.resolver.resolve_many(instrumental_refs, purpose="instrumental")

        output = await asyncio.to_thread(self.combiner.combine, vocals_file, instrumental_files)
        result = CombineResult(audio=LocalRef(output), mixed=output != vocals_file)

        log_stage(
            STAGE_COMBINE,
            _elapsed_ms(start),
            inputs=1 + len(instrumental_files),
            filename=output,
        )
        return result

    # Full chain

    async def process(
        self,
        data: bytes,
        original_name: str = "upload.wav",
        separate: bool = True,
    ) -> ProcessResult:
        """
        Run the whole chain for one upload, strictly in stage order.

        Args:
            data: Raw audio bytes
            original_name: Client-side filename
            separate: Split vocals first and mix the instrumental back in

        Returns:
            ProcessResult with per-stage timings (ms)
        """
        timings: dict[str, float] = {}

        start = time.perf_counter()
        ingest = await self.ingest(data, original_name)
        timings[STAGE_INGEST] = _elapsed_ms(start)

        separation = None
        vocals_ref: AudioReference = ingest.ref
        if separate:
            start = time.perf_counter()
            separation = await self.separate(ingest.ref)
            timings[STAGE_SEPARATE] = _elapsed_ms(start)
            vocals_ref = separation.vocals

        start = time.perf_counter()
        conversion = await self.convert(vocals_ref)
        timings[STAGE_CONVERT] = _elapsed_ms(start)

        combined = None
        output: AudioReference = conversion.audio
        if separation is not None:
            start = time.perf_counter()
            combined = await self.combine(conversion.audio, separation.instrumental)
            timings[STAGE_COMBINE] = _elapsed_ms(start)
            output = combined.audio

        return ProcessResult(
            ingest=ingest,
            separation=separation,
            conversion=conversion,
            combined=combined,
            output=output,
            timings=timings,
        )
