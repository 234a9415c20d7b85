"""
Stem combiner - reduce vocals plus instrumental stems to one mix.

Mixing policy: every input is summed sample-for-sample at a fixed
output rate and channel count. The output is as long as the longest
input; shorter inputs are zero-padded, never looped or truncated, and
no dropout compensation is applied.
"""

import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

import numpy as np
import soundfile as sf
import structlog

from ..errors import NotFoundError, UpstreamError
from ..persist.artifact_store import ArtifactStore

logger = structlog.get_logger(__name__)

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_CHANNELS = 2


class MixTool(ABC):
    """External tool contract: N input files -> one output file."""

    @abstractmethod
    def mix(self, inputs: Sequence[Path], output: Path, sample_rate: int, channels: int) -> None:
        """
        Mix ``inputs`` into ``output``.

        Raises:
            UpstreamError: If an input is unreadable or the tool fails
        """
        pass


class FfmpegMixTool(MixTool):
    """Mix with ffmpeg's ``amix`` filter in a blocking subprocess."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary

    def build_command(self, inputs: Sequence[Path], output: Path, sample_rate: int, channels: int) -> list[str]:
        cmd = [self.binary, "-y", "-hide_banner", "-loglevel", "error"]
        for path in inputs:
            cmd += ["-i", str(path)]
        cmd += [
            "-filter_complex",
            f"amix=inputs={len(inputs)}:duration=longest:dropout_transition=0:normalize=0",
            "-c:a", "pcm_s16le",
            "-ar", str(sample_rate),
            "-ac", str(channels),
            str(output),
        ]
        return cmd

    def mix(self, inputs: Sequence[Path], output: Path, sample_rate: int, channels: int) -> None:
        cmd = self.build_command(inputs, output, sample_rate, channels)
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise UpstreamError(f"Mixing tool not found: {self.binary}") from e

        if result.returncode != 0:
            raise UpstreamError(result.stderr.strip() or f"ffmpeg exited with code {result.returncode}")


def _conform(data: np.ndarray, sr: int, sample_rate: int, channels: int) -> np.ndarray:
    """Bring one decoded track to the output rate and channel layout."""
    if data.shape[1] != channels:
        if data.shape[1] == 1:
            data = np.repeat(data, channels, axis=1)
        elif channels == 1:
            data = data.mean(axis=1, keepdims=True)
        else:
            data = data[:, :channels]

    if sr != sample_rate and data.shape[0] > 0:
        n_out = int(round(data.shape[0] * sample_rate / sr))
        t_old = np.arange(data.shape[0]) / sr
        t_new = np.arange(n_out) / sample_rate
        data = np.stack(
            [np.interp(t_new, t_old, data[:, c]) for c in range(channels)],
            axis=1,
        )

    return data.astype(np.float32, copy=False)


class SoundfileMixTool(MixTool):
    """In-process mixer using soundfile + numpy; needs no ffmpeg binary."""

    def mix(self, inputs: Sequence[Path], output: Path, sample_rate: int, channels: int) -> None:
        tracks = []
        for path in inputs:
            try:
                data, sr = sf.read(str(path), dtype="float32", always_2d=True)
            except RuntimeError as e:
                raise UpstreamError(f"Cannot read audio input {Path(path).name}: {e}") from e
            tracks.append(_conform(data, sr, sample_rate, channels))

        length = max(t.shape[0] for t in tracks)
        mixed = np.zeros((length, channels), dtype=np.float32)
        for track in tracks:
            mixed[: track.shape[0]] += track
        np.clip(mixed, -1.0, 1.0, out=mixed)

        sf.write(str(output), mixed, sample_rate, subtype="PCM_16", format="WAV")


class StemCombiner:
    """
    Combines converted vocals with instrumental artifacts.

    Usage:
        >>> combiner = StemCombiner(store, FfmpegMixTool())
        >>> combiner.combine("villager-1.wav", ["drums-1.wav", "bass-1.wav", "other-1.wav"])
        'combined-1700000000000-1a2b3c4d.wav'
    """

    def __init__(
        self,
        store: ArtifactStore,
        tool: MixTool,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channels: int = DEFAULT_CHANNELS,
    ):
        self.store = store
        self.tool = tool
        self.sample_rate = sample_rate
        self.channels = channels

    def combine(self, vocals: str, instrumentals: Sequence[str]) -> str:
        """
        Mix vocals with every instrumental artifact.

        Args:
            vocals: Vocals artifact filename
            instrumentals: Ordered instrumental artifact filenames

        Returns:
            Filename of the combined artifact, or ``vocals`` unchanged
            when there are no instrumentals

        Raises:
            NotFoundError: If any input artifact is missing
            UpstreamError: If the mixing tool fails
        """
        if not instrumentals:
            return vocals

        names = [vocals, *instrumentals]
        for name in names:
            if not self.store.exists(name):
                raise NotFoundError(f"File not found: {name}")

        inputs = [self.store.path(name) for name in names]
        logger.info("combine_start", vocals=vocals, instrumentals=len(instrumentals))

        with tempfile.TemporaryDirectory(prefix="vv-mix-") as tmpdir:
            out_path = Path(tmpdir) / "combined.wav"
            self.tool.mix(inputs, out_path, self.sample_rate, self.channels)

            if not out_path.is_file():
                raise UpstreamError("Mixing tool produced no output")

            with self.store.open_writer(purpose="combined", ext=".wav") as writer:
                with open(out_path, "rb") as fh:
                    shutil.copyfileobj(fh, writer)

        logger.info("combine_done", filename=writer.filename, size=writer.size)
        return writer.filename


def build_mix_tool(name: str, ffmpeg_binary: str = "ffmpeg") -> MixTool:
    """Select a mix tool by configured name."""
    if name == "ffmpeg":
        return FfmpegMixTool(ffmpeg_binary)
    if name == "soundfile":
        return SoundfileMixTool()
    raise ValueError(f"Unknown mix tool: {name}")
