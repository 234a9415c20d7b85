"""Audio fixtures and fake services shared across test modules."""

import io
from pathlib import Path
from typing import Mapping, Optional

import httpx
import numpy as np
import soundfile as sf

from villager_voice.services import ConversionService, SeparationService, StemOutput, VoiceProfile

SAMPLE_RATE = 44100


def wav_bytes(seconds: float, sr: int = SAMPLE_RATE, channels: int = 1, freq: float = 440.0, amp: float = 0.1) -> bytes:
    """Render a sine tone as 16-bit PCM WAV bytes."""
    t = np.arange(int(round(seconds * sr))) / sr
    tone = (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    data = np.stack([tone] * channels, axis=1) if channels > 1 else tone
    
    buf = io.BytesIO()
    sf.write(buf, data, sr, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def wav_duration(path: Path) -> float:
    info = sf.info(str(path))
    return info.frames / info.samplerate


class FakeSeparator(SeparationService):
    """Separation service returning canned stems and counting calls."""
    
    def __init__(self, stems: Mapping[str, StemOutput]):
        self.stems = dict(stems)
        self.calls: list[str] = []
    
    def separate(self, audio: str) -> Mapping[str, StemOutput]:
        self.calls.append(audio)
        return dict(self.stems)


class FakeConverter(ConversionService):
    """Conversion service returning a canned output and counting calls."""
    
    def __init__(self, output: StemOutput):
        self.output = output
        self.calls: list[tuple[str, VoiceProfile]] = []
    
    def convert(self, audio: str, profile: VoiceProfile) -> StemOutput:
        self.calls.append((audio, profile))
        return self.output


def mock_http_client(routes: Mapping[str, bytes], status: Optional[Mapping[str, int]] = None) -> httpx.AsyncClient:
    """AsyncClient answering GETs from an in-memory URL -> body map."""
    status = status or {}
    
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url in status:
            return httpx.Response(status[url], content=b"upstream failure")
        if url not in routes:
            return httpx.Response(404, content=b"not found")
        return httpx.Response(200, content=routes[url])
    
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
