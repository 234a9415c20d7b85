"""
Stage result types and their cache payload encoding.
"""

from dataclasses import dataclass, field
from typing import Literal, Optional

from ..refs import (
    AudioReference,
    Instrumental,
    LocalRef,
    StemSet,
    instrumental_from_payload,
    instrumental_to_payload,
    parse_reference,
    public_url,
    reference_token,
    retrieval_url,
)

InstrumentalSource = Literal["instrumental", "stems", "other"]


@dataclass
class IngestResult:
    """Uploaded bytes stored as a content-addressed artifact."""

    filename: str
    cached: bool = False

    @property
    def ref(self) -> LocalRef:
        return LocalRef(self.filename)

    def to_payload(self) -> dict:
        return {"filename": self.filename}

    @classmethod
    def from_payload(cls, payload: dict, cached: bool = True) -> "IngestResult":
        return cls(filename=payload["filename"], cached=cached)

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "audioUrl": retrieval_url(self.filename),
            "cached": self.cached,
        }


@dataclass
class SeparationResult:
    """
    Vocals plus the derived instrumental.

    ``degraded`` is set when only the ``other`` stem was available and
    stands in for the full instrumental.
    """

    vocals: AudioReference
    instrumental: Instrumental
    instrumental_source: InstrumentalSource
    degraded: bool = False
    cached: bool = False

    def to_payload(self) -> dict:
        return {
            "vocals": reference_token(self.vocals),
            "instrumental": instrumental_to_payload(self.instrumental),
            "instrumental_source": self.instrumental_source,
            "degraded": self.degraded,
        }

    @classmethod
    def from_payload(cls, payload: dict, cached: bool = True) -> "SeparationResult":
        return cls(
            vocals=parse_reference(payload["vocals"]),
            instrumental=instrumental_from_payload(payload["instrumental"]),
            instrumental_source=payload.get("instrumental_source", "instrumental"),
            degraded=bool(payload.get("degraded", False)),
            cached=cached,
        )

    def artifact_files(self) -> list[str]:
        """Local artifacts this result depends on."""
        refs = [self.vocals]
        refs += self.instrumental.refs if isinstance(self.instrumental, StemSet) else [self.instrumental]
        return [r.filename for r in refs if isinstance(r, LocalRef)]

    def to_dict(self) -> dict:
        if isinstance(self.instrumental, StemSet):
            instrumental_url = {
                "type": "multi",
                "stems": [public_url(r) for r in self.instrumental.refs],
            }
        else:
            instrumental_url = public_url(self.instrumental)

        return {
            "vocalsUrl": public_url(self.vocals),
            "instrumentalUrl": instrumental_url,
            "instrumentalSource": self.instrumental_source,
            "degraded": self.degraded,
            "cached": self.cached,
        }


@dataclass
class ConversionResult:
    """Converted vocals: a remote locator or a local artifact."""

    audio: AudioReference
    cached: bool = False

    def to_payload(self) -> dict:
        return {"audio": reference_token(self.audio)}

    @classmethod
    def from_payload(cls, payload: dict, cached: bool = True) -> "ConversionResult":
        return cls(audio=parse_reference(payload["audio"]), cached=cached)

    def to_dict(self) -> dict:
        return {"villagerUrl": public_url(self.audio), "cached": self.cached}


@dataclass
class CombineResult:
    """Final mix; ``mixed`` is False when vocals passed through unchanged."""

    audio: AudioReference
    mixed: bool

    def to_dict(self) -> dict:
        return {"combinedUrl": public_url(self.audio), "mixed": self.mixed}


@dataclass
class ProcessResult:
    """Outcome of a full stage chain for one request."""

    ingest: IngestResult
    conversion: ConversionResult
    output: AudioReference
    separation: Optional[SeparationResult] = None
    combined: Optional[CombineResult] = None
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def path(self) -> list[str]:
        """Stages that ran, in order."""
        return list(self.timings.keys())

    def to_dict(self) -> dict:
        return {
            "ingest": self.ingest.to_dict(),
            "separation": self.separation.to_dict() if self.separation else None,
            "conversion": self.conversion.to_dict(),
            "combined": self.combined.to_dict() if self.combined else None,
            "outputUrl": public_url(self.output),
            "path": self.path,
            "timings": self.timings,
        }
