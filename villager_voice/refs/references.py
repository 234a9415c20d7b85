"""
Audio references - the closed set of ways a stage can point at audio.

``LocalRef`` names an artifact in the store, ``RemoteRef`` a fetchable
URL, and ``StemSet`` a labeled group of references waiting to be mixed
into one instrumental. Tokens from callers are parsed once, here.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union
from urllib.parse import parse_qs, quote, urlsplit

from ..errors import InputError
from ..persist.paths import safe_name

RETRIEVAL_PATH = "/api/audio"

CONTENT_TYPES = {
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
    ".webm": "audio/webm",
}


@dataclass(frozen=True)
class LocalRef:
    """Artifact in the local store."""
    filename: str


@dataclass(frozen=True)
class RemoteRef:
    """Remote locator returned by an external service."""
    url: str


AudioReference = Union[LocalRef, RemoteRef]


@dataclass(frozen=True)
class LabeledStem:
    label: str
    ref: AudioReference


@dataclass(frozen=True)
class StemSet:
    """Ordered instrumental stems pending combination."""
    
    stems: tuple[LabeledStem, ...]
    
    @property
    def labels(self) -> list[str]:
        return [s.label for s in self.stems]
    
    @property
    def refs(self) -> list[AudioReference]:
        return [s.ref for s in self.stems]
    
    def __len__(self) -> int:
        return len(self.stems)


Instrumental = Union[LocalRef, RemoteRef, StemSet]


def content_type_for(filename: str) -> str:
    """Content type derived from the file extension."""
    return CONTENT_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")


def retrieval_url(filename: str) -> str:
    """URL under which the HTTP boundary serves an artifact."""
    return f"{RETRIEVAL_PATH}?file={quote(filename, safe='')}"


def parse_reference(token: str) -> AudioReference:
    """
    Parse a caller-supplied token into a reference.
    
    Accepted forms:
        - ``http(s)://...``          -> RemoteRef
        - ``/api/audio?file=<name>`` -> LocalRef(<base name>)
        - ``<name>``                 -> LocalRef(<base name>)
    
    Args:
        token: Reference token
    
    Returns:
        LocalRef or RemoteRef
    
    Raises:
        InputError: If the token is empty or uses an unsupported scheme
    """
    if not isinstance(token, str) or not token.strip():
        raise InputError("Audio reference is required")
    
    token = token.strip()
    parts = urlsplit(token)
    
    if parts.scheme in ("http", "https"):
        if not parts.netloc:
            raise InputError(f"Invalid audio URL: {token}")
        return RemoteRef(token)
    
    if parts.scheme:
        raise InputError(f"Unsupported audio reference scheme: {parts.scheme}")
    
    if parts.path == RETRIEVAL_PATH:
        names = parse_qs(parts.query).get("file")
        if not names:
            raise InputError(f"Invalid audio URL: {token}")
        return LocalRef(safe_name(names[0]))
    
    return LocalRef(safe_name(token))


def reference_token(ref: AudioReference) -> str:
    """Stable identity of a reference: filename for local, URL for remote."""
    if isinstance(ref, LocalRef):
        return ref.filename
    if isinstance(ref, RemoteRef):
        return ref.url
    raise TypeError(f"Not an audio reference: {ref!r}")


def public_url(ref: AudioReference) -> str:
    """URL a client can fetch the referenced audio from."""
    if isinstance(ref, LocalRef):
        return retrieval_url(ref.filename)
    return reference_token(ref)


def instrumental_to_payload(instrumental: Instrumental) -> Union[str, dict]:
    """Serialize an instrumental for cache payloads."""
    if isinstance(instrumental, StemSet):
        return {
            "type": "multi",
            "labels": instrumental.labels,
            "stems": [reference_token(r) for r in instrumental.refs],
        }
    return reference_token(instrumental)


def instrumental_from_payload(payload: Union[str, dict]) -> Instrumental:
    """Inverse of ``instrumental_to_payload``; also accepts client JSON."""
    if isinstance(payload, str):
        return parse_reference(payload)
    
    if isinstance(payload, dict) and payload.get("type") == "multi" and isinstance(payload.get("stems"), list):
        stems = payload["stems"]
        labels = payload.get("labels") or [f"stem{i}" for i in range(len(stems))]
        if len(labels) != len(stems):
            raise InputError("Stem labels do not match stems")
        return StemSet(tuple(
            LabeledStem(label, parse_reference(token))
            for label, token in zip(labels, stems)
        ))
    
    raise InputError("Invalid instrumental reference format")
