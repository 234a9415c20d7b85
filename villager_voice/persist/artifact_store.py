"""
Artifact store - flat directory of byte blobs with TTL reclamation.

Artifacts are named either by content hash or by
``<purpose>-<ms timestamp>-<random>[-<original name>]``. Last access is
the file mtime: ``touch`` refreshes it and ``sweep`` deletes whatever
has not been touched within the retention window.
"""

import os
import secrets
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

import structlog

from ..errors import InputError, NotFoundError, StoreError
from .hashing import content_hash
from .paths import safe_name, sanitize_original_name

logger = structlog.get_logger(__name__)

TEMP_PREFIX = ".tmp-"
DEFAULT_MAX_AGE_S = 60 * 60


@dataclass
class ArtifactInfo:
    """Observable attributes of a stored artifact."""

    filename: str
    size: int
    touched_at: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SweepReport:
    """Outcome of one reclamation pass."""

    scanned: int = 0
    removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class ArtifactWriter:
    """Write handle for an artifact being streamed into the store."""

    def __init__(self, filename: str, fh: BinaryIO):
        self.filename = filename
        self.size = 0
        self._fh = fh

    def write(self, chunk: bytes) -> int:
        try:
            written = self._fh.write(chunk)
        except OSError as e:
            raise StoreError(f"Failed writing artifact {self.filename}: {e}") from e
        self.size += len(chunk)
        return written


class ArtifactStore(ABC):
    """Abstract artifact store; local disk today, shared blob storage later."""

    @abstractmethod
    def put(
        self,
        data: bytes,
        *,
        purpose: Optional[str] = None,
        ext: str = ".wav",
        original_name: Optional[str] = None,
    ) -> str:
        """Store bytes and return the allocated filename."""
        pass

    @abstractmethod
    def open_writer(
        self,
        *,
        purpose: str,
        ext: str = ".wav",
        original_name: Optional[str] = None,
    ):
        """Context manager yielding an ArtifactWriter for streamed content."""
        pass

    @abstractmethod
    def get(self, filename: str) -> bytes:
        """Read an artifact's bytes."""
        pass

    @abstractmethod
    def exists(self, filename: str) -> bool:
        pass

    @abstractmethod
    def path(self, filename: str) -> Path:
        """Local filesystem path of an artifact (may not exist)."""
        pass

    @abstractmethod
    def stat(self, filename: str) -> ArtifactInfo:
        pass

    @abstractmethod
    def touch(self, filename: str) -> None:
        """Reset the artifact's last-access time to now."""
        pass

    @abstractmethod
    def delete(self, filename: str) -> None:
        pass

    @abstractmethod
    def list(self) -> list[str]:
        pass

    @abstractmethod
    def sweep(self, max_age_s: float = DEFAULT_MAX_AGE_S, now: Optional[float] = None) -> SweepReport:
        """Delete every artifact not touched within ``max_age_s`` seconds."""
        pass


class LocalArtifactStore(ArtifactStore):
    """
    Artifact store backed by one local directory.

    Writes land in a hidden temp file and are renamed into place, so a
    reader never observes a half-written artifact.

    Usage:
        >>> store = LocalArtifactStore(Path("data/temp"))
        >>> name = store.put(b"RIFF....", ext=".wav")
        >>> store.get(name)[:4]
        b'RIFF'
    """

    def __init__(self, root: Path):
        """
        Initialize store at given directory.

        Args:
            root: Directory holding artifacts (created if missing)
        """
        self.root = Path(root)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create artifact directory {self.root}: {e}") from e

    def allocate_name(
        self,
        purpose: str,
        ext: str = ".wav",
        original_name: Optional[str] = None,
    ) -> str:
        """
        Allocate a collision-resistant filename for a new artifact.

        Args:
            purpose: Prefix naming what produced the artifact (vocals, villager, ...)
            ext: File extension including the dot
            original_name: Optional source name appended after sanitizing

        Returns:
            ``<purpose>-<ms>-<8 hex>[-<original>]<ext>``
        """
        stamp = int(time.time() * 1000)
        name = f"{purpose}-{stamp}-{secrets.token_hex(4)}"
        if original_name:
            stem = Path(safe_name(original_name)).stem
            name = f"{name}-{sanitize_original_name(stem)}"
        return f"{name}{ext}"

    def put(
        self,
        data: bytes,
        *,
        purpose: Optional[str] = None,
        ext: str = ".wav",
        original_name: Optional[str] = None,
    ) -> str:
        """
        Store bytes as a new artifact.

        Without ``purpose`` the name is the content hash, so identical
        bytes always map to one file.

        Args:
            data: Artifact content
            purpose: Name prefix; omit for content-addressed naming
            ext: File extension including the dot
            original_name: Source name carried into purpose-based names

        Returns:
            Filename of the stored artifact

        Raises:
            InputError: If ``ext`` would make the name unreadable
            StoreError: If the write fails
        """
        if purpose is None:
            filename = f"{content_hash(data)}{ext}"
            self._check_name(filename)
            if self.exists(filename):
                self.touch(filename)
                return filename
        else:
            filename = self.allocate_name(purpose, ext, original_name)

        self._write_atomic(filename, data)
        logger.debug("artifact_stored", filename=filename, size=len(data))
        return filename

    def _check_name(self, filename: str) -> None:
        """New artifacts must be named by a plain base name, as readers see them."""
        if safe_name(filename) != filename:
            raise InputError(f"Invalid artifact name: {filename!r}")

    def _write_atomic(self, filename: str, data: bytes) -> None:
        self._check_name(filename)
        tmp = self.root / f"{TEMP_PREFIX}{filename}"
        try:
            tmp.write_bytes(data)
            os.replace(tmp, self.root / filename)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise StoreError(f"Failed writing artifact {filename}: {e}") from e

    @contextmanager
    def open_writer(
        self,
        *,
        purpose: str,
        ext: str = ".wav",
        original_name: Optional[str] = None,
    ) -> Iterator[ArtifactWriter]:
        """
        Stream content into a new artifact.

        The artifact becomes visible only when the block exits cleanly;
        on any exception the partial file is discarded.

        Usage:
            >>> with store.open_writer(purpose="remote") as w:
            ...     for chunk in chunks:
            ...         w.write(chunk)
            >>> w.filename
        """
        filename = self.allocate_name(purpose, ext, original_name)
        self._check_name(filename)
        tmp = self.root / f"{TEMP_PREFIX}{filename}"

        try:
            fh = open(tmp, "wb")
        except OSError as e:
            raise StoreError(f"Failed opening artifact {filename}: {e}") from e

        try:
            with fh:
                yield ArtifactWriter(filename, fh)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        try:
            os.replace(tmp, self.root / filename)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise StoreError(f"Failed finalizing artifact {filename}: {e}") from e

    def path(self, filename: str) -> Path:
        return self.root / safe_name(filename)

    def exists(self, filename: str) -> bool:
        return self.path(filename).is_file()

    def get(self, filename: str) -> bytes:
        """
        Read an artifact.

        Raises:
            NotFoundError: If the artifact does not exist
            StoreError: If it exists but cannot be read
        """
        p = self.path(filename)
        if not p.is_file():
            raise NotFoundError(f"File not found: {p.name}")
        try:
            return p.read_bytes()
        except OSError as e:
            raise StoreError(f"Failed reading artifact {p.name}: {e}") from e

    def stat(self, filename: str) -> ArtifactInfo:
        p = self.path(filename)
        try:
            st = p.stat()
        except FileNotFoundError:
            raise NotFoundError(f"File not found: {p.name}") from None
        return ArtifactInfo(filename=p.name, size=st.st_size, touched_at=st.st_mtime)

    def touch(self, filename: str) -> None:
        """
        Reset last-access to now.

        Raises:
            NotFoundError: If the artifact does not exist
        """
        p = self.path(filename)
        try:
            os.utime(p, None)
        except FileNotFoundError:
            raise NotFoundError(f"File not found: {p.name}") from None

    def delete(self, filename: str) -> None:
        self.path(filename).unlink(missing_ok=True)

    def list(self) -> list[str]:
        """List finished artifacts, oldest name first."""
        if not self.root.exists():
            return []
        return sorted(
            p.name for p in self.root.iterdir()
            if p.is_file() and not p.name.startswith(TEMP_PREFIX)
        )

    def sweep(self, max_age_s: float = DEFAULT_MAX_AGE_S, now: Optional[float] = None) -> SweepReport:
        """
        Delete every artifact whose last access is older than ``max_age_s``.

        Abandoned temp files are reclaimed too. A failure on one file is
        logged and recorded in the report; the pass continues.

        Args:
            max_age_s: Retention window in seconds
            now: Reference time (defaults to the current time)

        Returns:
            SweepReport with scanned count, removed and failed names
        """
        report = SweepReport()
        if not self.root.exists():
            return report

        now = time.time() if now is None else now

        for p in self.root.iterdir():
            if not p.is_file():
                continue
            report.scanned += 1
            try:
                age = now - p.stat().st_mtime
                if age > max_age_s:
                    p.unlink()
                    report.removed.append(p.name)
                    logger.info("artifact_reclaimed", filename=p.name, age_s=round(age, 1))
            except FileNotFoundError:
                # Removed concurrently
                continue
            except OSError as e:
                report.failed.append(p.name)
                logger.error("artifact_reclaim_failed", filename=p.name, error=str(e))

        return report
