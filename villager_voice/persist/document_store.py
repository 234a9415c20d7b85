"""
Flat JSON document backend for the result cache.

Layout: ``{key: {"timestamp": ms, "data": payload, "files": [...]}}``.

Each call performs a whole-document read-modify-write. Two concurrent
writers may lose one update; readers always see a complete document
because writes go through a temp file and an atomic rename.
"""

import json
import os
from pathlib import Path
from typing import Optional

import structlog

from ..errors import StoreError
from .backend import CacheBackend, CacheEntry

logger = structlog.get_logger(__name__)


class JsonDocumentBackend(CacheBackend):
    """
    Cache backend persisting all entries in one JSON file.
    
    Usage:
        >>> backend = JsonDocumentBackend(Path("data/cache.json"))
        >>> backend.write("ingest:ab12", CacheEntry(0, {"filename": "ab12.wav"}, ["ab12.wav"]))
        >>> backend.read("ingest:ab12").data
        {'filename': 'ab12.wav'}
    """
    
    def __init__(self, path: Path):
        """
        Initialize backend at given document path.
        
        Args:
            path: Path to the JSON document (parent created if missing)
        """
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create cache directory {self.path.parent}: {e}") from e
    
    def _load(self) -> dict:
        """Load the whole document; missing or corrupt reads as empty."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            logger.error("cache_document_unreadable", path=str(self.path), error=str(e))
            return {}
        
        if not content.strip():
            return {}
        
        try:
            doc = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error("cache_document_corrupt", path=str(self.path), error=str(e))
            return {}
        
        return doc if isinstance(doc, dict) else {}
    
    def _save(self, doc: dict) -> None:
        tmp = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        try:
            tmp.write_text(json.dumps(doc, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            tmp.unlink(missing_ok=True)
            raise StoreError(f"Failed writing cache document {self.path}: {e}") from e
    
    def read(self, key: str) -> Optional[CacheEntry]:
        raw = self._load().get(key)
        if not isinstance(raw, dict):
            return None
        return CacheEntry.from_dict(raw)
    
    def write(self, key: str, entry: CacheEntry) -> None:
        doc = self._load()
        doc[key] = entry.to_dict()
        self._save(doc)
    
    def delete(self, key: str) -> None:
        doc = self._load()
        if doc.pop(key, None) is not None:
            self._save(doc)
    
    def keys(self) -> list[str]:
        return sorted(self._load().keys())
    
    def purge(self) -> int:
        count = len(self._load())
        self._save({})
        return count
    
    def stats(self) -> dict:
        doc = self._load()
        stamps = [int(v.get("timestamp", 0)) for v in doc.values() if isinstance(v, dict)]
        total_bytes = self.path.stat().st_size if self.path.exists() else 0
        
        return {
            "count": len(doc),
            "total_bytes": total_bytes,
            "oldest_ts": min(stamps) // 1000 if stamps else 0,
            "newest_ts": max(stamps) // 1000 if stamps else 0,
        }
