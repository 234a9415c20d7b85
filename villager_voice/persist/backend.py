"""
Cache entry model and the storage interface behind the result cache.

Stage logic only talks to ``ResultCache``; the backend decides where
entries live (one flat JSON document, SQLite, or a real key/value
service with compare-and-swap).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Optional


@dataclass
class CacheEntry:
    """Cached stage result plus the artifacts it depends on."""
    
    timestamp: int                  # ms since epoch at write time
    data: Any                       # Stage-specific JSON payload
    files: list[str] = field(default_factory=list)
    
    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return asdict(self)
    
    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        """Create from dict; tolerates entries written without ``files``."""
        return cls(
            timestamp=int(data.get("timestamp", 0)),
            data=data.get("data"),
            files=list(data.get("files") or []),
        )


class CacheBackend(ABC):
    """Key/value persistence for cache entries."""
    
    @abstractmethod
    def read(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for ``key`` or None."""
        pass
    
    @abstractmethod
    def write(self, key: str, entry: CacheEntry) -> None:
        """Insert or overwrite ``key``."""
        pass
    
    @abstractmethod
    def delete(self, key: str) -> None:
        pass
    
    @abstractmethod
    def keys(self) -> list[str]:
        pass
    
    @abstractmethod
    def purge(self) -> int:
        """Delete every entry, returning how many were removed."""
        pass
    
    @abstractmethod
    def stats(self) -> dict:
        """Return count, total_bytes, oldest_ts, newest_ts."""
        pass
    
    def close(self) -> None:
        """Release any held resources."""
        pass
    
    def __enter__(self):
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
