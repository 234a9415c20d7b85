"""
Path management for the artifact directory and cache files.

Also owns filename normalization for tokens supplied from outside the
process (upload names, retrieval tokens).
"""

import re
from dataclasses import dataclass
from pathlib import Path

from ..errors import InputError


@dataclass
class StorePaths:
    """Centralized paths for artifacts and cache state."""
    
    artifacts_dir: Path        # e.g., data/temp
    cache_file: Path           # e.g., data/cache.json
    cache_db: Path             # e.g., data/cache.db
    
    @property
    def data_dir(self) -> Path:
        """Directory holding the cache document."""
        return self.cache_file.parent


def ensure_dirs(sp: StorePaths) -> None:
    """
    Create all required directories if they don't exist.
    
    Args:
        sp: StorePaths instance
    """
    sp.artifacts_dir.mkdir(parents=True, exist_ok=True)
    sp.cache_file.parent.mkdir(parents=True, exist_ok=True)
    sp.cache_db.parent.mkdir(parents=True, exist_ok=True)


def safe_name(token: str) -> str:
    """
    Reduce an externally supplied filename to its base name.
    
    Both ``/`` and ``\\`` count as separators, so no token can address
    anything outside the artifact directory.
    
    Args:
        token: Raw filename or path-like token
    
    Returns:
        Base name of the token
    
    Raises:
        InputError: If nothing usable remains
    
    Example:
        >>> safe_name("../../etc/passwd")
        'passwd'
    """
    if token is None:
        raise InputError("Filename is required")
    
    base = re.split(r"[\\/]", token.strip())[-1]
    if base in ("", ".", ".."):
        raise InputError(f"Invalid filename: {token!r}")
    return base


def sanitize_original_name(name: str) -> str:
    """Lowercase and replace anything outside [a-z0-9.] with underscores."""
    return re.sub(r"[^a-z0-9.]", "_", name.lower())
