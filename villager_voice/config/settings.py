"""Application settings and configuration schema."""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel

from ..persist.paths import StorePaths


class Paths(BaseModel):
    """File and directory paths configuration."""
    artifacts_dir: str = "data/temp"
    cache_file: str = "data/cache.json"
    cache_db: str = "data/cache.db"
    
    def to_store_paths(self) -> StorePaths:
        return StorePaths(
            artifacts_dir=Path(self.artifacts_dir),
            cache_file=Path(self.cache_file),
            cache_db=Path(self.cache_db),
        )


class CacheCfg(BaseModel):
    """Result cache and reclamation configuration."""
    backend: Literal["json", "sqlite"] = "json"
    prune_stale: bool = False
    max_age_s: float = 60 * 60
    sweep_interval_s: float = 5 * 60


class MixCfg(BaseModel):
    """Stem combiner configuration."""
    tool: Literal["ffmpeg", "soundfile"] = "ffmpeg"
    ffmpeg_binary: str = "ffmpeg"
    sample_rate: int = 44100
    channels: int = 2


class UploadCfg(BaseModel):
    """Upload boundary limits."""
    max_upload_bytes: int = 50 * 1024 * 1024
    allowed_prefixes: tuple[str, ...] = ("audio/", "video/webm", "application/octet-stream")


class ReplicateCfg(BaseModel):
    """Replicate service configuration."""
    api_token: Optional[str] = None
    poll_interval_s: float = 1.0


class LoggingCfg(BaseModel):
    level: str = "INFO"
    json_output: bool = True


class Settings(BaseModel):
    """Main application settings."""
    paths: Paths = Paths()
    cache: CacheCfg = CacheCfg()
    mix: MixCfg = MixCfg()
    upload: UploadCfg = UploadCfg()
    replicate: ReplicateCfg = ReplicateCfg()
    logging: LoggingCfg = LoggingCfg()
    
    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Settings":
        """
        Build settings with ``VV_*`` environment overrides.
        
        Recognized variables:
            VV_ARTIFACTS_DIR, VV_CACHE_FILE, VV_CACHE_DB, VV_CACHE_BACKEND,
            VV_MAX_AGE_S, VV_SWEEP_INTERVAL_S, VV_MIX_TOOL, VV_FFMPEG_BINARY,
            VV_MAX_UPLOAD_BYTES, VV_LOG_LEVEL, REPLICATE_API_TOKEN
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        
        return cls(
            paths=Paths(
                artifacts_dir=env.get("VV_ARTIFACTS_DIR", defaults.paths.artifacts_dir),
                cache_file=env.get("VV_CACHE_FILE", defaults.paths.cache_file),
                cache_db=env.get("VV_CACHE_DB", defaults.paths.cache_db),
            ),
            cache=CacheCfg(
                backend=env.get("VV_CACHE_BACKEND", defaults.cache.backend),
                max_age_s=float(env.get("VV_MAX_AGE_S", defaults.cache.max_age_s)),
                sweep_interval_s=float(env.get("VV_SWEEP_INTERVAL_S", defaults.cache.sweep_interval_s)),
            ),
            mix=MixCfg(
                tool=env.get("VV_MIX_TOOL", defaults.mix.tool),
                ffmpeg_binary=env.get("VV_FFMPEG_BINARY", defaults.mix.ffmpeg_binary),
            ),
            upload=UploadCfg(
                max_upload_bytes=int(env.get("VV_MAX_UPLOAD_BYTES", defaults.upload.max_upload_bytes)),
            ),
            replicate=ReplicateCfg(
                api_token=env.get("REPLICATE_API_TOKEN", defaults.replicate.api_token),
            ),
            logging=LoggingCfg(
                level=env.get("VV_LOG_LEVEL", defaults.logging.level),
            ),
        )
