"""
Pydantic schemas for FastAPI endpoints.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Union


class UploadResponse(BaseModel):
    """Response model for /api/upload-audio."""
    
    success: bool = True
    filename: str = Field(..., description="Artifact token of the stored upload")
    audioUrl: str = Field(..., description="Retrieval URL for the upload")
    cached: bool = Field(default=False, description="Identical bytes were already stored")


class SeparateRequest(BaseModel):
    """Request model for /api/separate-vocals."""
    
    filename: str = Field(..., description="Artifact token or retrieval URL of the source audio")


class MultiStem(BaseModel):
    type: str = "multi"
    stems: List[str]


class SeparateResponse(BaseModel):
    """Response model for /api/separate-vocals."""
    
    success: bool = True
    vocalsUrl: str
    instrumentalUrl: Union[str, MultiStem]
    instrumentalSource: str = Field(..., description="instrumental, stems, or other")
    degraded: bool = Field(default=False, description="Only the 'other' stem was available")
    cached: bool = False


class ConvertRequest(BaseModel):
    """Request model for /api/convert-to-villager."""
    
    audioUrl: str = Field(..., description="Retrieval URL, artifact token, or remote URL")


class ConvertResponse(BaseModel):
    success: bool = True
    villagerUrl: str
    cached: bool = False


class CombineRequest(BaseModel):
    """Request model for /api/combine-audio."""
    
    vocalsUrl: str = Field(..., description="Converted vocals")
    instrumentalUrl: Optional[Union[str, Dict[str, Any]]] = Field(
        default=None,
        description="Single instrumental URL or {type: 'multi', stems: [...]}",
    )


class CombineResponse(BaseModel):
    success: bool = True
    combinedUrl: str
    mixed: bool = True


class ProcessResponse(BaseModel):
    success: bool = True
    outputUrl: str
    path: List[str]
    timings: Dict[str, float]
    separation: Optional[Dict[str, Any]] = None
    conversion: Dict[str, Any]
    combined: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""
    
    status: str = Field(..., description="Service status")
    components: Dict[str, bool] = Field(default_factory=dict, description="Component availability")


class SweepResponse(BaseModel):
    scanned: int
    removed: List[str]
    failed: List[str]


class CacheStatsResponse(BaseModel):
    count: int
    total_bytes: int
    oldest_ts: int
    newest_ts: int
    hits: int
    misses: int
    hit_rate: float
    artifacts: int
