"""
Stage sequencing for the audio conversion chain.
"""

from .orchestrator import (
    STAGE_COMBINE,
    STAGE_CONVERT,
    STAGE_INGEST,
    STAGE_SEPARATE,
    StageOrchestrator,
)
from .results import (
    CombineResult,
    ConversionResult,
    IngestResult,
    ProcessResult,
    SeparationResult,
)

__all__ = [
    "STAGE_COMBINE",
    "STAGE_CONVERT",
    "STAGE_INGEST",
    "STAGE_SEPARATE",
    "StageOrchestrator",
    "CombineResult",
    "ConversionResult",
    "IngestResult",
    "ProcessResult",
    "SeparationResult",
]
