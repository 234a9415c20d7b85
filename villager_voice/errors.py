"""
Error taxonomy for the audio pipeline.

Every failure raised by a stage is one of these; the API layer maps
them onto HTTP responses via ``status_code``.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline failures."""
    
    status_code: int = 500
    
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InputError(PipelineError):
    """Missing or invalid caller input (non-retriable)."""
    
    status_code = 400


class NotFoundError(PipelineError):
    """A referenced local artifact does not exist."""
    
    status_code = 404


class UpstreamError(PipelineError):
    """External service, mixing tool or remote fetch failed."""
    
    status_code = 502


class MissingStemsError(PipelineError):
    """Separation output is incomplete beyond the fallback chain."""
    
    status_code = 422


class StoreError(PipelineError):
    """Disk I/O failure inside the artifact store or cache document."""
    
    status_code = 500
