"""
Structured logging for the pipeline.

Every module logs through ``structlog.get_logger(__name__)``; this
module configures the processors once and provides the per-stage
timing event.
"""

import logging
from typing import Any

import structlog

_configured = False


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog on top of stdlib logging.
    
    Args:
        level: Root log level name
        json_output: Render JSON lines; console rendering otherwise
    """
    global _configured
    
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(message)s")
    
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def is_configured() -> bool:
    return _configured


def log_stage(stage: str, ms: float, **extra: Any) -> None:
    """
    Log one stage execution with timing.
    
    Args:
        stage: Stage name (ingest, separate, convert, combine)
        ms: Duration in milliseconds
        **extra: Additional fields (cached, filename, ...)
    """
    logger = structlog.get_logger("villager_voice.stages")
    logger.info("stage_executed", stage=stage, duration_ms=round(ms, 2), **extra)
