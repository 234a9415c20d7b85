"""
External separation and voice-conversion services.
"""

from .base import (
    STEM_NAMES,
    VILLAGER_MODEL_URL,
    VOICE_PROFILE,
    ConversionService,
    SeparationService,
    StemOutput,
    VoiceProfile,
)
from .replicate import (
    ReplicateClient,
    ReplicateConverter,
    ReplicateSeparator,
    build_replicate_services,
)

__all__ = [
    "STEM_NAMES",
    "VILLAGER_MODEL_URL",
    "VOICE_PROFILE",
    "ConversionService",
    "SeparationService",
    "StemOutput",
    "VoiceProfile",
    "ReplicateClient",
    "ReplicateConverter",
    "ReplicateSeparator",
    "build_replicate_services",
]
