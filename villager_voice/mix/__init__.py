"""
Stem combination through an external or in-process mixing tool.
"""

from .combiner import (
    FfmpegMixTool,
    MixTool,
    SoundfileMixTool,
    StemCombiner,
    build_mix_tool,
)

__all__ = [
    "FfmpegMixTool",
    "MixTool",
    "SoundfileMixTool",
    "StemCombiner",
    "build_mix_tool",
]
