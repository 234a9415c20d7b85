"""
Interfaces for the external AI services the pipeline drives.

Both services are black boxes: they receive audio as a data URI or URL
and answer with either a fetchable locator (``str``) or raw content
(``bytes`` or an iterator of byte chunks).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Iterable, Mapping, Union

StemOutput = Union[str, bytes, Iterable[bytes]]

STEM_NAMES = ("vocals", "drums", "bass", "other", "instrumental")

VILLAGER_MODEL_URL = (
    "https://huggingface.co/Fonre/RVC-Models/resolve/main/"
    "Villager%20(Minecraft)%20-%20Weights%20Model.zip?download=true"
)


@dataclass(frozen=True)
class VoiceProfile:
    """Fixed parameter profile for voice conversion."""
    
    rvc_model: str = "CUSTOM"
    model_url: str = VILLAGER_MODEL_URL
    pitch_change: int = 0
    index_rate: float = 0.5
    filter_radius: int = 3
    rms_mix_rate: float = 0.25
    protect: float = 0.33
    
    def to_input(self, audio: str) -> dict:
        """Build the RVC prediction input for one audio payload."""
        data = asdict(self)
        model_url = data.pop("model_url")
        data["input_audio"] = audio
        data["custom_rvc_model_download_url"] = model_url
        return data


VOICE_PROFILE = VoiceProfile()


class SeparationService(ABC):
    """Splits one audio payload into named stems."""
    
    @abstractmethod
    def separate(self, audio: str) -> Mapping[str, StemOutput]:
        """
        Separate audio into stems.
        
        Args:
            audio: Data URI or URL of the source mix
        
        Returns:
            Mapping of stem name (vocals, drums, bass, other, instrumental)
            to a locator or byte content
        """
        pass


class ConversionService(ABC):
    """Converts a vocal track to a target voice."""
    
    @abstractmethod
    def convert(self, audio: str, profile: VoiceProfile) -> StemOutput:
        """
        Convert one audio payload.
        
        Args:
            audio: Data URI or URL of the input vocals
            profile: Conversion parameters
        
        Returns:
            Locator or byte content of the converted audio
        """
        pass
