"""
Replicate adapters for separation (Demucs) and voice conversion (RVC-v2).

Talks to the Replicate predictions REST API with ``requests``.
"""

import time
from typing import Any, Mapping, Optional

import requests
import structlog

from ..errors import UpstreamError
from .base import (
    STEM_NAMES,
    ConversionService,
    SeparationService,
    StemOutput,
    VoiceProfile,
)

logger = structlog.get_logger(__name__)

DEMUCS_VERSION = "5a7041cc9b82e5a558fea6b3d7b12dea89625e89da33f0447bd727c2d0ab9e77"
RVC_VERSION = "d18e2e0a6a6d3af183cc09622cebba8555ec9a9e66983261fc64c8b1572b7dce"

PENDING_STATES = ("starting", "processing")


class ReplicateClient:
    """
    Minimal Replicate predictions client.
    
    Creates a prediction with ``Prefer: wait`` and polls until it
    reaches a terminal state.
    """
    
    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.replicate.com",
        poll_interval_s: float = 1.0,
        timeout: int = 60,
    ):
        """
        Initialize Replicate client.
        
        Args:
            api_token: Replicate API token
            base_url: API base URL
            poll_interval_s: Delay between status polls
            timeout: Per-request transport timeout in seconds
        """
        if not api_token:
            raise ValueError("Replicate API token is required")
        
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.poll_interval_s = poll_interval_s
        self.timeout = timeout
    
    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }
    
    def _check(self, response: requests.Response) -> dict:
        if response.status_code not in (200, 201, 202):
            raise UpstreamError(
                f"Replicate API returned status {response.status_code}: {response.text}"
            )
        return response.json()
    
    def run(self, version: str, model_input: dict) -> Any:
        """
        Run a model version and wait for its output.
        
        Args:
            version: Model version id
            model_input: Prediction input
        
        Returns:
            Prediction output (URL string, list, or mapping)
        
        Raises:
            UpstreamError: On transport failure, non-success status, or
                failed/canceled prediction
        """
        start_time = time.time()
        
        try:
            response = requests.post(
                f"{self.base_url}/v1/predictions",
                json={"version": version, "input": model_input},
                headers={**self.headers, "Prefer": "wait"},
                timeout=self.timeout,
            )
            prediction = self._check(response)
            
            while prediction.get("status") in PENDING_STATES:
                time.sleep(self.poll_interval_s)
                response = requests.get(
                    prediction["urls"]["get"],
                    headers=self.headers,
                    timeout=self.timeout,
                )
                prediction = self._check(response)
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Replicate request failed: {e}") from e
        
        status = prediction.get("status")
        if status != "succeeded":
            raise UpstreamError(prediction.get("error") or f"Prediction {status}")
        
        logger.info(
            "replicate_prediction_done",
            version=version[:12],
            id=prediction.get("id"),
            seconds=round(time.time() - start_time, 2),
        )
        return prediction.get("output")


class ReplicateSeparator(SeparationService):
    """Demucs source separation on Replicate."""
    
    def __init__(self, client: ReplicateClient, version: str = DEMUCS_VERSION):
        self.client = client
        self.version = version
    
    def separate(self, audio: str) -> Mapping[str, StemOutput]:
        output = self.client.run(self.version, {"audio": audio})
        
        if not isinstance(output, dict):
            raise UpstreamError(f"Unexpected separation output: {type(output).__name__}")
        
        logger.info("separation_output", stems=sorted(output.keys()))
        return {name: value for name, value in output.items() if name in STEM_NAMES and value}


class ReplicateConverter(ConversionService):
    """RVC-v2 voice conversion on Replicate."""
    
    def __init__(self, client: ReplicateClient, version: str = RVC_VERSION):
        self.client = client
        self.version = version
    
    def convert(self, audio: str, profile: VoiceProfile) -> StemOutput:
        output = self.client.run(self.version, profile.to_input(audio))
        
        # Some model versions wrap the file URL in a list
        if isinstance(output, list):
            output = output[0] if output else None
        
        if not output:
            raise UpstreamError("Voice conversion returned no audio")
        return output


def build_replicate_services(
    api_token: Optional[str],
    poll_interval_s: float = 1.0,
) -> tuple[ReplicateSeparator, ReplicateConverter]:
    """Construct both Replicate-backed services sharing one client."""
    client = ReplicateClient(api_token, poll_interval_s=poll_interval_s)
    return ReplicateSeparator(client), ReplicateConverter(client)
