from enum import Enum
from typing import Any, Dict, Optional

from neoclip.providers.base import ProviderDescriptor, ALL_TIERS, PAID_TIERS, as_text, dig, first_url


class ReplicateStatus(str, Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class ReplicateDescriptor(ProviderDescriptor):
    """Prediction API shared by every model hosted on Replicate."""

    vendor = "replicate"
    BASE_URL = "https://api.replicate.com/v1"
    model: str

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def create_url(self) -> str:
        return f"{self.BASE_URL}/models/{self.model}/predictions"

    def build_input(self, prompt: str, length: int) -> dict:
        return {"prompt": prompt}

    def build_request(self, prompt: str, length: int) -> dict:
        return {"input": self.build_input(prompt, length)}

    def extract_task_id(self, payload: Any) -> Optional[str]:
        return as_text(dig(payload, "id"))

    def status_url(self, task_id: str) -> str:
        return f"{self.BASE_URL}/predictions/{task_id}"

    def raw_status(self, payload: Any) -> Optional[str]:
        return as_text(dig(payload, "status"))

    def extract_result_url(self, payload: Any) -> Optional[str]:
        output = dig(payload, "output")
        if isinstance(output, list):
            return first_url(*output)
        if isinstance(output, dict):
            return first_url(output.get("video"), output.get("url"), dig(output, "video", "url"))
        return first_url(output)

    def extract_error(self, payload: Any) -> Optional[str]:
        error = dig(payload, "error")
        if isinstance(error, dict):
            error = error.get("message") or error.get("detail")
        message = as_text(error) or as_text(dig(payload, "detail"))
        if message:
            return message
        if self.raw_status(payload) == ReplicateStatus.CANCELED.value:
            return "Task was canceled"
        return None


class WanDescriptor(ReplicateDescriptor):
    name = "wan"
    display_name = "Wan 2.1"
    model = "wan-video/wan-2.1-1.3b"
    tiers = ALL_TIERS
    cost_per_unit = 0.0008
    max_duration = 10
    estimated_seconds = 60

    def build_input(self, prompt: str, length: int) -> dict:
        return {
            "prompt": prompt,
            "duration": self.clamp_length(length),
        }


class MinimaxDescriptor(ReplicateDescriptor):
    name = "minimax"
    display_name = "MiniMax Video-01"
    model = "minimax/video-01"
    tiers = PAID_TIERS
    cost_per_unit = 0.30
    max_duration = 6
    estimated_seconds = 180

    def build_input(self, prompt: str, length: int) -> dict:
        return {
            "prompt": prompt,
            "prompt_optimizer": True,
        }
