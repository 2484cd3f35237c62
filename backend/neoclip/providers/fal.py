from typing import Any, Dict, Optional

from neoclip.providers.base import ProviderDescriptor, ALL_TIERS, as_text, dig, first_url


class FalQueueDescriptor(ProviderDescriptor):
    """fal.ai queue: submit, read status, then read the result separately."""

    vendor = "fal"
    BASE_URL = "https://queue.fal.run"
    app_id: str  # fal-ai/pika/v2.2/text-to-video
    app_root: str  # fal-ai/pika, used for request lookups

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Authorization": f"Key {api_key}",
            "Content-Type": "application/json",
        }

    def create_url(self) -> str:
        return f"{self.BASE_URL}/{self.app_id}"

    def extract_task_id(self, payload: Any) -> Optional[str]:
        return as_text(dig(payload, "request_id")) or as_text(dig(payload, "requestId"))

    def status_url(self, task_id: str) -> str:
        return f"{self.BASE_URL}/{self.app_root}/requests/{task_id}/status"

    def result_endpoint(self, task_id: str) -> Optional[str]:
        return f"{self.BASE_URL}/{self.app_root}/requests/{task_id}"

    def raw_status(self, payload: Any) -> Optional[str]:
        return as_text(dig(payload, "status"))

    def extract_result_url(self, payload: Any) -> Optional[str]:
        return first_url(
            dig(payload, "video", "url"),
            dig(payload, "video_url"),
            dig(payload, "videos", 0, "url"),
            dig(payload, "url"),
        )

    def extract_error(self, payload: Any) -> Optional[str]:
        detail = dig(payload, "detail")
        if isinstance(detail, list):
            detail = dig(detail, 0, "msg")
        return as_text(dig(payload, "error")) or as_text(detail)


class PikaDescriptor(FalQueueDescriptor):
    name = "pika"
    display_name = "Pika 2.2"
    app_id = "fal-ai/pika/v2.2/text-to-video"
    app_root = "fal-ai/pika"
    tiers = ALL_TIERS
    cost_per_unit = 0.0  # covered by fal's free clip allowance
    max_duration = 10
    estimated_seconds = 90

    def build_request(self, prompt: str, length: int) -> dict:
        return {
            "prompt": prompt,
            "duration": 10 if self.clamp_length(length) > 5 else 5,
            "resolution": "720p",
        }
