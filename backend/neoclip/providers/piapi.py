from typing import Any, Dict, Optional

from neoclip.providers.base import ProviderDescriptor, PAID_TIERS, as_text, dig, first_url


class PiApiDescriptor(ProviderDescriptor):
    """PiAPI unified task API; every response is wrapped in {code, data, message}."""

    vendor = "piapi"
    BASE_URL = "https://api.piapi.ai/api/v1"
    model: str
    task_type: str = "video_generation"

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "x-api-key": api_key,
            "Content-Type": "application/json",
        }

    def create_url(self) -> str:
        return f"{self.BASE_URL}/task"

    def build_input(self, prompt: str, length: int) -> dict:
        return {"prompt": prompt}

    def build_request(self, prompt: str, length: int) -> dict:
        return {
            "model": self.model,
            "task_type": self.task_type,
            "input": self.build_input(prompt, length),
        }

    def _data(self, payload: Any) -> Any:
        data = dig(payload, "data")
        return data if data is not None else payload

    def extract_task_id(self, payload: Any) -> Optional[str]:
        code = dig(payload, "code")
        if code is not None and code != 200:
            return None
        data = self._data(payload)
        return as_text(dig(data, "task_id")) or as_text(dig(data, "id"))

    def status_url(self, task_id: str) -> str:
        return f"{self.BASE_URL}/task/{task_id}"

    def raw_status(self, payload: Any) -> Optional[str]:
        return as_text(dig(self._data(payload), "status"))

    def extract_result_url(self, payload: Any) -> Optional[str]:
        output = dig(self._data(payload), "output")
        return first_url(
            dig(output, "video", "url"),
            dig(output, "video_raw", "url"),
            dig(output, "video_url"),
            dig(output, "works", 0, "video", "resource"),
        )

    def extract_error(self, payload: Any) -> Optional[str]:
        data = self._data(payload)
        message = as_text(dig(data, "error", "message")) or as_text(dig(data, "error", "raw_message"))
        if message:
            return message
        if dig(payload, "code") not in (None, 200):
            return as_text(dig(payload, "message"))
        return None


class LumaDescriptor(PiApiDescriptor):
    name = "luma"
    display_name = "Luma Ray 2"
    model = "luma"
    tiers = PAID_TIERS
    cost_per_unit = 0.20
    max_duration = 10
    estimated_seconds = 120

    def build_input(self, prompt: str, length: int) -> dict:
        return {
            "prompt": prompt,
            "model_name": "ray-v2",
            "duration": 10 if self.clamp_length(length) > 5 else 5,
            "aspect_ratio": "9:16",
            "expand_prompt": True,
        }
