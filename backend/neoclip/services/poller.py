from dataclasses import dataclass
from typing import Any, Mapping, Optional
import httpx

from neoclip.logging import logger
from neoclip.models.enums import GenerationStatus
from neoclip.models.generation import Generation
from neoclip.providers.base import ProviderDescriptor
from neoclip.providers.registry import ProviderRegistry


GENERIC_FAILURE = "Video generation failed at the provider"


@dataclass
class PollResult:
    status: GenerationStatus
    video_url: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    progress: Optional[int] = None
    raw_status: Optional[str] = None
    raw_response: Optional[Any] = None
    # provider said done but gave no usable URL
    empty_result: bool = False
    # the remote check itself did not produce a readable answer
    check_failed: bool = False


class StatusPoller:
    """One remote status check per call; scheduling is the caller's job."""

    def __init__(
        self,
        registry: ProviderRegistry,
        client: httpx.AsyncClient,
        credentials: Mapping[str, str],
        timeout: float = 30.0,
    ):
        self.registry = registry
        self.client = client
        self.credentials = credentials
        self.timeout = timeout

    async def _fetch(self, descriptor: ProviderDescriptor, url: str, api_key: str) -> Optional[Any]:
        try:
            response = await self.client.get(url, headers=descriptor.auth_headers(api_key), timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning("provider_status_unreachable", provider=descriptor.name, error=str(e) or type(e).__name__)
            return None

        if not response.is_success:
            logger.warning(
                "provider_status_http_error",
                provider=descriptor.name,
                status_code=response.status_code,
                body=response.text[:300],
            )
            return None

        try:
            return response.json()
        except ValueError:
            logger.warning("provider_status_not_json", provider=descriptor.name, body=response.text[:300])
            return None

    async def check(self, generation: Generation) -> PollResult:
        descriptor = self.registry.get(generation.provider_key or "")
        if descriptor is None:
            return PollResult(
                status=GenerationStatus.FAILED,
                error=f"Unknown provider: {generation.provider_key}",
                error_code="UNKNOWN_PROVIDER",
            )

        api_key = descriptor.credential(self.credentials)
        if not api_key or not generation.provider_task_id:
            logger.warning(
                "provider_status_not_checkable",
                provider=descriptor.name,
                generation_id=str(generation.id),
                has_credential=bool(api_key),
            )
            return PollResult(status=GenerationStatus.PROCESSING, check_failed=True)

        task_id = generation.provider_task_id
        payload = await self._fetch(descriptor, descriptor.status_url(task_id), api_key)
        if payload is None:
            return PollResult(status=GenerationStatus.PROCESSING, check_failed=True)

        raw_status = descriptor.raw_status(payload)
        status = descriptor.classify_status(payload)

        if status == GenerationStatus.COMPLETED:
            video_url = descriptor.extract_result_url(payload)
            result_endpoint = descriptor.result_endpoint(task_id)
            if not video_url and result_endpoint:
                result_payload = await self._fetch(descriptor, result_endpoint, api_key)
                if result_payload is not None:
                    payload = {"status": payload, "result": result_payload}
                    video_url = descriptor.extract_result_url(result_payload)

            if not video_url:
                logger.warning(
                    "provider_completed_without_url",
                    provider=descriptor.name,
                    generation_id=str(generation.id),
                    raw_status=raw_status,
                )
                return PollResult(
                    status=GenerationStatus.PROCESSING,
                    progress=95,
                    raw_status=raw_status,
                    raw_response=payload,
                    empty_result=True,
                )

            return PollResult(
                status=GenerationStatus.COMPLETED,
                video_url=video_url,
                progress=100,
                raw_status=raw_status,
                raw_response=payload,
            )

        if status == GenerationStatus.FAILED:
            return PollResult(
                status=GenerationStatus.FAILED,
                error=descriptor.extract_error(payload) or GENERIC_FAILURE,
                error_code="PROVIDER_FAILED",
                raw_status=raw_status,
                raw_response=payload,
            )

        return PollResult(
            status=GenerationStatus.PROCESSING,
            progress=descriptor.estimate_progress(payload),
            raw_status=raw_status,
            raw_response=payload,
        )
