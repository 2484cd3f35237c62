import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional
import httpx

from neoclip.exceptions import AllProvidersExhausted
from neoclip.logging import logger
from neoclip.models.enums import Tier
from neoclip.providers.base import AttemptOutcome, ErrorKind, ProviderDescriptor, classify_http_status
from neoclip.providers.registry import ProviderRegistry


@dataclass
class DispatchResult:
    provider_key: str
    provider_name: str
    provider_task_id: str
    cost: float
    length: int
    estimated_seconds: int
    raw_response: Optional[Any] = None
    attempts: List[AttemptOutcome] = field(default_factory=list)


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json() if response.content else {}
    except ValueError:
        return {}


class TaskCreator:
    """Walks a tier's fallback chain until one provider accepts the task."""

    def __init__(
        self,
        registry: ProviderRegistry,
        client: httpx.AsyncClient,
        credentials: Mapping[str, str],
        max_attempts: int = 2,
        retry_delay: float = 1.5,
        timeout: float = 30.0,
    ):
        self.registry = registry
        self.client = client
        self.credentials = credentials
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.timeout = timeout

    async def create_task(
        self,
        descriptor: ProviderDescriptor,
        api_key: str,
        prompt: str,
        length: int,
        attempt: int = 1,
    ) -> AttemptOutcome:
        body = descriptor.build_request(prompt, length)
        try:
            response = await self.client.post(
                descriptor.create_url(),
                headers=descriptor.auth_headers(api_key),
                json=body,
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            return AttemptOutcome(
                provider=descriptor.name,
                attempt=attempt,
                error_kind=ErrorKind.TIMEOUT,
                error_message=f"Request timed out after {self.timeout:g}s",
            )
        except httpx.HTTPError as e:
            return AttemptOutcome(
                provider=descriptor.name,
                attempt=attempt,
                error_kind=ErrorKind.TRANSPORT,
                error_message=str(e) or type(e).__name__,
            )

        payload = _decode(response)
        error_kind = classify_http_status(response.status_code)
        if error_kind is not None:
            return AttemptOutcome(
                provider=descriptor.name,
                attempt=attempt,
                error_kind=error_kind,
                status_code=response.status_code,
                error_message=descriptor.extract_error(payload) or response.text[:300] or f"HTTP {response.status_code}",
                raw_response=payload,
            )

        task_id = descriptor.extract_task_id(payload)
        if not task_id:
            return AttemptOutcome(
                provider=descriptor.name,
                attempt=attempt,
                error_kind=ErrorKind.NO_TASK_ID,
                status_code=response.status_code,
                error_message=descriptor.extract_error(payload) or "No task id in provider response",
                raw_response=payload,
            )

        return AttemptOutcome(
            provider=descriptor.name,
            attempt=attempt,
            task_id=task_id,
            status_code=response.status_code,
            raw_response=payload,
        )

    async def _try_provider(
        self,
        descriptor: ProviderDescriptor,
        api_key: str,
        prompt: str,
        length: int,
        attempts: List[AttemptOutcome],
    ) -> Optional[AttemptOutcome]:
        for attempt in range(1, self.max_attempts + 1):
            outcome = await self.create_task(descriptor, api_key, prompt, length, attempt=attempt)
            attempts.append(outcome)

            if outcome.success:
                logger.info(
                    "provider_task_created",
                    provider=descriptor.name,
                    attempt=attempt,
                    task_id=outcome.task_id,
                )
                return outcome

            logger.warning(
                "provider_attempt_failed",
                provider=descriptor.name,
                attempt=attempt,
                kind=outcome.error_kind.value,
                status_code=outcome.status_code,
                error=outcome.error_message,
            )
            if not outcome.error_kind.retryable:
                break
            if attempt < self.max_attempts and self.retry_delay > 0:
                await asyncio.sleep(self.retry_delay)
        return None

    async def dispatch(self, prompt: str, tier: Tier, length: int) -> DispatchResult:
        started = time.monotonic()
        attempts: List[AttemptOutcome] = []
        chain = self.registry.chain_for(tier)

        for descriptor in chain:
            api_key = descriptor.credential(self.credentials)
            if not api_key:
                logger.info("provider_skipped_no_credential", provider=descriptor.name, tier=tier.value)
                continue

            outcome = await self._try_provider(descriptor, api_key, prompt, length, attempts)
            if outcome is not None:
                return DispatchResult(
                    provider_key=descriptor.name,
                    provider_name=descriptor.display_name,
                    provider_task_id=outcome.task_id,
                    cost=descriptor.calculate_cost(length),
                    length=descriptor.clamp_length(length),
                    estimated_seconds=descriptor.estimated_seconds,
                    raw_response=outcome.raw_response,
                    attempts=attempts,
                )

        last = attempts[-1] if attempts else None
        if last is not None:
            last_error = f"{last.provider}: {last.error_kind.value}: {last.error_message}"
        elif chain:
            last_error = "No credentials configured for any provider in the chain"
        else:
            last_error = f"No providers configured for tier {tier.value}"

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.error(
            "all_providers_exhausted",
            tier=tier.value,
            attempts=len(attempts),
            last_error=last_error,
            elapsed_ms=elapsed_ms,
        )
        raise AllProvidersExhausted(
            tier=tier.value,
            attempts=[a.summary() for a in attempts],
            last_error=last_error,
            elapsed_ms=elapsed_ms,
        )
