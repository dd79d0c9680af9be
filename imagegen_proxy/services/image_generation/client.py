"""
HTTP client for the text-to-image service.

GET {base}/prompt/{prompt}?width=&height=&model=&nologo=true[&seed=][&enhance=true]
answers with raw image bytes. Some upstream errors arrive as 200 with a text
or JSON body, so the content type is checked before the body is trusted.
"""
import asyncio
import logging
from typing import Awaitable, Callable
from urllib.parse import quote

import httpx

from imagegen_proxy.core.config import Settings
from imagegen_proxy.schemas.generation import GenerationRequest
from imagegen_proxy.services.image_generation.base import (
    DEFAULT_CONTENT_TYPE,
    ERROR_BODY_PREVIEW_CHARS,
    GeneratedImage,
    ImageGenerationError,
)
from imagegen_proxy.services.upstream import (
    FailureType,
    RATE_LIMIT_FAILURES,
    RetryFailed,
    RetryPolicy,
    UpstreamFailure,
    call_with_retry,
    classify_http_status,
    classify_transport_error,
    is_transient,
)

logger = logging.getLogger(__name__)

UPSTREAM_NAME = "image_generation"
# Same characters encodeURIComponent leaves alone
_PROMPT_SAFE_CHARS = "!*'()"


def generation_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.generation_max_attempts,
        timeout_seconds=settings.generation_timeout_seconds,
        base_delay_seconds=settings.generation_base_delay_seconds,
        max_delay_seconds=settings.generation_max_delay_seconds,
        rate_limit_delay_seconds=settings.generation_rate_limit_delay_seconds,
        rate_limit_failures=RATE_LIMIT_FAILURES,
    )


class ImageGenerationClient:
    """Requests one generated image per call, retrying transient failures."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        policy: RetryPolicy,
        user_agent: str,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.policy = policy
        self.user_agent = user_agent
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> "ImageGenerationClient":
        return cls(
            http_client,
            base_url=settings.ai_service_url,
            policy=generation_policy(settings),
            user_agent=settings.generation_user_agent,
        )

    def build_url(self, request: GenerationRequest) -> str:
        return f"{self.base_url}/prompt/{quote(request.prompt, safe=_PROMPT_SAFE_CHARS)}"

    def build_params(self, request: GenerationRequest) -> dict[str, str]:
        params = {
            "width": str(request.width),
            "height": str(request.height),
            "model": request.model,
            "nologo": "true",  # always suppress the provider logo
        }
        if request.seed is not None:
            params["seed"] = str(request.seed)
        if request.enhance:
            params["enhance"] = "true"
        return params

    async def generate(self, request: GenerationRequest) -> GeneratedImage:
        """
        Generate an image for an already validated request.

        Raises:
            ImageGenerationError: when a non-retryable failure occurs or all
                attempts are used up
        """
        try:
            image = await call_with_retry(
                lambda: self._request_image(request),
                self.policy,
                is_transient,
                upstream=UPSTREAM_NAME,
                sleep=self._sleep,
            )
        except RetryFailed as e:
            error = ImageGenerationError.from_retry_failure(e)
            logger.error(
                "image_generation_failed",
                extra={
                    "upstream": UPSTREAM_NAME,
                    "attempts": e.attempts,
                    "failure_type": error.failure_type.value,
                    "error": error.reason,
                },
            )
            raise error from e

        logger.info(
            "image_generated",
            extra={"content_type": image.content_type, "size_bytes": image.size_bytes},
        )
        return image

    async def _request_image(self, request: GenerationRequest) -> GeneratedImage:
        """One attempt. Raises UpstreamFailure for anything but a usable image."""
        headers = {"User-Agent": self.user_agent, "Accept": "image/*"}
        try:
            response = await self.http_client.get(
                self.build_url(request),
                params=self.build_params(request),
                headers=headers,
            )
        except httpx.TransportError as e:
            raise UpstreamFailure(
                f"Image service request failed: {type(e).__name__}: {e}",
                classify_transport_error(e),
            ) from e

        if not response.is_success:
            raise UpstreamFailure(
                f"Image service error: {response.status_code} {response.reason_phrase or 'Unknown error'}",
                classify_http_status(response.status_code),
                http_status=response.status_code,
            )

        content_type = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
        if not content_type.startswith("image/"):
            raise UpstreamFailure(
                f"Image service returned {content_type} instead of an image. "
                f"Response: {response.text[:ERROR_BODY_PREVIEW_CHARS]}",
                FailureType.INVALID_RESPONSE,
                http_status=response.status_code,
            )

        if not response.content:
            raise UpstreamFailure(
                "Image service returned an empty image body",
                FailureType.INVALID_RESPONSE,
                http_status=response.status_code,
            )

        # Drop parameters such as "; charset=..." so the data URI stays well-formed
        media_type = content_type.split(";", 1)[0].strip()
        return GeneratedImage(content=response.content, content_type=media_type)
