"""
Public file host storage (catbox-style API).

POST multipart form {reqtype=fileupload, fileToUpload=<file>} to the upload
endpoint; the response body is the file name or its full URL. Failures here
degrade the response instead of failing the request.
"""
import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from imagegen_proxy.core.config import Settings
from imagegen_proxy.services.upstream import (
    FailureType,
    RetryFailed,
    RetryPolicy,
    UpstreamFailure,
    always_retry,
    call_with_retry,
    classify_http_status,
    classify_transport_error,
)
from imagegen_proxy.storage.base import Storage, UploadOutcome

logger = logging.getLogger(__name__)

UPSTREAM_NAME = "storage_upload"
UPLOAD_FIELD = "fileToUpload"
UPLOAD_REQUEST_TYPE = "fileupload"
UPLOAD_FAILED_MESSAGE = "Failed to upload image to public storage service after multiple retries"
# Known limitation: a legitimate file name containing either word is rejected too.
FAILURE_MARKERS = ("error", "fail")


def upload_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.upload_max_attempts,
        timeout_seconds=settings.upload_timeout_seconds,
        base_delay_seconds=settings.upload_base_delay_seconds,
        max_delay_seconds=settings.upload_max_delay_seconds,
    )


def extension_for(content_type: str) -> str:
    if "png" in content_type:
        return "png"
    if "gif" in content_type:
        return "gif"
    if "webp" in content_type:
        return "webp"
    return "jpg"


class PublicFileHostStorage(Storage):
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        upload_url: str,
        files_url_prefix: str,
        policy: RetryPolicy,
        user_agent: str,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.http_client = http_client
        self.upload_url = upload_url
        self.files_url_prefix = files_url_prefix
        self.policy = policy
        self.user_agent = user_agent
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, http_client: httpx.AsyncClient) -> "PublicFileHostStorage":
        return cls(
            http_client,
            upload_url=settings.storage_service_url,
            files_url_prefix=settings.storage_files_url_prefix,
            policy=upload_policy(settings),
            user_agent=settings.upload_user_agent,
        )

    def public_url_for(self, body: str) -> str:
        """Turn the host's answer into a public URL; raises on anything suspicious."""
        name = body.strip()
        if not name or any(marker in name for marker in FAILURE_MARKERS):
            raise UpstreamFailure(f'Upload rejected by storage service: "{name}"', FailureType.INVALID_RESPONSE)
        url = name if name.startswith("http") else f"{self.files_url_prefix}{name}"
        if not url.startswith(self.files_url_prefix):
            raise UpstreamFailure(f'Invalid public URL format: "{url}"', FailureType.INVALID_RESPONSE)
        return url

    async def upload_image(self, content: bytes, content_type: str) -> UploadOutcome:
        attempts = 0

        async def attempt() -> str:
            nonlocal attempts
            attempts += 1
            return await self._upload_once(content, content_type)

        try:
            url = await call_with_retry(
                attempt,
                self.policy,
                always_retry,
                upstream=UPSTREAM_NAME,
                sleep=self._sleep,
            )
        except RetryFailed as e:
            logger.warning(
                "storage_upload_failed",
                extra={"upstream": UPSTREAM_NAME, "attempts": e.attempts, "error": e.last_failure.message},
            )
            return UploadOutcome.failed(UPLOAD_FAILED_MESSAGE, e.last_failure.message, e.attempts)

        logger.info("storage_upload_succeeded", extra={"upstream": UPSTREAM_NAME, "attempts": attempts})
        return UploadOutcome.succeeded(url, attempts=attempts)

    async def _upload_once(self, content: bytes, content_type: str) -> str:
        filename = f"generated-image.{extension_for(content_type)}"
        try:
            response = await self.http_client.post(
                self.upload_url,
                data={"reqtype": UPLOAD_REQUEST_TYPE},
                files={UPLOAD_FIELD: (filename, content, content_type)},
                headers={"User-Agent": self.user_agent},
            )
        except httpx.TransportError as e:
            raise UpstreamFailure(
                f"Storage service request failed: {type(e).__name__}: {e}",
                classify_transport_error(e),
            ) from e

        if not response.is_success:
            raise UpstreamFailure(
                f"Storage service API error: {response.status_code} {response.reason_phrase} - {response.text}",
                classify_http_status(response.status_code),
                http_status=response.status_code,
            )

        return self.public_url_for(response.text)
