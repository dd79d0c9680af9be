"""
Base types for the image generation client.
"""
import base64
from dataclasses import dataclass
from typing import Any

from imagegen_proxy.services.upstream import FailureType, RetryFailed

DEFAULT_CONTENT_TYPE = "image/jpeg"
ERROR_BODY_PREVIEW_CHARS = 200


def encode_data_uri(content: bytes, content_type: str) -> str:
    """Embed binary content in a data: URI."""
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


@dataclass(frozen=True)
class GeneratedImage:
    """Image returned by the generator; lives only for one request."""

    content: bytes
    content_type: str

    @property
    def data_uri(self) -> str:
        return encode_data_uri(self.content, self.content_type)

    @property
    def size_bytes(self) -> int:
        return len(self.content)


class ImageGenerationError(Exception):
    """Generation failed after the retry policy gave up."""

    NON_RETRYABLE_MESSAGE = "Failed to generate image"
    EXHAUSTED_MESSAGE = "Failed to generate image after multiple attempts"

    def __init__(
        self,
        message: str,
        reason: str,
        attempts: int,
        failure_type: FailureType,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.attempts = attempts
        self.failure_type = failure_type
        self.http_status = http_status

    @classmethod
    def from_retry_failure(cls, exc: RetryFailed) -> "ImageGenerationError":
        message = cls.EXHAUSTED_MESSAGE if exc.exhausted else cls.NON_RETRYABLE_MESSAGE
        failure = exc.last_failure
        return cls(
            message,
            reason=failure.message,
            attempts=exc.attempts,
            failure_type=failure.failure_type,
            http_status=failure.http_status,
        )

    @property
    def details(self) -> dict[str, Any]:
        detail: dict[str, Any] = {
            "reason": self.reason,
            "attempts": self.attempts,
            "failureType": self.failure_type.value,
        }
        if self.http_status is not None:
            detail["httpStatus"] = self.http_status
        return detail
