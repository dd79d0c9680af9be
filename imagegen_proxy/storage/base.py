from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class UploadOutcome:
    """Result of publishing an image: a public URL, or why there is none."""

    ok: bool
    url: str | None = None
    reason: str | None = None
    details: str | None = None
    attempts: int = 0

    @classmethod
    def succeeded(cls, url: str, attempts: int = 1) -> "UploadOutcome":
        return cls(ok=True, url=url, attempts=attempts)

    @classmethod
    def failed(cls, reason: str, details: str, attempts: int) -> "UploadOutcome":
        return cls(ok=False, reason=reason, details=details, attempts=attempts)

    def error_payload(self) -> dict[str, Any]:
        return {"error": self.reason, "details": self.details, "attempts": self.attempts}


class Storage(ABC):
    @abstractmethod
    async def upload_image(self, content: bytes, content_type: str) -> UploadOutcome:
        """Publish image bytes; never raises for upstream failures."""
        raise NotImplementedError
