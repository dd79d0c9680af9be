import logging
from typing import Any

from imagegen_proxy.schemas.generation import GenerationRequest
from imagegen_proxy.services.generation.composer import (
    compose_generation_failure,
    compose_generation_success,
)
from imagegen_proxy.services.image_generation import ImageGenerationClient, ImageGenerationError
from imagegen_proxy.storage.base import Storage
from imagegen_proxy.utils.metrics import images_generated_total

logger = logging.getLogger(__name__)


class GenerationService:
    """Generate, then publish; upload problems only degrade the response."""

    def __init__(self, generator: ImageGenerationClient, storage: Storage):
        self.generator = generator
        self.storage = storage

    async def run(self, request: GenerationRequest) -> tuple[int, dict[str, Any]]:
        """Return (http_status, envelope) for a validated request."""
        try:
            image = await self.generator.generate(request)
        except ImageGenerationError as e:
            images_generated_total.labels(result="failed").inc()
            return 500, compose_generation_failure(e)

        upload = await self.storage.upload_image(image.content, image.content_type)
        if upload.ok:
            images_generated_total.labels(result="uploaded").inc()
        else:
            images_generated_total.labels(result="degraded").inc()
            logger.warning(
                "returning_base64_only",
                extra={"attempts": upload.attempts, "error": upload.details},
            )
        return 200, compose_generation_success(request, image, upload)
