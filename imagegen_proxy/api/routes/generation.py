"""
POST /generate-image: size guard, JSON parsing, validation, then the
generate-and-publish pipeline.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from imagegen_proxy.api.responses import error_response
from imagegen_proxy.core.config import Settings
from imagegen_proxy.schemas.generation import PayloadValidationError, validate_generation_payload
from imagegen_proxy.services.generation.service import GenerationService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


def _payload_too_large(limit: int) -> JSONResponse:
    return error_response(413, f"Request body too large. Maximum size is {limit // 1_048_576 or 1}MB.")


async def read_body_capped(request: Request, limit: int) -> bytes | None:
    """Read the body, or return None as soon as it exceeds limit bytes."""
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            return None
    return bytes(body)


@router.post("/generate-image")
async def generate_image(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
    service: GenerationService = Depends(get_generation_service),
) -> JSONResponse:
    limit = settings.max_request_bytes
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        return _payload_too_large(limit)

    raw = await read_body_capped(request, limit)
    if raw is None:
        return _payload_too_large(limit)

    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return error_response(400, "Invalid JSON in request body", str(e))

    try:
        generation_request = validate_generation_payload(body)
    except PayloadValidationError as e:
        logger.info("validation_failed", extra={"error": e.errors})
        return error_response(400, "Validation failed", e.errors)

    status_code, envelope = await service.run(generation_request)
    return JSONResponse(status_code=status_code, content=envelope)
