"""
Response envelopes for POST /generate-image.

Shapes:
- generation failed:   {success: false, error, details}
- uploaded:            {success: true, data: {base64, parameters, publicUrl}}
- upload failed:       {success: true, data: {base64, parameters, warnings, uploadError}}
                       (no publicUrl key at all)
"""
from typing import Any

from imagegen_proxy.schemas.generation import GenerationRequest
from imagegen_proxy.services.image_generation import GeneratedImage, ImageGenerationError
from imagegen_proxy.storage.base import UploadOutcome

UPLOAD_WARNING = "Failed to upload to public storage service - base64 image still available"


def compose_generation_failure(error: ImageGenerationError) -> dict[str, Any]:
    return {
        "success": False,
        "error": error.message,
        "details": error.details,
    }


def compose_generation_success(
    request: GenerationRequest,
    image: GeneratedImage,
    upload: UploadOutcome,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "base64": image.data_uri,
        "parameters": request.echo_parameters(),
    }
    if upload.ok:
        data["publicUrl"] = upload.url
    else:
        data["warnings"] = [UPLOAD_WARNING]
        data["uploadError"] = upload.error_payload()
    return {"success": True, "data": data}
