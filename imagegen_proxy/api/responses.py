from typing import Any

from fastapi.responses import JSONResponse


def error_response(status_code: int, error: str, details: Any = None) -> JSONResponse:
    """{success: false, error[, details]} with the given status."""
    content: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)
