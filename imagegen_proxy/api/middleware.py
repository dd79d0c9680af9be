"""
HTTP middleware: CORS preflight, configuration guard, security headers,
request ids and access logging. Applied to every response, errors included.
"""
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request, Response

from imagegen_proxy.api.responses import error_response
from imagegen_proxy.utils.metrics import http_request_duration_seconds

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

SECURITY_HEADERS = {
    "X-XSS-Protection": "1; mode=block",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'; script-src 'self'; object-src 'none';",
}


def install_middleware(app: FastAPI, config_missing: list[str], request_id_header: str) -> None:
    @app.middleware("http")
    async def public_api_middleware(request: Request, call_next) -> Response:
        started = time.perf_counter()
        request_id = request.headers.get(request_id_header) or uuid4().hex

        if request.method == "OPTIONS":
            response: Response = Response(status_code=204)
        elif config_missing:
            response = error_response(
                500,
                f"Configuration error: Missing required environment variable: {config_missing[0]}",
            )
        else:
            try:
                response = await call_next(request)
            except Exception as e:
                logger.exception(
                    "unhandled_error",
                    extra={"request_id": request_id, "path": request.url.path, "error": type(e).__name__},
                )
                response = error_response(500, "Internal server error", str(e))

        response.headers.update(CORS_HEADERS)
        response.headers.update(SECURITY_HEADERS)
        response.headers[request_id_header] = request_id

        latency = time.perf_counter() - started
        http_request_duration_seconds.labels(
            method=request.method, status=str(response.status_code)
        ).observe(latency)
        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "latency_ms": round(latency * 1000, 1),
            },
        )
        return response
