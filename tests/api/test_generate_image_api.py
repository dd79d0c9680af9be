"""End-to-end tests for the HTTP surface with both upstreams mocked."""
import base64
import json
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

from imagegen_proxy.core.config import Settings
from imagegen_proxy.main import create_app
from imagegen_proxy.services.generation.service import GenerationService

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x02" * 128
PREFIX = "https://files.host.test/"


def _settings(**overrides) -> Settings:
    values = dict(
        ai_service_url="https://gen.test",
        storage_service_url="https://host.test/api.php",
        storage_files_url_prefix=PREFIX,
        generation_base_delay_seconds=0.0,
        generation_rate_limit_delay_seconds=0.0,
        upload_base_delay_seconds=0.0,
        metrics_enabled=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class Upstreams:
    """Routes mocked calls to the generator or the file host and records them."""

    def __init__(self, generation=None, upload=None):
        self.generation = generation or (
            lambda request: httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})
        )
        self.upload = upload or (lambda request: httpx.Response(200, text="gen42.png"))
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if request.url.host == "gen.test":
            return self.generation(request)
        return self.upload(request)

    def hosts(self) -> list[str]:
        return [request.url.host for request in self.calls]


def _client(upstreams: Upstreams, **overrides) -> TestClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstreams))
    return TestClient(create_app(_settings(**overrides), http_client=http_client))


class TestSurface:
    def test_index_lists_endpoints(self):
        response = _client(Upstreams()).get("/")
        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert "POST /generate-image" in payload["endpoints"]

    def test_security_and_cors_headers_on_every_response(self):
        client = _client(Upstreams())
        for response in (client.get("/"), client.get("/nope"), client.post("/generate-image", content=b"{")):
            assert response.headers["x-content-type-options"] == "nosniff"
            assert response.headers["x-frame-options"] == "DENY"
            assert response.headers["strict-transport-security"].startswith("max-age=")
            assert "default-src 'self'" in response.headers["content-security-policy"]
            assert response.headers["access-control-allow-origin"] == "*"
            assert response.headers["x-request-id"]

    def test_request_id_is_echoed(self):
        response = _client(Upstreams()).get("/", headers={"X-Request-Id": "req-1"})
        assert response.headers["x-request-id"] == "req-1"

    def test_options_preflight(self):
        response = _client(Upstreams()).options("/generate-image")
        assert response.status_code == 204
        assert response.content == b""
        assert "POST" in response.headers["access-control-allow-methods"]
        assert "Content-Type" in response.headers["access-control-allow-headers"]

    @pytest.mark.parametrize("method,path", [("GET", "/missing"), ("GET", "/generate-image"), ("DELETE", "/")])
    def test_unknown_endpoint(self, method, path):
        response = _client(Upstreams()).request(method, path)
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Endpoint not found"}

    def test_missing_configuration(self):
        upstreams = Upstreams()
        client = _client(upstreams, storage_service_url="")
        for response in (client.get("/"), client.post("/generate-image", json={"prompt": "cat"})):
            assert response.status_code == 500
            assert response.json() == {
                "success": False,
                "error": "Configuration error: Missing required environment variable: STORAGE_SERVICE_URL",
            }
        assert upstreams.calls == []

    def test_metrics_endpoint(self):
        response = _client(Upstreams(), metrics_enabled=True).get("/metrics")
        assert response.status_code == 200
        assert "upstream_attempts_total" in response.text


class TestRequestGuards:
    def test_oversized_body_is_rejected_before_upstream_calls(self):
        upstreams = Upstreams()
        body = b'{"prompt": "' + b"a" * (2_000_000 - 14) + b'"}'
        assert len(body) == 2_000_000

        response = _client(upstreams).post(
            "/generate-image", content=body, headers={"content-type": "application/json"}
        )

        assert response.status_code == 413
        assert response.json()["success"] is False
        assert upstreams.calls == []

    def test_malformed_json(self):
        response = _client(Upstreams()).post("/generate-image", content=b"{not json")
        assert response.status_code == 400
        payload = response.json()
        assert payload["error"] == "Invalid JSON in request body"
        assert payload["details"]

    def test_validation_reports_every_violation(self):
        upstreams = Upstreams()
        response = _client(upstreams).post(
            "/generate-image", json={"prompt": "", "width": 10, "model": "bogus"}
        )
        assert response.status_code == 400
        payload = response.json()
        assert payload["error"] == "Validation failed"
        assert len(payload["details"]) >= 3
        assert upstreams.calls == []


class TestGeneration:
    def test_generated_and_uploaded(self):
        upstreams = Upstreams()
        response = _client(upstreams).post(
            "/generate-image", json={"prompt": "<script>alert(1)</script> cat", "seed": 7}
        )

        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        data = payload["data"]
        assert data["base64"].startswith("data:image/png;base64,")
        assert base64.b64decode(data["base64"].split(",", 1)[1]) == PNG_BYTES
        assert data["publicUrl"] == PREFIX + "gen42.png"
        assert "warnings" not in data
        assert "uploadError" not in data
        assert data["parameters"] == {
            "prompt": "scriptalert(1)/script cat",
            "width": 1024,
            "height": 1024,
            "model": "flux",
            "seed": 7,
        }
        assert upstreams.hosts() == ["gen.test", "host.test"]
        assert upstreams.calls[0].url.path == "/prompt/scriptalert(1)/script cat"

    def test_upload_failure_degrades_to_base64_only(self):
        upstreams = Upstreams(upload=lambda request: httpx.Response(503, text="down"))
        response = _client(upstreams).post("/generate-image", json={"prompt": "cat", "enhance": True})

        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        data = payload["data"]
        assert data["base64"].startswith("data:image/png;base64,")
        assert "publicUrl" not in data
        assert len(data["warnings"]) >= 1
        assert data["uploadError"]["attempts"] == 3
        assert data["parameters"]["enhance"] is True
        assert upstreams.hosts() == ["gen.test", "host.test", "host.test", "host.test"]

    def test_generation_failure_after_all_attempts(self):
        upstreams = Upstreams(generation=lambda request: httpx.Response(500))
        response = _client(upstreams).post("/generate-image", json={"prompt": "cat"})

        assert response.status_code == 500
        payload = response.json()
        assert payload["success"] is False
        assert payload["error"] == "Failed to generate image after multiple attempts"
        assert payload["details"]["attempts"] == 4
        assert "data" not in payload
        # upload never starts without an image
        assert upstreams.hosts() == ["gen.test"] * 4

    def test_generation_rate_limited(self):
        upstreams = Upstreams(generation=lambda request: httpx.Response(429))
        response = _client(upstreams).post("/generate-image", json={"prompt": "cat"})
        assert response.status_code == 500
        assert response.json()["details"]["failureType"] == "rate_limited"
        assert len(upstreams.calls) == 4

    def test_non_image_payload_fails_fast(self):
        upstreams = Upstreams(
            generation=lambda request: httpx.Response(200, text=json.dumps({"error": "nsfw"}), headers={"content-type": "application/json"})
        )
        response = _client(upstreams).post("/generate-image", json={"prompt": "cat"})
        assert response.status_code == 500
        payload = response.json()
        assert payload["error"] == "Failed to generate image"
        assert payload["details"]["attempts"] == 1

    def test_unexpected_exception_becomes_internal_error(self):
        client = _client(Upstreams())
        with patch.object(GenerationService, "run", side_effect=RuntimeError("boom")):
            response = client.post("/generate-image", json={"prompt": "cat"})
        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Internal server error", "details": "boom"}
        assert response.headers["x-frame-options"] == "DENY"
