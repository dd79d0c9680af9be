"""
Request contract for POST /generate-image: GenerationRequest, payload
validation (every violation is reported) and prompt sanitization.
"""
import re
from typing import Any, Literal, get_args

from pydantic import BaseModel, Field


ModelName = Literal["flux", "kontext", "turbo", "nanobanana"]
ALLOWED_MODELS: tuple[str, ...] = get_args(ModelName)
MAX_PROMPT_LENGTH = 1000
MIN_DIMENSION = 64
MAX_DIMENSION = 2048

_ANGLE_BRACKETS_RE = re.compile(r"[<>]")
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"on\w+=", re.IGNORECASE)


class GenerationRequest(BaseModel):
    """Validated generation parameters; prompt is already sanitized.

    model_fields_set records which optional fields the caller supplied, so
    seed/enhance are echoed back only when given.
    """

    prompt: str = Field(..., min_length=1, max_length=MAX_PROMPT_LENGTH)
    width: int = Field(1024, ge=MIN_DIMENSION, le=MAX_DIMENSION)
    height: int = Field(1024, ge=MIN_DIMENSION, le=MAX_DIMENSION)
    model: ModelName = "flux"
    seed: int | None = Field(None, ge=0)
    enhance: bool = False

    model_config = {"frozen": True}

    def echo_parameters(self) -> dict[str, Any]:
        """Parameters for the response: always prompt/size/model, plus explicit extras."""
        params: dict[str, Any] = {
            "prompt": self.prompt,
            "width": self.width,
            "height": self.height,
            "model": self.model,
        }
        if "seed" in self.model_fields_set:
            params["seed"] = self.seed
        if "enhance" in self.model_fields_set:
            params["enhance"] = self.enhance
        return params


class PayloadValidationError(ValueError):
    """Client payload violates the request contract; errors keeps every message."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


def sanitize_prompt(prompt: str) -> str:
    """Strip markup-ish fragments from a prompt. Idempotent."""
    cleaned = prompt
    # Removing one pattern can join fragments into another; repeat until stable.
    while True:
        previous = cleaned
        cleaned = _ANGLE_BRACKETS_RE.sub("", cleaned)
        cleaned = _JS_PROTOCOL_RE.sub("", cleaned)
        cleaned = _EVENT_HANDLER_RE.sub("", cleaned)
        cleaned = cleaned.strip()
        if cleaned == previous:
            return cleaned


def _as_int(value: Any) -> int | None:
    """JSON integer (integral floats included, booleans excluded) or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _check_dimension(body: dict[str, Any], key: str, errors: list[str]) -> None:
    if key not in body:
        return
    value = _as_int(body[key])
    if value is None or not MIN_DIMENSION <= value <= MAX_DIMENSION:
        errors.append(
            f"{key.capitalize()} must be an integer between {MIN_DIMENSION} and {MAX_DIMENSION}"
        )


def collect_validation_errors(body: Any) -> list[str]:
    """Return every contract violation in body, in field order. Empty means valid."""
    if not isinstance(body, dict):
        return ["Request body must be a JSON object"]

    errors: list[str] = []

    prompt = body.get("prompt")
    if not prompt or not isinstance(prompt, str):
        errors.append("Prompt is required and must be a string")
    elif len(prompt) > MAX_PROMPT_LENGTH:
        errors.append(f"Prompt must be {MAX_PROMPT_LENGTH} characters or less")
    elif not prompt.strip():
        errors.append("Prompt cannot be empty")

    _check_dimension(body, "width", errors)
    _check_dimension(body, "height", errors)

    if "model" in body and body["model"] not in ALLOWED_MODELS:
        errors.append(f"Model must be one of: {', '.join(ALLOWED_MODELS)}")

    if "seed" in body:
        seed = _as_int(body["seed"])
        if seed is None or seed < 0:
            errors.append("Seed must be a non-negative integer")

    if "enhance" in body and not isinstance(body["enhance"], bool):
        errors.append("Enhance must be a boolean")

    return errors


def validate_generation_payload(body: Any) -> GenerationRequest:
    """
    Validate a parsed JSON body and build a GenerationRequest with the
    sanitized prompt.

    Raises:
        PayloadValidationError: with all collected messages
    """
    errors = collect_validation_errors(body)
    if errors:
        raise PayloadValidationError(errors)

    prompt = sanitize_prompt(body["prompt"])
    if not prompt:
        raise PayloadValidationError(["Prompt cannot be empty after sanitization"])

    fields: dict[str, Any] = {"prompt": prompt}
    for key in ("width", "height", "seed"):
        if key in body:
            fields[key] = _as_int(body[key])
    for key in ("model", "enhance"):
        if key in body:
            fields[key] = body[key]
    return GenerationRequest(**fields)
