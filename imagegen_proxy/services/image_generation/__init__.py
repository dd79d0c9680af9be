"""
Image generation: upstream client and its result/error types.
"""
from .base import (
    GeneratedImage,
    ImageGenerationError,
    encode_data_uri,
)
from .client import ImageGenerationClient, generation_policy

__all__ = [
    "GeneratedImage",
    "ImageGenerationError",
    "encode_data_uri",
    "ImageGenerationClient",
    "generation_policy",
]
