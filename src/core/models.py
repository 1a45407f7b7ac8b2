"""Core data models for meme generation."""

import base64
import binascii
import re
from datetime import datetime
from typing import Optional, Dict, Any, List, Literal
from pydantic import BaseModel, Field

from src.core.errors import InputValidationError

MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10MB

_DATA_URL_PREFIX = re.compile(r'^data:image/[a-zA-Z0-9.+-]+;base64,')


def decode_image_payload(payload: str) -> bytes:
    """Decode a base64 image payload, optionally data-URL prefixed.

    Args:
        payload: Base64 string as sent by the browser

    Returns:
        Raw image bytes

    Raises:
        InputValidationError: If the payload is not valid base64 or exceeds 10MB
    """
    base64_data = _DATA_URL_PREFIX.sub('', payload.strip(), count=1)
    try:
        image_bytes = base64.b64decode(base64_data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InputValidationError("Invalid image format") from e

    if not image_bytes:
        raise InputValidationError("Invalid image format")

    if len(image_bytes) > MAX_IMAGE_BYTES:
        raise InputValidationError("Image too large. Maximum size is 10MB.")

    return image_bytes


class GenerationRequest(BaseModel):
    """Request model for meme generation.

    Attributes:
        image: Optional raw bytes of the uploaded photo
        prompt: Optional free-text instructions from the visitor
        style: Style tag appended to the prompt
        provider: Preferred provider ("auto" keeps the configured order)
    """

    image: Optional[bytes] = Field(
        default=None,
        description="Raw bytes of the uploaded photo"
    )
    prompt: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Free-text instructions for the meme"
    )
    style: str = Field(
        default="meme",
        max_length=100,
        description="Style tag for the meme"
    )
    provider: Literal["auto", "openai", "replicate"] = Field(
        default="auto",
        description="Preferred AI provider"
    )

    @property
    def has_image(self) -> bool:
        """Whether an input image was supplied."""
        return bool(self.image)

    @classmethod
    def from_payload(
        cls,
        image: Optional[str] = None,
        prompt: Optional[str] = None,
        style: Optional[str] = None,
        provider: Optional[str] = None
    ) -> "GenerationRequest":
        """Build a request from the JSON body fields of the HTTP endpoint.

        Raises:
            InputValidationError: If the image payload is invalid or too large
        """
        image_bytes = decode_image_payload(image) if image else None
        return cls(
            image=image_bytes,
            prompt=prompt.strip() if prompt and prompt.strip() else None,
            style=style or "meme",
            provider=provider or "auto",
        )

    class Config:
        json_schema_extra = {
            "example": {
                "prompt": "When the coffee kicks in on a Monday",
                "style": "meme",
                "provider": "auto"
            }
        }


class GenerationAttempt(BaseModel):
    """Outcome of one strategy within a pipeline run."""

    strategy: str = Field(..., description="Strategy name")
    provider: str = Field(..., description="Provider behind the strategy")
    success: bool = Field(..., description="Whether the strategy produced an image")
    error: Optional[str] = Field(default=None, description="Raw failure message")
    error_kind: Optional[str] = Field(default=None, description="Structured failure category")
    duration_ms: int = Field(default=0, ge=0, description="Time spent in the strategy")


class StrategyOutput(BaseModel):
    """What a single successful strategy returns to the pipeline."""

    image_url: str = Field(..., description="Remote URL or data: URL of the image")
    revised_prompt: Optional[str] = Field(default=None)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class VisionResult(BaseModel):
    """Text derived from the uploaded image by a vision-capable model."""

    text: str
    mode: Literal["description", "prompt"] = "description"
    source: str = Field(..., description="Describer that produced the text, or 'fallback'")
    used_fallback: bool = False


class GenerationResult(BaseModel):
    """Response model for a generated meme.

    Attributes:
        image_url: Remote URL or inline data URL of the meme
        provider: Provider that produced the image
        strategy: Strategy that produced the image
        prompt_used: Effective prompt sent to the provider
        revised_prompt: Prompt as rewritten by the provider, if any
        used_vision: Whether a vision-derived description or prompt was used
        attempts: Ordered trace of strategy outcomes
        generation_time: When the meme was generated
        metadata: Additional information about the generation
    """

    image_url: str = Field(..., description="Remote URL or data URL of the meme")
    provider: str = Field(..., description="Provider that produced the image")
    strategy: str = Field(..., description="Strategy that produced the image")
    prompt_used: str = Field(..., description="Effective prompt sent to the provider")
    revised_prompt: Optional[str] = Field(default=None)
    used_vision: bool = Field(default=False)
    attempts: List[GenerationAttempt] = Field(default_factory=list)
    generation_time: datetime = Field(default_factory=datetime.now)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "image_url": "https://replicate.delivery/pbxt/abc/out-0.webp",
                "provider": "replicate",
                "strategy": "replicate_flux",
                "prompt_used": "Create a funny internet meme ...",
                "revised_prompt": None,
                "used_vision": True,
                "attempts": [
                    {"strategy": "replicate_flux", "provider": "replicate", "success": True}
                ],
                "generation_time": "2025-11-30T12:00:00",
                "metadata": {"model": "black-forest-labs/flux-schnell"}
            }
        }
