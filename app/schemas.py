"""Request and response bodies for the HTTP API."""

from datetime import datetime
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field

from src.core.models import GenerationAttempt, GenerationResult
from src.core.mockup import MockupResult, OverlayPosition


class MemeRequest(BaseModel):
    """Body of ``POST /generate-meme``. Every field is optional."""

    image: Optional[str] = Field(
        default=None,
        description="Base64 image, optionally data-URL prefixed"
    )
    prompt: Optional[str] = Field(default=None, max_length=1000)
    style: Optional[str] = Field(default=None, max_length=100)
    provider: Optional[Literal["auto", "openai", "replicate"]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "image": "data:image/png;base64,iVBORw0KGgo...",
                "prompt": "When the coffee kicks in on a Monday",
                "style": "meme",
                "provider": "auto"
            }
        }


class MemeResponse(BaseModel):
    success: bool = True
    meme_url: str
    provider: str
    strategy: str
    prompt_used: str
    revised_prompt: Optional[str] = None
    used_vision: bool = False
    attempts: List[GenerationAttempt] = Field(default_factory=list)
    generation_time: datetime

    @classmethod
    def from_result(cls, result: GenerationResult) -> "MemeResponse":
        return cls(
            meme_url=result.image_url,
            provider=result.provider,
            strategy=result.strategy,
            prompt_used=result.prompt_used,
            revised_prompt=result.revised_prompt,
            used_vision=result.used_vision,
            attempts=result.attempts,
            generation_time=result.generation_time,
        )


class MockupRequest(BaseModel):
    """Body of ``POST /generate-tshirt-mockup``."""

    meme_url: Optional[str] = None
    tshirt_color: Optional[str] = "white"


class MockupResponse(BaseModel):
    success: bool = True
    mockup_url: str
    meme_overlay: Optional[str] = None
    overlay_position: Optional[OverlayPosition] = None
    provider: str
    tshirt_color: str
    shirt_hex: str
    generation_time: datetime = Field(default_factory=datetime.now)
    note: Optional[str] = None

    @classmethod
    def from_result(cls, result: MockupResult) -> "MockupResponse":
        return cls(**result.model_dump())


class ContactRequest(BaseModel):
    """Body of ``POST /contact``; rules are checked by ``validate_contact``."""

    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None


class ContactResponse(BaseModel):
    success: bool = True
    message: str


class OrderResponse(BaseModel):
    success: bool = True
    message: str
    orderId: str
    details: str
    status: str
    nextSteps: List[str]
    estimatedLaunch: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: Optional[str] = None
    details: Optional[str] = None
    attempts: Optional[List[Dict[str, Any]]] = None
