"""OpenAI API strategies: image generation, image editing and vision."""

import asyncio
import logging
from typing import Optional
import openai
from openai import AsyncOpenAI

from src.core.base_strategy import GenerationStrategy, VisionDescriber
from src.core.errors import ProviderError, ProviderErrorKind, classify_message
from src.core.models import GenerationRequest, StrategyOutput
from src.utils.image_utils import b64_to_data_url, detect_mime_type, to_data_url

logger = logging.getLogger(__name__)

PROVIDER = "openai"

_QUOTA_CODES = {"insufficient_quota", "billing_hard_limit_reached", "billing_not_active"}
_POLICY_CODES = {"content_policy_violation", "moderation_blocked"}


def _classify_openai_error(error: Exception) -> ProviderError:
    """Map an OpenAI SDK exception to a structured ProviderError."""
    message = str(error)
    code = getattr(error, "code", None)

    if isinstance(error, (openai.APITimeoutError, asyncio.TimeoutError)):
        return ProviderError(ProviderErrorKind.TIMEOUT, message or "OpenAI request timed out", PROVIDER)
    if code in _QUOTA_CODES:
        return ProviderError(ProviderErrorKind.QUOTA_EXCEEDED, message, PROVIDER)
    if code in _POLICY_CODES:
        return ProviderError(ProviderErrorKind.CONTENT_POLICY, message, PROVIDER)
    if isinstance(error, openai.RateLimitError):
        # Per-minute throttling unless the text names the quota
        kind = classify_message(message)
        if kind is not ProviderErrorKind.QUOTA_EXCEEDED:
            kind = ProviderErrorKind.INTERNAL
        return ProviderError(kind, message, PROVIDER)
    if isinstance(error, openai.AuthenticationError):
        return ProviderError(ProviderErrorKind.UNCONFIGURED, message, PROVIDER)
    if isinstance(error, openai.PermissionDeniedError):
        kind = classify_message(message)
        if kind is ProviderErrorKind.INTERNAL:
            kind = ProviderErrorKind.VERIFICATION_REQUIRED
        return ProviderError(kind, message, PROVIDER)

    return ProviderError(classify_message(message), message, PROVIDER)


def _create_client(api_key: Optional[str], timeout: float) -> Optional[AsyncOpenAI]:
    # The pipeline never re-attempts a strategy, so SDK-level retries are off
    if not api_key:
        return None
    return AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)


async def _ping(client: Optional[AsyncOpenAI], model: str) -> bool:
    """Lightweight health check: retrieve the configured model."""
    if client is None:
        return False
    try:
        await client.models.retrieve(model)
        return True
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        return False


class OpenAIImageStrategy(GenerationStrategy):
    """Text-to-image generation with the OpenAI Images API.

    Used twice in the default chain: once with the newer image model at a
    cheap quality setting, and once with the legacy model as the final,
    context-free fallback.

    Attributes:
        model: Image model (e.g. "gpt-image-1", "dall-e-3")
        quality: Quality setting passed through to the API
        size: Output size
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-image-1",
        quality: Optional[str] = "low",
        size: str = "1024x1024",
        strategy_name: str = "openai_image",
        final_fallback: bool = False,
        timeout: float = 60.0
    ):
        super().__init__(api_key)
        self.model = model
        self.quality = quality
        self.size = size
        self._name = strategy_name
        self.is_final_fallback = final_fallback
        self.client = _create_client(api_key, timeout)
        logger.info(f"Initialized OpenAI image strategy '{strategy_name}' with model: {model}")

    @property
    def name(self) -> str:
        return self._name

    @property
    def provider(self) -> str:
        return PROVIDER

    def _build_params(self, prompt: str) -> dict:
        params = {
            "model": self.model,
            "prompt": prompt,
            "size": self.size,
            "n": 1,
        }
        if self.quality:
            params["quality"] = self.quality
        if self.model == "dall-e-3":
            params["style"] = "vivid"
        return params

    async def attempt(self, request: GenerationRequest, prompt: str) -> StrategyOutput:
        """Generate an image from the prompt.

        Raises:
            ProviderError: If the OpenAI call fails or returns no image
        """
        if self.client is None:
            raise ProviderError(ProviderErrorKind.UNCONFIGURED, "OpenAI API key not configured", PROVIDER)

        logger.info(f"Generating text-to-image with {self.model}: {prompt[:50]}...")
        try:
            response = await self.client.images.generate(**self._build_params(prompt))
        except Exception as e:
            logger.error(f"OpenAI image generation failed: {e}")
            raise _classify_openai_error(e) from e

        return _image_output(response, self.model, "text-to-image")

    async def health_check(self) -> bool:
        return await _ping(self.client, self.model)


class OpenAIImageEditStrategy(GenerationStrategy):
    """True image-to-image editing of the uploaded photo."""

    requires_image = True

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-image-1",
        size: str = "1024x1024",
        timeout: float = 60.0
    ):
        super().__init__(api_key)
        self.model = model
        self.size = size
        self.client = _create_client(api_key, timeout)
        logger.info(f"Initialized OpenAI edit strategy with model: {model}")

    @property
    def name(self) -> str:
        return "openai_edit"

    @property
    def provider(self) -> str:
        return PROVIDER

    async def attempt(self, request: GenerationRequest, prompt: str) -> StrategyOutput:
        """Edit the uploaded image according to the prompt.

        Raises:
            ProviderError: If no image was supplied or the OpenAI call fails
        """
        if self.client is None:
            raise ProviderError(ProviderErrorKind.UNCONFIGURED, "OpenAI API key not configured", PROVIDER)
        if not request.image:
            raise ProviderError(ProviderErrorKind.INTERNAL, "Image editing requires an input image", PROVIDER)

        mime_type = detect_mime_type(request.image)
        extension = mime_type.split("/", 1)[1]
        logger.info(f"Editing uploaded image with {self.model}: {prompt[:50]}...")
        try:
            response = await self.client.images.edit(
                model=self.model,
                image=(f"upload.{extension}", request.image, mime_type),
                prompt=prompt,
                size=self.size,
                n=1,
            )
        except Exception as e:
            logger.error(f"OpenAI image edit failed: {e}")
            raise _classify_openai_error(e) from e

        return _image_output(response, self.model, "image-to-image")

    async def health_check(self) -> bool:
        return await _ping(self.client, self.model)


def _image_output(response, model: str, generation_type: str) -> StrategyOutput:
    """Turn an Images API response into a StrategyOutput."""
    if not response.data:
        raise ProviderError(ProviderErrorKind.INTERNAL, "OpenAI returned no image data", PROVIDER)

    item = response.data[0]
    if item.url:
        image_url = item.url
    elif item.b64_json:
        image_url = b64_to_data_url(item.b64_json)
    else:
        raise ProviderError(ProviderErrorKind.INTERNAL, "OpenAI returned neither URL nor image data", PROVIDER)

    logger.info(f"OpenAI {generation_type} successful ({model})")
    return StrategyOutput(
        image_url=image_url,
        revised_prompt=getattr(item, "revised_prompt", None),
        metadata={"model": model, "generation_type": generation_type},
    )


class OpenAIVisionDescriber(VisionDescriber):
    """Describes an uploaded photo with a vision-capable chat model."""

    def __init__(self, api_key: Optional[str], model: str = "gpt-4o-mini", timeout: float = 30.0):
        super().__init__(api_key)
        self.model = model
        self.client = _create_client(api_key, timeout)

    @property
    def name(self) -> str:
        return "openai_vision"

    async def describe(self, image: bytes, instruction: str) -> str:
        if self.client is None:
            raise ProviderError(ProviderErrorKind.UNCONFIGURED, "OpenAI API key not configured", PROVIDER)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": instruction},
                            {"type": "image_url", "image_url": {"url": to_data_url(image)}},
                        ],
                    }
                ],
                max_tokens=200,
            )
        except Exception as e:
            logger.warning(f"OpenAI vision failed: {e}")
            raise _classify_openai_error(e) from e

        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not text:
            raise ProviderError(ProviderErrorKind.INTERNAL, "OpenAI vision returned no text", PROVIDER)
        return text
