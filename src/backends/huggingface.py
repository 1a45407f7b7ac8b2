"""HuggingFace Inference API strategies: captioning and text-to-image."""

import asyncio
import logging
from typing import Optional
from huggingface_hub import AsyncInferenceClient, InferenceTimeoutError, model_info
from huggingface_hub.utils import HfHubHTTPError

from src.core.base_strategy import GenerationStrategy, VisionDescriber
from src.core.errors import ProviderError, ProviderErrorKind, classify_message
from src.core.models import GenerationRequest, StrategyOutput
from src.utils.image_utils import pil_to_data_url

logger = logging.getLogger(__name__)

PROVIDER = "huggingface"


def _classify_hf_error(error: Exception) -> ProviderError:
    """Map a HuggingFace failure to a structured ProviderError."""
    message = str(error)

    if isinstance(error, (InferenceTimeoutError, asyncio.TimeoutError)):
        return ProviderError(ProviderErrorKind.TIMEOUT, message or "HuggingFace request timed out", PROVIDER)

    if isinstance(error, HfHubHTTPError) and error.response is not None:
        status = error.response.status_code
        if status in (401, 403):
            return ProviderError(ProviderErrorKind.UNCONFIGURED, message, PROVIDER)
        if status in (402, 429):
            # Free-tier inference credits exhausted
            return ProviderError(ProviderErrorKind.QUOTA_EXCEEDED, message, PROVIDER)

    return ProviderError(classify_message(message), message, PROVIDER)


class HuggingFaceImageStrategy(GenerationStrategy):
    """Text-to-image generation using HuggingFace's serverless inference API.

    The API returns a PIL image, which is returned to the caller inline as a
    PNG data URL.

    Attributes:
        api_key: HuggingFace API token
        model: The model ID to use for generation
        client: AsyncInferenceClient instance (None when unconfigured)
    """

    DEFAULT_MODEL = "black-forest-labs/FLUX.1-schnell"

    def __init__(self, api_key: Optional[str], model: Optional[str] = None, timeout: float = 60.0):
        super().__init__(api_key)
        self.model = model or self.DEFAULT_MODEL
        self.client = AsyncInferenceClient(token=api_key, timeout=timeout) if api_key else None
        logger.info(f"Initialized HuggingFace strategy with model: {self.model}")

    @property
    def name(self) -> str:
        return "huggingface_flux"

    @property
    def provider(self) -> str:
        return PROVIDER

    async def attempt(self, request: GenerationRequest, prompt: str) -> StrategyOutput:
        """Generate an image using HuggingFace Inference API.

        Raises:
            ProviderError: If image generation fails
        """
        if self.client is None:
            raise ProviderError(ProviderErrorKind.UNCONFIGURED, "HuggingFace token not configured", PROVIDER)

        logger.info(f"Generating text-to-image with prompt: {prompt[:50]}...")
        try:
            image = await self.client.text_to_image(prompt, model=self.model)
        except Exception as e:
            logger.error(f"HuggingFace API error: {e}")
            raise _classify_hf_error(e) from e

        return StrategyOutput(
            image_url=pil_to_data_url(image),
            metadata={
                "model": self.model,
                "generation_type": "text-to-image",
                "width": image.width,
                "height": image.height,
            }
        )

    async def health_check(self) -> bool:
        """Check if the HuggingFace API is accessible.

        Returns:
            True if the strategy is healthy, False otherwise
        """
        if not self.api_key:
            return False
        try:
            # Model info is a lightweight authenticated call
            await asyncio.to_thread(model_info, self.model, token=self.api_key)
            return True
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return False


class HuggingFaceCaptioner(VisionDescriber):
    """Image captioning, used when the OpenAI vision model is unavailable.

    Captioning models ignore instructions, so the caption is always a plain
    description regardless of the requested vision mode.
    """

    DEFAULT_MODEL = "Salesforce/blip-image-captioning-large"
    follows_instructions = False

    def __init__(self, api_key: Optional[str], model: Optional[str] = None, timeout: float = 30.0):
        super().__init__(api_key)
        self.model = model or self.DEFAULT_MODEL
        self.client = AsyncInferenceClient(token=api_key, timeout=timeout) if api_key else None

    @property
    def name(self) -> str:
        return "huggingface_caption"

    async def describe(self, image: bytes, instruction: str) -> str:
        if self.client is None:
            raise ProviderError(ProviderErrorKind.UNCONFIGURED, "HuggingFace token not configured", PROVIDER)

        try:
            output = await self.client.image_to_text(image, model=self.model)
        except Exception as e:
            logger.warning(f"HuggingFace captioning failed: {e}")
            raise _classify_hf_error(e) from e

        text = getattr(output, "generated_text", output)
        text = (text or "").strip() if isinstance(text, str) else ""
        if not text:
            raise ProviderError(ProviderErrorKind.INTERNAL, "HuggingFace captioning returned no text", PROVIDER)
        return text
