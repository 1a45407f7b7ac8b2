"""Replicate API strategies (hosted diffusion models)."""

import asyncio
import logging
import random
from typing import Optional, Any
import httpx
import replicate
from replicate.exceptions import ReplicateError, ModelError

from src.core.base_strategy import GenerationStrategy
from src.core.errors import ProviderError, ProviderErrorKind, classify_message
from src.core.models import GenerationRequest, StrategyOutput
from src.utils.image_utils import to_data_url

logger = logging.getLogger(__name__)

PROVIDER = "replicate"


def _classify_replicate_error(error: Exception) -> ProviderError:
    """Map a Replicate failure to a structured ProviderError."""
    message = str(error)

    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return ProviderError(ProviderErrorKind.TIMEOUT, message or "Replicate request timed out", PROVIDER)

    if isinstance(error, ModelError):
        # Prediction ran but failed; safety checker rejections land here
        if "nsfw" in message.lower():
            return ProviderError(ProviderErrorKind.CONTENT_POLICY, message, PROVIDER)
        return ProviderError(classify_message(message), message, PROVIDER)

    if isinstance(error, ReplicateError):
        status = getattr(error, "status", None)
        if status == 402:
            return ProviderError(ProviderErrorKind.QUOTA_EXCEEDED, message, PROVIDER)
        if status in (401, 403):
            return ProviderError(ProviderErrorKind.UNCONFIGURED, message, PROVIDER)
        if status == 422 and "nsfw" in message.lower():
            return ProviderError(ProviderErrorKind.CONTENT_POLICY, message, PROVIDER)

    return ProviderError(classify_message(message), message, PROVIDER)


def _output_url(output: Any) -> str:
    """Normalize Replicate output (URL, FileOutput or a list of them) to a URL."""
    if isinstance(output, (list, tuple)):
        if not output:
            raise ProviderError(
                ProviderErrorKind.INTERNAL, "No output generated from Replicate", PROVIDER
            )
        output = output[0]

    if output is None:
        raise ProviderError(ProviderErrorKind.INTERNAL, "No output generated from Replicate", PROVIDER)

    url = getattr(output, "url", None) or str(output)
    if not url:
        raise ProviderError(ProviderErrorKind.INTERNAL, "Empty output URL from Replicate", PROVIDER)
    return str(url)


class ReplicateImageStrategy(GenerationStrategy):
    """Text-to-image generation on Replicate.

    FLUX.1-schnell is the fastest high-quality model on Replicate, so this
    is the primary strategy in the default chain.

    Attributes:
        api_key: Replicate API token
        model: The model to run
        client: Replicate client instance (None when unconfigured)
    """

    DEFAULT_MODEL = "black-forest-labs/flux-schnell"

    def __init__(self, api_key: Optional[str], model: Optional[str] = None, timeout: float = 60.0):
        """Initialize the Replicate strategy.

        Args:
            api_key: Replicate API token
            model: Optional model identifier (defaults to FLUX.1-schnell)
            timeout: HTTP timeout in seconds
        """
        super().__init__(api_key)
        self.model = model or self.DEFAULT_MODEL
        self.client = replicate.Client(api_token=api_key, timeout=timeout) if api_key else None
        logger.info(f"Initialized Replicate strategy with model: {self.model}")

    @property
    def name(self) -> str:
        return "replicate_flux"

    @property
    def provider(self) -> str:
        return PROVIDER

    def _build_input(self, request: GenerationRequest, prompt: str) -> dict:
        input_params = {
            "prompt": prompt,
            "num_outputs": 1,
        }
        # FLUX models: max 4 steps for schnell, aspect ratio instead of width/height
        if "flux" in self.model.lower():
            input_params["num_inference_steps"] = 4
            input_params["aspect_ratio"] = "1:1"
            input_params["output_format"] = "png"
        else:
            input_params["width"] = 1024
            input_params["height"] = 1024
        return input_params

    async def attempt(self, request: GenerationRequest, prompt: str) -> StrategyOutput:
        """Generate a meme with Replicate.

        Raises:
            ProviderError: If the Replicate call fails
        """
        if self.client is None:
            raise ProviderError(ProviderErrorKind.UNCONFIGURED, "Replicate API token not configured", PROVIDER)

        input_params = self._build_input(request, prompt)
        logger.debug(f"Calling Replicate API with params: {list(input_params.keys())}")

        try:
            output = await self.client.async_run(self.model, input=input_params)
        except Exception as e:
            logger.error(f"Replicate API error: {e}")
            raise _classify_replicate_error(e) from e

        image_url = _output_url(output)
        logger.info(f"Replicate generation successful ({self.model})")

        return StrategyOutput(
            image_url=image_url,
            metadata={
                "model": self.model,
                "generation_type": "image-to-image" if "image" in input_params else "text-to-image",
            }
        )

    async def health_check(self) -> bool:
        """Check if the Replicate API is accessible.

        Returns:
            True if the strategy is healthy, False otherwise
        """
        if self.client is None:
            return False
        try:
            logger.debug("Performing health check...")
            # Listing models verifies API key and connectivity
            await asyncio.to_thread(lambda: next(iter(self.client.models.list())))
            logger.debug("Health check passed")
            return True
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            return False


class ReplicateImg2ImgStrategy(ReplicateImageStrategy):
    """Image-to-image meme generation with SDXL on Replicate."""

    DEFAULT_MODEL = (
        "stability-ai/sdxl:39ed52f2a78e934b3ba6e2a89f5b1c712de7dfea535525255b1aa35c5565e08b"
    )
    NEGATIVE_PROMPT = "blurry, low quality, distorted, nsfw, inappropriate"

    requires_image = True

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        timeout: float = 60.0,
        strength: float = 0.6
    ):
        super().__init__(api_key, model=model, timeout=timeout)
        self.strength = strength

    @property
    def name(self) -> str:
        return "replicate_sdxl"

    def _build_input(self, request: GenerationRequest, prompt: str) -> dict:
        return {
            "image": to_data_url(request.image),
            "prompt": prompt,
            "negative_prompt": self.NEGATIVE_PROMPT,
            "num_outputs": 1,
            "guidance_scale": 7.5,
            "num_inference_steps": 20,
            "prompt_strength": self.strength,
            "seed": random.randint(0, 999999),
        }
