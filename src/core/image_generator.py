"""Meme generation pipeline with an ordered multi-provider fallback chain."""

import asyncio
import logging
import time
from typing import Optional, List

from src.core.base_strategy import GenerationStrategy, VisionDescriber
from src.core.errors import (
    InputValidationError,
    ProviderError,
    ProviderErrorKind,
    ProviderTimeout,
    ProviderUnconfigured,
    classify_exception,
    generation_error_for,
)
from src.core.models import (
    MAX_IMAGE_BYTES,
    GenerationAttempt,
    GenerationRequest,
    GenerationResult,
    VisionResult,
)
from src.utils.prompt_enhancer import (
    VISION_FALLBACK_PHRASE,
    MemePromptEnhancer,
    VisionMode,
    get_prompt_enhancer,
)

logger = logging.getLogger(__name__)


class MemeGenerator:
    """Orchestrator for meme generation with fallback support.

    Runs an optional vision step, builds the enhanced prompt, then tries each
    strategy in order until one succeeds. Every strategy failure is recorded
    in the attempts trace and control falls through to the next strategy; a
    strategy is never re-attempted. Only exhaustion of the whole chain raises,
    classified from the structured kind of the last failure.

    The whole run executes inside one deadline: when it expires the in-flight
    provider call is cancelled, not merely abandoned.

    Attributes:
        strategies: Ordered strategy chain
        describers: Vision describers, most capable first
        strategy_timeout: Seconds allowed per strategy
        generation_timeout: Seconds allowed for the whole run
    """

    def __init__(
        self,
        strategies: List[GenerationStrategy],
        describers: Optional[List[VisionDescriber]] = None,
        enhancer: Optional[MemePromptEnhancer] = None,
        vision_mode: str = VisionMode.DESCRIPTION.value,
        enable_vision: bool = True,
        strategy_timeout: float = 60.0,
        generation_timeout: float = 120.0
    ):
        """Initialize the meme generator.

        Args:
            strategies: Ordered list of generation strategies
            describers: Optional vision describers for uploaded images
            enhancer: Prompt builder (defaults to the global one)
            vision_mode: "description" or "prompt"
            enable_vision: Whether to run the vision step at all
            strategy_timeout: Per-strategy timeout in seconds
            generation_timeout: Timeout for the whole pipeline in seconds
        """
        self.strategies = list(strategies)
        self.describers = list(describers or [])
        self.enhancer = enhancer or get_prompt_enhancer()
        self.vision_mode = VisionMode(vision_mode)
        self.enable_vision = enable_vision
        self.strategy_timeout = strategy_timeout
        self.generation_timeout = generation_timeout

        logger.info(
            f"Initialized MemeGenerator with strategies: {[s.name for s in self.strategies]}, "
            f"describers: {[d.name for d in self.describers]}"
        )

    def order_strategies(self, request: GenerationRequest) -> List[GenerationStrategy]:
        """Resolve the strategy order for a request.

        A provider preference moves that provider's strategies to the front
        (stable); final-fallback strategies always stay last.
        """
        regular = [s for s in self.strategies if not s.is_final_fallback]
        final = [s for s in self.strategies if s.is_final_fallback]

        if request.provider != "auto":
            preferred = [s for s in regular if s.provider == request.provider]
            others = [s for s in regular if s.provider != request.provider]
            regular = preferred + others

        return regular + final

    def _runnable(self, request: GenerationRequest) -> List[GenerationStrategy]:
        runnable = []
        for strategy in self.order_strategies(request):
            if not strategy.is_configured():
                logger.debug(f"Skipping unconfigured strategy: {strategy.name}")
                continue
            if strategy.requires_image and not request.has_image:
                logger.debug(f"Skipping {strategy.name}: no input image")
                continue
            runnable.append(strategy)
        return runnable

    @staticmethod
    def validate(request: GenerationRequest) -> None:
        """Reject oversized input before any provider is contacted.

        Raises:
            InputValidationError: If the image exceeds 10MB
        """
        if request.image is not None and len(request.image) > MAX_IMAGE_BYTES:
            raise InputValidationError("Image too large. Maximum size is 10MB.")

    async def describe_image(self, image: bytes) -> VisionResult:
        """Run the vision step. Never raises.

        Tries each configured describer in order; if all fail, substitutes the
        fixed humorous fallback phrase.
        """
        instruction = self.enhancer.vision_instruction(self.vision_mode)

        for describer in self.describers:
            if not describer.is_configured():
                continue
            try:
                text = await asyncio.wait_for(
                    describer.describe(image, instruction),
                    timeout=self.strategy_timeout
                )
                mode = self.vision_mode if describer.follows_instructions else VisionMode.DESCRIPTION
                logger.info(f"Vision step succeeded with {describer.name} ({mode.value})")
                return VisionResult(text=text, mode=mode.value, source=describer.name)
            except Exception as e:
                logger.warning(f"Vision describer {describer.name} failed: {e}")

        logger.info("Vision step unavailable, using fallback description")
        return VisionResult(
            text=VISION_FALLBACK_PHRASE,
            mode=VisionMode.DESCRIPTION.value,
            source="fallback",
            used_fallback=True
        )

    def build_prompt(self, request: GenerationRequest, vision: Optional[VisionResult]) -> str:
        """Build the enhanced prompt for the regular strategies."""
        if vision is None:
            return self.enhancer.build_prompt(request.prompt, request.style)
        if vision.mode == VisionMode.PROMPT.value:
            return self.enhancer.build_prompt(request.prompt, request.style, vision_prompt=vision.text)
        return self.enhancer.build_prompt(request.prompt, request.style, image_context=vision.text)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate a meme with automatic fallback.

        Args:
            request: The generation request

        Returns:
            GenerationResult including the attempts trace

        Raises:
            InputValidationError: If the input image is too large
            GenerationError: If every strategy failed (subclass per failure kind)
        """
        self.validate(request)

        attempts: List[GenerationAttempt] = []
        try:
            return await asyncio.wait_for(
                self._run(request, attempts),
                timeout=self.generation_timeout
            )
        except asyncio.TimeoutError:
            message = f"Meme generation exceeded {self.generation_timeout}s"
            logger.error(message)
            raise ProviderTimeout(message, attempts=attempts)

    async def _run(self, request: GenerationRequest, attempts: List[GenerationAttempt]) -> GenerationResult:
        vision = None
        if request.has_image and self.enable_vision:
            vision = await self.describe_image(request.image)

        prompt = self.build_prompt(request, vision)
        strategies = self._runnable(request)

        if not strategies:
            message = "No AI service available. Please configure OpenAI or Replicate API keys."
            logger.error(message)
            raise ProviderUnconfigured(message, attempts=attempts)

        last_error: Optional[ProviderError] = None

        for index, strategy in enumerate(strategies, 1):
            effective_prompt = self.enhancer.build_fallback_prompt() if strategy.is_final_fallback else prompt
            logger.info(f"Attempting strategy {index}/{len(strategies)}: {strategy.name}")
            started = time.monotonic()

            try:
                output = await asyncio.wait_for(
                    strategy.attempt(request, effective_prompt),
                    timeout=self.strategy_timeout
                )
            except asyncio.CancelledError:
                attempts.append(self._attempt(strategy, started, error=ProviderError(
                    ProviderErrorKind.TIMEOUT, "Cancelled: generation deadline exceeded", strategy.provider
                )))
                raise
            except Exception as e:
                last_error = classify_exception(e, strategy.provider)
                attempts.append(self._attempt(strategy, started, error=last_error))
                logger.warning(f"Strategy {strategy.name} failed ({last_error.kind.value}): {last_error}")
                continue

            attempts.append(self._attempt(strategy, started))
            logger.info(f"Successfully generated meme with {strategy.name}")

            metadata = dict(output.metadata)
            if vision is not None:
                metadata["vision_source"] = vision.source
                metadata["vision_mode"] = vision.mode

            return GenerationResult(
                image_url=output.image_url,
                provider=strategy.provider,
                strategy=strategy.name,
                prompt_used=effective_prompt,
                revised_prompt=output.revised_prompt,
                used_vision=vision is not None and not vision.used_fallback,
                attempts=list(attempts),
                metadata=metadata,
            )

        logger.error(f"All strategies failed: {[a.strategy for a in attempts]}")
        raise generation_error_for(last_error.kind, str(last_error), attempts=attempts)

    @staticmethod
    def _attempt(
        strategy: GenerationStrategy,
        started: float,
        error: Optional[ProviderError] = None
    ) -> GenerationAttempt:
        return GenerationAttempt(
            strategy=strategy.name,
            provider=strategy.provider,
            success=error is None,
            error=str(error) if error is not None else None,
            error_kind=error.kind.value if error is not None else None,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    async def health_check_all(self) -> dict[str, bool]:
        """Check health of all configured strategies.

        Returns:
            Dictionary mapping strategy names to health status
        """
        results = {}
        for strategy in self.strategies:
            logger.debug(f"Health checking strategy: {strategy.name}")
            results[strategy.name] = await strategy.health_check()

        logger.info(f"Health check results: {results}")
        return results

    def get_strategy_names(self) -> dict[str, List[str]]:
        """Get names of all configured strategies and describers."""
        return {
            "strategies": [s.name for s in self.strategies],
            "describers": [d.name for d in self.describers],
        }
