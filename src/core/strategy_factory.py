"""Factory for building the ordered generation strategy chain from settings."""

import logging
from typing import Callable, Dict, List

from src.core.base_strategy import GenerationStrategy, VisionDescriber
from src.backends.huggingface import HuggingFaceCaptioner, HuggingFaceImageStrategy
from src.backends.openai import OpenAIImageEditStrategy, OpenAIImageStrategy, OpenAIVisionDescriber
from src.backends.replicate import ReplicateImageStrategy, ReplicateImg2ImgStrategy

logger = logging.getLogger(__name__)

StrategyBuilder = Callable[..., GenerationStrategy]


class StrategyFactory:
    """Factory class for creating strategy instances by name.

    Strategy order is configuration (``STRATEGY_ORDER``), so adding or
    reordering providers never requires a new code path. Custom strategies
    can be registered at runtime with :meth:`register`.
    """

    _builders: Dict[str, StrategyBuilder] = {}

    @classmethod
    def register(cls, name: str, builder: StrategyBuilder) -> None:
        """Register a builder taking the settings object and returning a strategy.

        Args:
            name: Strategy name used in STRATEGY_ORDER
            builder: Callable(settings) -> GenerationStrategy
        """
        cls._builders[name.lower()] = builder
        logger.debug(f"Registered strategy builder: {name}")

    @classmethod
    def create_strategy(cls, name: str, settings) -> GenerationStrategy:
        """Create a strategy instance.

        Args:
            name: The strategy name (e.g. "replicate_flux", "openai_legacy")
            settings: Application settings

        Returns:
            An instance of the requested strategy

        Raises:
            ValueError: If the strategy name is not supported
        """
        builder = cls._builders.get(name.lower())
        if builder is None:
            supported = ", ".join(cls.get_supported_strategies())
            raise ValueError(
                f"Unsupported strategy: '{name}'. "
                f"Supported strategies: {supported}"
            )
        return builder(settings)

    @classmethod
    def get_supported_strategies(cls) -> List[str]:
        """Get list of registered strategy names."""
        return sorted(cls._builders)

    @classmethod
    def is_supported(cls, name: str) -> bool:
        """Check if a strategy name is registered."""
        return name.lower() in cls._builders


def build_strategies(settings) -> List[GenerationStrategy]:
    """Build the strategy chain in the configured order.

    Raises:
        ValueError: If STRATEGY_ORDER names an unknown strategy
    """
    strategies = [StrategyFactory.create_strategy(name, settings) for name in settings.strategy_order]
    logger.info(f"Strategy chain: {[s.name for s in strategies]}")
    return strategies


def build_describers(settings) -> List[VisionDescriber]:
    """Build the vision describers, most capable first."""
    return [
        OpenAIVisionDescriber(
            settings.openai_api_key,
            model=settings.openai_vision_model,
            timeout=settings.strategy_timeout,
        ),
        HuggingFaceCaptioner(
            settings.huggingface_token,
            model=settings.huggingface_caption_model,
            timeout=settings.strategy_timeout,
        ),
    ]


def _register_builtin_strategies() -> None:
    StrategyFactory.register(
        "replicate_flux",
        lambda s: ReplicateImageStrategy(
            s.replicate_api_token, model=s.replicate_model, timeout=s.strategy_timeout
        ),
    )
    StrategyFactory.register(
        "replicate_sdxl",
        lambda s: ReplicateImg2ImgStrategy(
            s.replicate_api_token, model=s.replicate_img2img_model, timeout=s.strategy_timeout
        ),
    )
    StrategyFactory.register(
        "openai_image",
        lambda s: OpenAIImageStrategy(
            s.openai_api_key,
            model=s.openai_image_model,
            quality=s.openai_image_quality,
            size=s.image_size,
            strategy_name="openai_image",
            timeout=s.strategy_timeout,
        ),
    )
    StrategyFactory.register(
        "openai_edit",
        lambda s: OpenAIImageEditStrategy(
            s.openai_api_key, model=s.openai_edit_model, size=s.image_size, timeout=s.strategy_timeout
        ),
    )
    StrategyFactory.register(
        "openai_legacy",
        lambda s: OpenAIImageStrategy(
            s.openai_api_key,
            model=s.openai_legacy_model,
            quality="standard" if s.openai_legacy_model == "dall-e-3" else None,
            size=s.image_size,
            strategy_name="openai_legacy",
            final_fallback=True,
            timeout=s.strategy_timeout,
        ),
    )
    StrategyFactory.register(
        "huggingface_flux",
        lambda s: HuggingFaceImageStrategy(
            s.huggingface_token, model=s.huggingface_image_model, timeout=s.strategy_timeout
        ),
    )


_register_builtin_strategies()
