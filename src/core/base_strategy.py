"""Abstract base classes for generation strategies and vision describers."""

from abc import ABC, abstractmethod
from typing import Optional
from .models import GenerationRequest, StrategyOutput


class GenerationStrategy(ABC):
    """Abstract interface that all meme generation strategies must implement.

    A strategy is one concrete attempt path in the generation pipeline, bound
    to a specific provider, model and mode. The pipeline iterates an ordered
    list of strategies uniformly, so adding or reordering providers never
    requires a new code path.

    Implementations must raise :class:`~src.core.errors.ProviderError` on
    failure so the pipeline can classify the failure without parsing text.

    Attributes:
        api_key: Optional API key for the provider
        requires_image: Strategy only runs when an input image was supplied
        is_final_fallback: Strategy is pinned to the end of the chain and gets
            the bare-bones prompt
    """

    requires_image: bool = False
    is_final_fallback: bool = False

    def __init__(self, api_key: Optional[str] = None):
        """Initialize the strategy.

        Args:
            api_key: Optional API key for authentication with the provider
        """
        self.api_key = api_key

    def is_configured(self) -> bool:
        """Whether the strategy has the credentials it needs."""
        return bool(self.api_key)

    @abstractmethod
    async def attempt(self, request: GenerationRequest, prompt: str) -> StrategyOutput:
        """Generate one meme image.

        Args:
            request: The original generation request (image bytes, style, ...)
            prompt: The effective prompt built by the pipeline

        Returns:
            StrategyOutput with the image reference

        Raises:
            ProviderError: If the provider call fails
        """
        pass

    async def health_check(self) -> bool:
        """Check if the provider is reachable with the configured credentials.

        Returns:
            True if healthy, False otherwise
        """
        return self.is_configured()

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy identifier (e.g. "replicate_flux")."""
        pass

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider identifier (e.g. "replicate", "openai")."""
        pass

    def __repr__(self) -> str:
        """String representation of the strategy."""
        return f"{self.__class__.__name__}(name='{self.name}', provider='{self.provider}')"


class VisionDescriber(ABC):
    """Turns an uploaded image into a description or a ready-to-use prompt."""

    # Captioning models ignore instructions and always return a description
    follows_instructions: bool = True

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key

    def is_configured(self) -> bool:
        """Whether the describer has the credentials it needs."""
        return bool(self.api_key)

    @abstractmethod
    async def describe(self, image: bytes, instruction: str) -> str:
        """Describe an image.

        Args:
            image: Raw image bytes
            instruction: What to produce (a description or a generation prompt)

        Returns:
            Non-empty text

        Raises:
            ProviderError: If the provider call fails or returns nothing
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Describer identifier."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
