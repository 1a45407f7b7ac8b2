"""Shared test fixtures and configuration."""

import asyncio
import io
import os
import pytest
from PIL import Image

from src.core.base_strategy import GenerationStrategy, VisionDescriber
from src.core.models import StrategyOutput
from src.utils.prompt_enhancer import reset_prompt_enhancer
from src.utils.rate_limiter import reset_rate_limiters
from src.utils.health import reset_health_checker


class FakeStrategy(GenerationStrategy):
    """Scriptable strategy that records the prompts it receives."""

    def __init__(
        self,
        name: str,
        provider: str = "replicate",
        outcome=None,
        configured: bool = True,
        requires_image: bool = False,
        final: bool = False,
        delay: float = 0
    ):
        super().__init__("test-key" if configured else None)
        self._name = name
        self._provider = provider
        self.outcome = outcome
        self.requires_image = requires_image
        self.is_final_fallback = final
        self.delay = delay
        self.calls = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def provider(self) -> str:
        return self._provider

    async def attempt(self, request, prompt):
        self.calls.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return StrategyOutput(
            image_url=self.outcome or f"https://cdn.example.com/{self._name}.png",
            metadata={"model": f"{self._name}-model"},
        )


class FakeDescriber(VisionDescriber):
    """Scriptable vision describer."""

    def __init__(self, name="fake_vision", text="a cat wearing sunglasses", error=None,
                 configured=True, follows_instructions=True):
        super().__init__("test-key" if configured else None)
        self._name = name
        self.text = text
        self.error = error
        self.follows_instructions = follows_instructions
        self.instructions = []

    @property
    def name(self) -> str:
        return self._name

    async def describe(self, image, instruction):
        self.instructions.append(instruction)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def fake_strategy():
    """Return the FakeStrategy class for building strategy chains."""
    return FakeStrategy


@pytest.fixture
def fake_describer():
    """Return the FakeDescriber class."""
    return FakeDescriber


@pytest.fixture
def sample_prompt():
    """Return a sample meme prompt for testing."""
    return "When the coffee kicks in on a Monday"


@pytest.fixture
def sample_fake_image():
    """Return a fake PIL Image for testing."""
    return Image.new('RGB', (64, 64), color='red')


@pytest.fixture
def sample_image_bytes(sample_fake_image):
    """Return sample image as PNG bytes."""
    img_byte_arr = io.BytesIO()
    sample_fake_image.save(img_byte_arr, format='PNG')
    return img_byte_arr.getvalue()


@pytest.fixture
def test_api_key():
    """Return a test API key."""
    return "test_token_12345"


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset process-wide singletons between tests."""
    reset_rate_limiters()
    reset_prompt_enhancer()
    reset_health_checker()
    yield
    reset_rate_limiters()
    reset_prompt_enhancer()
    reset_health_checker()


# Skip integration tests unless explicitly requested
def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests unless RUN_INTEGRATION_TESTS is set."""
    skip_integration = pytest.mark.skip(reason="Integration tests disabled (set RUN_INTEGRATION_TESTS=true to enable)")

    for item in items:
        if "integration" in item.keywords:
            if not os.getenv("RUN_INTEGRATION_TESTS", "").lower() == "true":
                item.add_marker(skip_integration)
