"""T-shirt mockup composition.

No image processing happens here: a mockup is a template photo of a blank
t-shirt plus a declarative overlay position telling the client where to draw
the meme on top of it.
"""

import asyncio
import ipaddress
import logging
import socket
from typing import Optional, Dict
from urllib.parse import urlparse
import requests
from pydantic import BaseModel, Field

from src.utils.image_utils import decode_data_url

logger = logging.getLogger(__name__)

PLACEHOLDER_COLOR = "white"

# Template photos per shirt colour; red reuses the white template tinted client-side
TSHIRT_TEMPLATES: Dict[str, str] = {
    "white": "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?w=400&h=500&fit=crop&crop=center",
    "black": "https://images.unsplash.com/photo-1503341504253-dff4815485f1?w=400&h=500&fit=crop&crop=center",
    "navy": "https://images.unsplash.com/photo-1618354691373-d851c5c3a990?w=400&h=500&fit=crop&crop=center",
    "gray": "https://images.unsplash.com/photo-1576566588028-4147f3842f27?w=400&h=500&fit=crop&crop=center",
    "red": "https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?w=400&h=500&fit=crop&crop=center",
}

TSHIRT_HEX: Dict[str, str] = {
    "white": "#ffffff",
    "black": "#1a1a1a",
    "navy": "#1e3a8a",
    "gray": "#6b7280",
    "red": "#dc2626",
}


class OverlayPosition(BaseModel):
    """Where the client should draw the meme on the template."""
    top: str = "50%"
    left: str = "50%"
    width: str = "120px"
    height: str = "120px"
    transform: str = "translate(-50%, -50%)"


class MockupResult(BaseModel):
    """Result of composing a t-shirt mockup.

    Attributes:
        mockup_url: Template image of the blank shirt
        meme_overlay: The meme image to draw on top (None for placeholders)
        overlay_position: Geometry for the overlay (None for placeholders)
        provider: "template" or "placeholder"
        tshirt_color: Colour actually used
        shirt_hex: CSS colour of the shirt body
        note: Explanation when a placeholder was substituted
    """
    mockup_url: str
    meme_overlay: Optional[str] = None
    overlay_position: Optional[OverlayPosition] = None
    provider: str
    tshirt_color: str
    shirt_hex: str
    note: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "mockup_url": TSHIRT_TEMPLATES["black"],
                "meme_overlay": "https://replicate.delivery/pbxt/meme.png",
                "overlay_position": OverlayPosition().model_dump(),
                "provider": "template",
                "tshirt_color": "black",
                "shirt_hex": "#1a1a1a",
                "note": None,
            }
        }


def is_public_host(url: str) -> bool:
    """Whether every address the URL's host resolves to is globally routable.

    Loopback, private, link-local (cloud metadata) and reserved ranges are
    rejected.
    """
    host = urlparse(url).hostname
    if not host:
        return False
    try:
        infos = socket.getaddrinfo(host, None)
    except (socket.gaierror, UnicodeError) as e:
        logger.warning(f"Meme host does not resolve: {host} ({e})")
        return False

    addresses = {ipaddress.ip_address(info[4][0].split("%")[0]) for info in infos}
    return bool(addresses) and all(address.is_global for address in addresses)


def check_url_reachable(url: str, timeout: float = 5.0) -> bool:
    """Check whether a meme reference can be loaded.

    ``data:`` URLs must decode; http(s) URLs must point at a public host and
    answer a HEAD request with a status below 400. Redirects are not followed.
    """
    if not url:
        return False

    if url.startswith("data:"):
        return decode_data_url(url) is not None

    if not url.startswith(("http://", "https://")):
        return False

    if not is_public_host(url):
        logger.warning(f"Refusing to probe non-public meme URL: {url}")
        return False

    try:
        response = requests.head(url, timeout=timeout, allow_redirects=False)
        return response.status_code < 400
    except requests.RequestException as e:
        logger.warning(f"Meme URL unreachable: {e}")
        return False


class MockupCompositor:
    """Builds t-shirt mockups from the fixed colour palette.

    Example:
        compositor = MockupCompositor()
        result = await compositor.compose("https://.../meme.png", "navy")
    """

    def __init__(self, url_checker=check_url_reachable, probe_timeout: float = 5.0):
        """Initialize the compositor.

        Args:
            url_checker: Callable(url, timeout) -> bool used to probe meme URLs
            probe_timeout: Seconds allowed for the reachability probe
        """
        self.url_checker = url_checker
        self.probe_timeout = probe_timeout

    @staticmethod
    def get_palette() -> list[str]:
        return list(TSHIRT_TEMPLATES)

    @staticmethod
    def is_valid_color(color: Optional[str]) -> bool:
        return color in TSHIRT_TEMPLATES

    def placeholder(self, note: str) -> MockupResult:
        """The fixed fallback template with no overlay."""
        return MockupResult(
            mockup_url=TSHIRT_TEMPLATES[PLACEHOLDER_COLOR],
            provider="placeholder",
            tshirt_color=PLACEHOLDER_COLOR,
            shirt_hex=TSHIRT_HEX[PLACEHOLDER_COLOR],
            note=note,
        )

    async def compose(self, meme_url: str, color: Optional[str] = PLACEHOLDER_COLOR) -> MockupResult:
        """Compose a mockup for a meme and shirt colour.

        Never raises: an unknown colour or unreachable meme yields the
        placeholder template.
        """
        color = (color or PLACEHOLDER_COLOR).lower()

        if not self.is_valid_color(color):
            logger.warning(f"Unknown t-shirt color '{color}', using placeholder")
            available = ", ".join(self.get_palette())
            return self.placeholder(
                f"Unknown t-shirt color '{color}' (available: {available}). Showing a placeholder mockup."
            )

        reachable = await asyncio.to_thread(self.url_checker, meme_url, self.probe_timeout)
        if not reachable:
            logger.warning("Meme image unreachable, using placeholder mockup")
            return self.placeholder("Using placeholder mockup - meme image could not be loaded")

        logger.info(f"Composed {color} t-shirt mockup")
        return MockupResult(
            mockup_url=TSHIRT_TEMPLATES[color],
            meme_overlay=meme_url,
            overlay_position=OverlayPosition(),
            provider="template",
            tshirt_color=color,
            shirt_hex=TSHIRT_HEX[color],
        )
