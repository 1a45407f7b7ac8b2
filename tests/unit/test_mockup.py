"""Unit tests for t-shirt mockup composition."""

import socket
import pytest
from unittest.mock import Mock, patch
import requests

from src.core.mockup import (
    TSHIRT_TEMPLATES,
    MockupCompositor,
    OverlayPosition,
    check_url_reachable,
    is_public_host,
)


def _resolved(*addresses):
    family = lambda a: socket.AF_INET6 if ":" in a else socket.AF_INET
    return [(family(a), socket.SOCK_STREAM, 6, "", (a, 0)) for a in addresses]


def _always(value):
    return lambda url, timeout: value


class TestMockupCompositor:
    """Tests for MockupCompositor."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("color", ["white", "black", "navy", "gray", "red"])
    async def test_known_color_round_trip(self, color):
        compositor = MockupCompositor(url_checker=_always(True))

        result = await compositor.compose("https://cdn.example.com/meme.png", color)

        assert result.tshirt_color == color
        assert result.provider == "template"
        assert result.mockup_url == TSHIRT_TEMPLATES[color]
        assert result.meme_overlay == "https://cdn.example.com/meme.png"
        position = result.overlay_position
        assert (position.top, position.left, position.width, position.height) == ("50%", "50%", "120px", "120px")
        assert position.transform == "translate(-50%, -50%)"

    @pytest.mark.asyncio
    async def test_color_is_case_insensitive(self):
        compositor = MockupCompositor(url_checker=_always(True))

        result = await compositor.compose("https://cdn.example.com/meme.png", "NAVY")

        assert result.tshirt_color == "navy"

    @pytest.mark.asyncio
    async def test_invalid_color_uses_placeholder(self):
        checker = Mock(return_value=True)
        compositor = MockupCompositor(url_checker=checker)

        result = await compositor.compose("https://cdn.example.com/meme.png", "purple")

        assert result.provider == "placeholder"
        assert result.tshirt_color == "white"
        assert result.meme_overlay is None
        assert result.overlay_position is None
        assert "purple" in result.note
        assert "navy" in result.note
        checker.assert_not_called()

    @pytest.mark.asyncio
    async def test_unreachable_meme_uses_placeholder(self):
        compositor = MockupCompositor(url_checker=_always(False))

        result = await compositor.compose("https://cdn.example.com/gone.png", "black")

        assert result.provider == "placeholder"
        assert result.mockup_url == TSHIRT_TEMPLATES["white"]
        assert result.note is not None

    @pytest.mark.asyncio
    async def test_default_color(self):
        compositor = MockupCompositor(url_checker=_always(True))

        result = await compositor.compose("https://cdn.example.com/meme.png", None)

        assert result.tshirt_color == "white"
        assert result.provider == "template"

    def test_palette(self):
        assert MockupCompositor.get_palette() == ["white", "black", "navy", "gray", "red"]

    def test_overlay_defaults(self):
        assert OverlayPosition().model_dump() == {
            "top": "50%",
            "left": "50%",
            "width": "120px",
            "height": "120px",
            "transform": "translate(-50%, -50%)",
        }


class TestCheckUrlReachable:
    """Tests for meme reachability checks."""

    @pytest.fixture(autouse=True)
    def public_dns(self):
        with patch('src.core.mockup.socket.getaddrinfo', return_value=_resolved("93.184.216.34")):
            yield

    def test_valid_data_url(self, sample_image_bytes):
        import base64
        url = "data:image/png;base64," + base64.b64encode(sample_image_bytes).decode()

        assert check_url_reachable(url) is True

    def test_invalid_data_url(self):
        assert check_url_reachable("data:image/png;base64,%%%") is False

    def test_unsupported_scheme(self):
        assert check_url_reachable("ftp://example.com/meme.png") is False
        assert check_url_reachable("") is False

    @patch('src.core.mockup.requests.head')
    def test_http_ok(self, mock_head):
        mock_head.return_value = Mock(status_code=200)

        assert check_url_reachable("https://cdn.example.com/meme.png", timeout=2) is True
        mock_head.assert_called_once_with("https://cdn.example.com/meme.png", timeout=2, allow_redirects=False)

    @patch('src.core.mockup.requests.head')
    def test_http_not_found(self, mock_head):
        mock_head.return_value = Mock(status_code=404)

        assert check_url_reachable("https://cdn.example.com/meme.png") is False

    @patch('src.core.mockup.requests.head')
    def test_http_error(self, mock_head):
        mock_head.side_effect = requests.ConnectionError("refused")

        assert check_url_reachable("https://cdn.example.com/meme.png") is False

    @pytest.mark.parametrize("url, address", [
        ("http://127.0.0.1:8000/meme.png", "127.0.0.1"),
        ("http://169.254.169.254/latest/meta-data/iam/", "169.254.169.254"),
        ("http://10.0.0.5/meme.png", "10.0.0.5"),
        ("http://[::1]/meme.png", "::1"),
    ])
    @patch('src.core.mockup.requests.head')
    def test_internal_addresses_not_contacted(self, mock_head, url, address):
        with patch('src.core.mockup.socket.getaddrinfo', return_value=_resolved(address)):
            assert check_url_reachable(url) is False

        assert not mock_head.called

    @patch('src.core.mockup.requests.head')
    def test_hostname_resolving_to_private_address(self, mock_head):
        with patch('src.core.mockup.socket.getaddrinfo', return_value=_resolved("93.184.216.34", "192.168.1.10")):
            assert check_url_reachable("https://memes.example.com/meme.png") is False

        assert not mock_head.called

    @patch('src.core.mockup.requests.head')
    def test_unresolvable_host(self, mock_head):
        with patch('src.core.mockup.socket.getaddrinfo', side_effect=socket.gaierror("no such host")):
            assert check_url_reachable("https://nowhere.invalid/meme.png") is False

        assert not mock_head.called


class TestIsPublicHost:
    """Tests for the address guard."""

    def test_public(self):
        with patch('src.core.mockup.socket.getaddrinfo', return_value=_resolved("93.184.216.34")):
            assert is_public_host("https://replicate.delivery/meme.png") is True

    def test_missing_host(self):
        assert is_public_host("https:///meme.png") is False
