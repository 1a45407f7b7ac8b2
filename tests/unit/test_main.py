"""Unit tests for the HTTP API."""

import base64
import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.main import (
    app,
    get_compositor,
    get_contact_limiter,
    get_generator,
    get_meme_limiter,
    get_mockup_limiter,
    get_notifier,
)
from src.core.errors import ProviderError, ProviderErrorKind
from src.core.image_generator import MemeGenerator
from src.core.mockup import MockupCompositor
from src.utils.contact import DEMO_MESSAGE, ContactNotifier
from src.utils.rate_limiter import InMemoryRateLimitStore, RateLimiter


@pytest.fixture
def client():
    """Test client with production defaults and fresh limiters."""
    store = InMemoryRateLimitStore()
    app.dependency_overrides[get_meme_limiter] = lambda: RateLimiter(store, 3, 300, "meme")
    app.dependency_overrides[get_contact_limiter] = lambda: RateLimiter(store, 2, 300, "contact")
    app.dependency_overrides[get_mockup_limiter] = lambda: RateLimiter(store, 3, 300, "tshirt")
    app.dependency_overrides[get_compositor] = lambda: MockupCompositor(url_checker=lambda url, timeout: True)
    app.dependency_overrides[get_notifier] = lambda: ContactNotifier(None)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def use_chain():
    """Install a MemeGenerator built from fake strategies."""
    def install(*strategies):
        generator = MemeGenerator(list(strategies))
        app.dependency_overrides[get_generator] = lambda: generator
        return generator
    return install


@pytest.fixture(autouse=True)
def production_mode(monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "enable_rate_limiting", True)
    monkeypatch.setattr(settings, "order_processing_delay", 0)


class TestGenerateMeme:
    """Tests for POST /generate-meme."""

    def test_success(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux", outcome="https://cdn.example.com/meme.png"))

        response = client.post("/generate-meme", json={"prompt": "cats"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["meme_url"] == "https://cdn.example.com/meme.png"
        assert body["provider"] == "replicate"
        assert body["strategy"] == "replicate_flux"
        assert "cats" in body["prompt_used"]
        assert body["attempts"][0]["success"] is True
        assert "generation_time" in body

    def test_empty_body_uses_default_phrase(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux"))

        response = client.post("/generate-meme", json={})

        assert response.status_code == 200
        assert "humorous" in response.json()["prompt_used"]

    def test_with_image(self, client, use_chain, fake_strategy, sample_image_bytes):
        primary = fake_strategy("replicate_flux")
        use_chain(primary)
        image = "data:image/png;base64," + base64.b64encode(sample_image_bytes).decode()

        response = client.post("/generate-meme", json={"image": image, "style": "dank"})

        assert response.status_code == 200
        assert "surreal dank meme" in primary.calls[0]

    def test_api_prefix_mirrors_routes(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux"))

        assert client.post("/api/generate-meme", json={}).status_code == 200

    def test_invalid_image(self, client, use_chain, fake_strategy):
        primary = fake_strategy("replicate_flux")
        use_chain(primary)

        response = client.post("/generate-meme", json={"image": "definitely not base64!"})

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Invalid image format",
            "code": "VALIDATION_ERROR",
        }
        assert primary.calls == []

    def test_invalid_provider(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux"))

        response = client.post("/generate-meme", json={"provider": "midjourney"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_rate_limited_after_three(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux"))

        statuses = [client.post("/generate-meme", json={}).status_code for _ in range(4)]

        assert statuses == [200, 200, 200, 429]

    def test_rate_limit_body(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux"))
        for _ in range(3):
            client.post("/generate-meme", json={})

        response = client.post("/generate-meme", json={})

        assert response.json()["error"] == "Too many requests, please try again in 5 minutes."
        assert int(response.headers["Retry-After"]) > 0

    def test_forwarded_for_identifies_client(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux"))
        for _ in range(3):
            client.post("/generate-meme", json={}, headers={"X-Forwarded-For": "10.0.0.1"})

        response = client.post("/generate-meme", json={}, headers={"X-Forwarded-For": "10.0.0.2"})

        assert response.status_code == 200

    def test_terminal_error_hides_details_in_production(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy(
            "openai_image", "openai",
            outcome=ProviderError(ProviderErrorKind.QUOTA_EXCEEDED, "org-123 billing details", "openai"),
        ))

        response = client.post("/generate-meme", json={})

        assert response.status_code == 402
        body = response.json()
        assert body["code"] == "QUOTA_EXCEEDED"
        assert "details" not in body
        assert "org-123" not in response.text

    def test_terminal_error_details_in_development(self, client, use_chain, fake_strategy, monkeypatch):
        monkeypatch.setattr(settings, "environment", "development")
        use_chain(fake_strategy("replicate_flux", outcome=Exception("Something unexpected")))

        response = client.post("/generate-meme", json={})

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "INTERNAL_ERROR"
        assert body["details"] == "Something unexpected"
        assert body["attempts"][0]["strategy"] == "replicate_flux"

    def test_no_provider_configured(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux", configured=False))

        response = client.post("/generate-meme", json={})

        assert response.status_code == 503
        assert response.json()["code"] == "SERVICE_UNAVAILABLE"

    def test_wrong_method(self, client):
        response = client.get("/generate-meme")

        assert response.status_code == 405
        assert response.json() == {"success": False, "error": "Method not allowed"}

    @pytest.mark.parametrize("path", ["/generate-meme", "/api/contact", "/process-order"])
    def test_options_returns_200(self, client, path):
        assert client.options(path).status_code == 200

    @pytest.mark.parametrize("method", ["GET", "OPTIONS"])
    def test_unknown_path_is_404(self, client, method):
        response = client.request(method, "/nonexistent")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_error_responses_documented(self, client):
        responses = client.get("/openapi.json").json()["paths"]["/generate-meme"]["post"]["responses"]

        for status in ("400", "429", "503"):
            assert responses[status]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")


class TestMockupEndpoint:
    """Tests for POST /generate-tshirt-mockup."""

    def test_color_round_trip(self, client):
        response = client.post(
            "/generate-tshirt-mockup",
            json={"meme_url": "https://cdn.example.com/meme.png", "tshirt_color": "navy"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["tshirt_color"] == "navy"
        assert body["provider"] == "template"
        assert set(body["overlay_position"]) >= {"top", "left", "width", "height"}

    def test_invalid_color(self, client):
        response = client.post(
            "/generate-tshirt-mockup",
            json={"meme_url": "https://cdn.example.com/meme.png", "tshirt_color": "plaid"},
        )

        assert response.status_code == 200
        assert response.json()["provider"] == "placeholder"
        assert "overlay_position" not in response.json()

    def test_missing_meme_url(self, client):
        response = client.post("/generate-tshirt-mockup", json={"tshirt_color": "black"})

        assert response.status_code == 400
        assert response.json()["error"] == "Meme URL is required"


class TestContactEndpoint:
    """Tests for POST /contact."""

    def test_demo_success(self, client):
        response = client.post(
            "/contact",
            json={"name": "Jane", "email": "jane@example.com", "message": "I love these shirts!"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": DEMO_MESSAGE}

    def test_validation_error(self, client):
        response = client.post(
            "/contact",
            json={"name": "J", "email": "jane@example.com", "message": "I love these shirts!"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Name must be between 2 and 100 characters"

    def test_rate_limited_after_two(self, client):
        payload = {"name": "Jane", "email": "jane@example.com", "message": "I love these shirts!"}

        statuses = [client.post("/contact", json=payload).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]


class TestOtherEndpoints:
    """Tests for order, health and metrics endpoints."""

    def test_process_order(self, client):
        response = client.post("/process-order", json={"size": "M"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "demo_mode"
        assert body["orderId"].startswith("MEME_")

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert set(body["services"]) == {"ai", "email"}
        assert body["version"] == settings.app_version

    def test_provider_health(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux"), fake_strategy("openai_image", "openai", configured=False))

        response = client.get("/health/providers")

        assert response.json() == {
            "status": "OK",
            "strategies": {"replicate_flux": True, "openai_image": False},
        }

    def test_metrics(self, client, use_chain, fake_strategy):
        use_chain(fake_strategy("replicate_flux"))
        client.post("/generate-meme", json={})

        response = client.get("/metrics")

        assert response.status_code == 200
        body = response.json()
        assert body["memes_generated"] == 1
        assert body["provider_usage"] == {"replicate": 1}
        assert set(body["rate_limits"]) == {"meme", "contact", "tshirt"}

    def test_metrics_disabled(self, client, monkeypatch):
        monkeypatch.setattr(settings, "enable_metrics", False)

        assert client.get("/metrics").status_code == 404
