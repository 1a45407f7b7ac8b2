"""Unit tests for health checker."""

import pytest
from types import SimpleNamespace
from unittest.mock import patch

from app.config import Settings
from src.utils.health import (
    HealthChecker,
    HealthStatus,
    HealthCheckResult,
    get_health_checker,
    reset_health_checker
)


def _resources(cpu=10.0, memory=20.0, disk=30.0):
    return (
        patch('src.utils.health.psutil.cpu_percent', return_value=cpu),
        patch('src.utils.health.psutil.virtual_memory', return_value=SimpleNamespace(percent=memory)),
        patch('src.utils.health.psutil.disk_usage', return_value=SimpleNamespace(percent=disk)),
    )


class TestHealthCheckResult:
    """Tests for HealthCheckResult dataclass."""

    def test_to_dict(self):
        result = HealthCheckResult(status=HealthStatus.DEGRADED, message="High usage", details={"cpu": 85})

        assert result.to_dict() == {
            "status": "degraded",
            "message": "High usage",
            "details": {"cpu": 85},
        }


class TestHealthChecker:
    """Tests for HealthChecker."""

    def test_check_system_healthy(self):
        cpu, memory, disk = _resources()
        with cpu, memory, disk:
            result = HealthChecker().check_system()

        assert result.status == HealthStatus.HEALTHY
        assert result.message == "All systems operational"
        assert result.details["cpu_usage_percent"] == 10.0

    @pytest.mark.parametrize("usage, status", [
        ({"cpu": 90.0}, HealthStatus.DEGRADED),
        ({"memory": 90.0}, HealthStatus.DEGRADED),
        ({"disk": 97.0}, HealthStatus.UNHEALTHY),
        ({"cpu": 90.0, "memory": 99.0}, HealthStatus.UNHEALTHY),
    ])
    def test_check_system_thresholds(self, usage, status):
        cpu, memory, disk = _resources(**usage)
        with cpu, memory, disk:
            result = HealthChecker().check_system()

        assert result.status == status

    def test_check_system_error(self):
        with patch('src.utils.health.psutil.cpu_percent', side_effect=OSError("no /proc")):
            result = HealthChecker().check_system()

        assert result.status == HealthStatus.UNHEALTHY
        assert "no /proc" in result.message

    def test_service_status(self):
        settings = Settings(
            _env_file=None,
            openai_api_key="sk-test",
            replicate_api_token=None,
            huggingface_token=None,
            environment="development",
        )
        cpu, memory, disk = _resources()
        with cpu, memory, disk:
            body = HealthChecker().service_status(settings)

        assert body["status"] == "OK"
        assert body["environment"] == "development"
        assert body["services"]["ai"]["openai"] is True
        assert body["services"]["ai"]["replicate"] is False
        assert set(body["services"]["email"]) == {"gmail", "sendgrid", "smtp"}
        assert body["version"] == settings.app_version
        assert "timestamp" in body

    def test_metrics(self):
        checker = HealthChecker()
        checker.record_request(success=True)
        checker.record_request(success=False)
        checker.record_generation("replicate")
        checker.record_generation("replicate")
        checker.record_generation("openai")

        metrics = checker.get_metrics()

        assert metrics["requests_total"] == 2
        assert metrics["requests_failed"] == 1
        assert metrics["error_rate"] == 0.5
        assert metrics["memes_generated"] == 3
        assert metrics["provider_usage"] == {"replicate": 2, "openai": 1}

    @pytest.mark.parametrize("seconds, expected", [
        (0, "0s"),
        (59, "59s"),
        (3600, "1h"),
        (90061, "1d 1h 1m 1s"),
    ])
    def test_format_uptime(self, seconds, expected):
        assert HealthChecker()._format_uptime(seconds) == expected


class TestGlobalHealthChecker:
    """Tests for the global health checker."""

    def test_singleton_and_reset(self):
        first = get_health_checker()
        assert get_health_checker() is first

        reset_health_checker()
        assert get_health_checker() is not first
