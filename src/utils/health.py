"""Health check and monitoring utilities for production deployment."""

import logging
import time
import psutil
from typing import Dict, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    """Result of a system resource check."""
    status: HealthStatus
    message: str
    details: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
        }


def _grade(value: float, warn: float, critical: float) -> HealthStatus:
    if value > critical:
        return HealthStatus.UNHEALTHY
    if value > warn:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class HealthChecker:
    """Tracks uptime and request counts and samples system resources.

    Example:
        checker = HealthChecker()
        body = checker.service_status(settings)
        assert body["status"] == "OK"
    """

    def __init__(self):
        """Initialize the health checker."""
        self.start_time = time.time()
        self.request_count = 0
        self.error_count = 0
        self.generation_count = 0
        self.provider_usage: Dict[str, int] = {}

        logger.info("HealthChecker initialized")

    def check_system(self) -> HealthCheckResult:
        """Sample CPU, memory and disk usage.

        CPU warns above 80% and is critical above 95%; memory and disk warn
        above 85% and are critical above 95%.
        """
        try:
            cpu_usage = psutil.cpu_percent(interval=None)
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')
        except Exception as e:
            logger.error(f"System health check failed: {e}")
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                message=f"Health check error: {e}",
                details={"error": str(e)}
            )

        grades = {
            "CPU": (_grade(cpu_usage, 80, 95), cpu_usage),
            "memory": (_grade(memory.percent, 85, 95), memory.percent),
            "disk": (_grade(disk.percent, 85, 95), disk.percent),
        }
        issues = [
            f"{name} usage {value:.1f}%"
            for name, (grade, value) in grades.items()
            if grade != HealthStatus.HEALTHY
        ]

        statuses = {grade for grade, _ in grades.values()}
        if HealthStatus.UNHEALTHY in statuses:
            status = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        message = "All systems operational" if not issues else f"System {status.value}: {', '.join(issues)}"

        return HealthCheckResult(
            status=status,
            message=message,
            details={
                "uptime_seconds": round(time.time() - self.start_time, 2),
                "cpu_usage_percent": round(cpu_usage, 2),
                "memory_usage_percent": round(memory.percent, 2),
                "disk_usage_percent": round(disk.percent, 2),
            }
        )

    def service_status(self, settings) -> Dict:
        """Build the public ``/health`` body. Has no side effects."""
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
            "services": {
                "ai": settings.ai_services(),
                "email": settings.email_services(),
            },
            "system": self.check_system().to_dict(),
            "version": settings.app_version,
        }

    def record_request(self, success: bool = True) -> None:
        """Record a request for metrics tracking."""
        self.request_count += 1
        if not success:
            self.error_count += 1

    def record_generation(self, provider: str) -> None:
        """Record which provider produced a meme."""
        self.generation_count += 1
        self.provider_usage[provider] = self.provider_usage.get(provider, 0) + 1

    def get_metrics(self) -> Dict:
        """Get application metrics."""
        uptime_seconds = time.time() - self.start_time
        return {
            "uptime_seconds": round(uptime_seconds, 2),
            "uptime_human": self._format_uptime(uptime_seconds),
            "requests_total": self.request_count,
            "requests_failed": self.error_count,
            "error_rate": round(self.error_count / max(self.request_count, 1), 4),
            "memes_generated": self.generation_count,
            "provider_usage": dict(self.provider_usage),
        }

    def _format_uptime(self, seconds: float) -> str:
        """Format uptime in human-readable form (e.g. "1d 2h 3m 4s")."""
        minutes, secs = divmod(int(seconds), 60)
        hours, minutes = divmod(minutes, 60)
        days, hours = divmod(hours, 24)

        parts = [f"{value}{unit}" for value, unit in ((days, "d"), (hours, "h"), (minutes, "m")) if value]
        if secs or not parts:
            parts.append(f"{secs}s")
        return " ".join(parts)

    def __repr__(self) -> str:
        uptime = self._format_uptime(time.time() - self.start_time)
        return f"HealthChecker(uptime={uptime}, requests={self.request_count})"


# Global health checker instance
_global_health_checker: Optional[HealthChecker] = None


def get_health_checker() -> HealthChecker:
    """Get or create the global health checker instance."""
    global _global_health_checker

    if _global_health_checker is None:
        _global_health_checker = HealthChecker()

    return _global_health_checker


def reset_health_checker() -> None:
    """Reset the global health checker instance (useful for testing)."""
    global _global_health_checker
    _global_health_checker = None
