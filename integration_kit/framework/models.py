"""
Shared result types returned by every client.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .config import Environment
from .lifecycle import ClientState


@dataclass(frozen=True)
class Timeframe:
    """Inclusive reporting window."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError("timeframe end must not be before its start")

    @classmethod
    def last_days(cls, days: int = 30, end: Optional[datetime] = None) -> "Timeframe":
        end = end or datetime.now(timezone.utc)
        return cls(start=end - timedelta(days=days), end=end)

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass
class AnalyticsReport:
    """Aggregated metrics computed from vendor data for one timeframe."""
    timeframe: Timeframe
    metrics: Dict[str, float] = field(default_factory=dict)
    breakdowns: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


@dataclass(frozen=True)
class HealthStatus:
    """Outcome of a health check."""
    healthy: bool
    message: str
    vendor: Optional[str] = None
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ConnectionInfo:
    """Secret-free snapshot of a client's configuration and readiness."""
    vendor: str
    environment: Environment
    base_url: str
    test_mode: bool
    has_webhook_secret: bool
    state: ClientState
    ready: bool
    timeout_ms: int
    last_transition_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor": self.vendor,
            "environment": self.environment.value,
            "base_url": self.base_url,
            "test_mode": self.test_mode,
            "has_webhook_secret": self.has_webhook_secret,
            "state": self.state.value,
            "ready": self.ready,
            "timeout_ms": self.timeout_ms,
            "last_transition_at": self.last_transition_at.isoformat() if self.last_transition_at else None,
        }
