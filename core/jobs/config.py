"""Job tunables read from the environment."""

import os
from dataclasses import dataclass

from core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RECONCILE_GRACE_MINUTES = 5
DEFAULT_RECONCILE_BATCH_LIMIT = 25
MAX_RECONCILE_BATCH_LIMIT = 50
DEFAULT_RECONCILE_MAX_BATCHES = 4
DEFAULT_RECONCILE_RATE_DELAY = 0.2

DEFAULT_ABANDON_AFTER_MINUTES = 60
MIN_ABANDON_AFTER_MINUTES = 15
DEFAULT_ABANDON_BATCH_LIMIT = 50

DEFAULT_RECONCILE_INTERVAL_SECONDS = 300
DEFAULT_ABANDON_INTERVAL_SECONDS = 600


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using {default}")
        return default


@dataclass(frozen=True)
class ReconciliationSettings:
    grace_minutes: int = DEFAULT_RECONCILE_GRACE_MINUTES
    outer_bound_minutes: int = DEFAULT_ABANDON_AFTER_MINUTES
    batch_limit: int = DEFAULT_RECONCILE_BATCH_LIMIT
    max_batches: int = DEFAULT_RECONCILE_MAX_BATCHES
    rate_delay: float = DEFAULT_RECONCILE_RATE_DELAY

    @classmethod
    def from_env(cls) -> "ReconciliationSettings":
        limit = _env_int("RECONCILE_BATCH_LIMIT", DEFAULT_RECONCILE_BATCH_LIMIT)
        return cls(
            grace_minutes=max(0, _env_int("RECONCILE_GRACE_MINUTES", DEFAULT_RECONCILE_GRACE_MINUTES)),
            # Older orders belong to the abandonment job
            outer_bound_minutes=get_abandon_after_minutes(),
            batch_limit=min(max(1, limit), MAX_RECONCILE_BATCH_LIMIT),
            max_batches=max(1, _env_int("RECONCILE_MAX_BATCHES", DEFAULT_RECONCILE_MAX_BATCHES)),
            rate_delay=max(0.0, _env_float("RECONCILE_RATE_DELAY", DEFAULT_RECONCILE_RATE_DELAY)),
        )


@dataclass(frozen=True)
class AbandonmentSettings:
    after_minutes: int = DEFAULT_ABANDON_AFTER_MINUTES
    batch_limit: int = DEFAULT_ABANDON_BATCH_LIMIT
    rate_delay: float = DEFAULT_RECONCILE_RATE_DELAY

    @classmethod
    def from_env(cls) -> "AbandonmentSettings":
        return cls(
            after_minutes=get_abandon_after_minutes(),
            batch_limit=max(1, _env_int("ABANDON_BATCH_LIMIT", DEFAULT_ABANDON_BATCH_LIMIT)),
            rate_delay=max(0.0, _env_float("RECONCILE_RATE_DELAY", DEFAULT_RECONCILE_RATE_DELAY)),
        )


def get_abandon_after_minutes() -> int:
    """ABANDON_AFTER_MINUTES, never below 15."""
    return max(MIN_ABANDON_AFTER_MINUTES, _env_int("ABANDON_AFTER_MINUTES", DEFAULT_ABANDON_AFTER_MINUTES))


def is_scheduler_enabled() -> bool:
    return os.environ.get("SCHEDULER_ENABLED", "false").lower() == "true"


def get_job_intervals() -> tuple[int, int]:
    """(reconcile, abandon) intervals in seconds for the in-process scheduler."""
    return (
        max(30, _env_int("RECONCILE_INTERVAL_SECONDS", DEFAULT_RECONCILE_INTERVAL_SECONDS)),
        max(60, _env_int("ABANDON_INTERVAL_SECONDS", DEFAULT_ABANDON_INTERVAL_SECONDS)),
    )
