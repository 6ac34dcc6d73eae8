# core/retry_policy.py
"""Retry policies for calls to the workflow endpoint."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Protocol

from config import GatewaySettings, settings
from models.orchestration_models import AttemptOutcome

# Outcomes worth another try. A success is terminal by definition.
DEFAULT_RETRYABLE_OUTCOMES: frozenset[AttemptOutcome] = frozenset(
    {
        AttemptOutcome.TRANSPORT_ERROR,
        AttemptOutcome.READ_ERROR,
        AttemptOutcome.HTTP_ERROR,
        AttemptOutcome.PARSE_ERROR,
        AttemptOutcome.CONTROL_FLOW_EXCLUDED,
    }
)


class RetryPolicy(Protocol):
    max_attempts: int

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        ...

    def should_retry(self, attempt: int, outcome: AttemptOutcome) -> bool:
        ...


@dataclass(frozen=True)
class FixedDelayRetryPolicy:
    """Same pause between every attempt."""

    max_attempts: int = 3
    delay_seconds: float = 2.0
    retryable: frozenset[AttemptOutcome] = field(
        default=DEFAULT_RETRYABLE_OUTCOMES
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")

    def delay_for(self, attempt: int) -> float:
        return self.delay_seconds

    def should_retry(self, attempt: int, outcome: AttemptOutcome) -> bool:
        return attempt < self.max_attempts and outcome in self.retryable


@dataclass(frozen=True)
class ExponentialBackoffRetryPolicy:
    """Doubling delay, capped at ``max_delay_seconds``, with optional jitter."""

    max_attempts: int = 3
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 30.0
    jitter: bool = False
    retryable: frozenset[AttemptOutcome] = field(
        default=DEFAULT_RETRYABLE_OUTCOMES
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds cannot be negative")

    def delay_for(self, attempt: int) -> float:
        delay = min(
            self.base_delay_seconds * (2 ** max(attempt - 1, 0)),
            self.max_delay_seconds,
        )
        if self.jitter:
            delay += random.uniform(0, delay / 2)
        return delay

    def should_retry(self, attempt: int, outcome: AttemptOutcome) -> bool:
        return attempt < self.max_attempts and outcome in self.retryable


def build_retry_policy(config: GatewaySettings | None = None) -> RetryPolicy:
    """Create the policy selected by ``STORY_API_BACKOFF_STRATEGY``."""
    cfg = config or settings
    if cfg.STORY_API_BACKOFF_STRATEGY == "exponential":
        return ExponentialBackoffRetryPolicy(
            max_attempts=cfg.STORY_API_RETRY_ATTEMPTS,
            base_delay_seconds=cfg.STORY_API_RETRY_DELAY_SECONDS,
            max_delay_seconds=cfg.STORY_API_MAX_RETRY_DELAY_SECONDS,
            jitter=cfg.STORY_API_RETRY_JITTER,
        )
    return FixedDelayRetryPolicy(
        max_attempts=cfg.STORY_API_RETRY_ATTEMPTS,
        delay_seconds=cfg.STORY_API_RETRY_DELAY_SECONDS,
    )
