# tests/test_retry_policy.py
import pytest

from config import GatewaySettings
from core.retry_policy import (
    ExponentialBackoffRetryPolicy,
    FixedDelayRetryPolicy,
    build_retry_policy,
)
from models.orchestration_models import AttemptOutcome


def test_fixed_policy_defaults_match_service_contract():
    policy = FixedDelayRetryPolicy()
    assert policy.max_attempts == 3
    assert [policy.delay_for(n) for n in (1, 2)] == [2.0, 2.0]


def test_fixed_policy_stops_at_last_attempt():
    policy = FixedDelayRetryPolicy(max_attempts=3, delay_seconds=0)
    assert policy.should_retry(1, AttemptOutcome.TRANSPORT_ERROR)
    assert policy.should_retry(2, AttemptOutcome.CONTROL_FLOW_EXCLUDED)
    assert not policy.should_retry(3, AttemptOutcome.TRANSPORT_ERROR)


def test_success_is_never_retried():
    policy = FixedDelayRetryPolicy()
    assert not policy.should_retry(1, AttemptOutcome.SUCCESS)


def test_custom_retryable_set():
    policy = FixedDelayRetryPolicy(
        retryable=frozenset({AttemptOutcome.TRANSPORT_ERROR})
    )
    assert policy.should_retry(1, AttemptOutcome.TRANSPORT_ERROR)
    assert not policy.should_retry(1, AttemptOutcome.PARSE_ERROR)


def test_invalid_policy_arguments():
    with pytest.raises(ValueError):
        FixedDelayRetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        ExponentialBackoffRetryPolicy(base_delay_seconds=-1)


def test_exponential_policy_doubles_and_caps():
    policy = ExponentialBackoffRetryPolicy(
        max_attempts=6, base_delay_seconds=1.0, max_delay_seconds=5.0
    )
    assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_exponential_jitter_never_shortens_delay():
    policy = ExponentialBackoffRetryPolicy(
        base_delay_seconds=2.0, max_delay_seconds=30.0, jitter=True
    )
    for _ in range(20):
        delay = policy.delay_for(2)
        assert 4.0 <= delay <= 6.0


def test_build_retry_policy_from_settings():
    fixed = build_retry_policy(
        GatewaySettings(STORY_API_RETRY_ATTEMPTS=4, STORY_API_RETRY_DELAY_SECONDS=1.5)
    )
    assert isinstance(fixed, FixedDelayRetryPolicy)
    assert fixed.max_attempts == 4
    assert fixed.delay_for(1) == 1.5

    exponential = build_retry_policy(
        GatewaySettings(
            STORY_API_BACKOFF_STRATEGY="Exponential",
            STORY_API_RETRY_DELAY_SECONDS=1.0,
            STORY_API_MAX_RETRY_DELAY_SECONDS=3.0,
        )
    )
    assert isinstance(exponential, ExponentialBackoffRetryPolicy)
    assert exponential.delay_for(3) == 3.0
