"""Tests for the reconnect backoff policy."""

from __future__ import annotations

import pytest

from tanklink.backend.reconnect import ReconnectPolicy


def test_default_policy_matches_controller_defaults() -> None:
    """Defaults are 3 s base, 30 s cap and ten attempts."""

    policy = ReconnectPolicy()

    assert policy.base_delay_ms == 3000
    assert policy.max_delay_ms == 30000
    assert policy.max_attempts == 10
    assert [policy.delay_ms(n) for n in range(6)] == [
        3000,
        6000,
        12000,
        24000,
        30000,
        30000,
    ]


@pytest.mark.parametrize(
    ("base", "cap"),
    [(0, 0), (1, 1), (100, 1000), (250, 250), (3000, 30000), (1000, 7000)],
)
def test_delays_double_until_capped(base: int, cap: int) -> None:
    """Each delay is ``min(base * 2**n, cap)`` and never decreases."""

    policy = ReconnectPolicy(base_delay_ms=base, max_delay_ms=cap, max_attempts=5)
    delays = [policy.delay_ms(n) for n in range(40)]

    assert delays == [min(base * 2**n, cap) for n in range(40)]
    assert delays == sorted(delays)
    assert max(delays) <= cap


def test_huge_attempt_index_is_capped() -> None:
    """Very large attempt numbers still return the cap."""

    policy = ReconnectPolicy(base_delay_ms=500, max_delay_ms=8000)

    assert policy.delay_ms(10_000) == 8000
    assert policy.delay(10_000) == 8.0


def test_delay_in_seconds() -> None:
    """``delay`` converts milliseconds to seconds."""

    assert ReconnectPolicy(base_delay_ms=1500).delay(0) == 1.5


def test_allows_counts_retries() -> None:
    """``allows`` is true while fewer than ``max_attempts`` retries ran."""

    policy = ReconnectPolicy(max_attempts=2)

    assert policy.allows(0)
    assert policy.allows(1)
    assert not policy.allows(2)
    assert not ReconnectPolicy(max_attempts=0).allows(0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"base_delay_ms": -1},
        {"base_delay_ms": 5000, "max_delay_ms": 1000},
        {"max_attempts": -1},
    ],
)
def test_invalid_policies_rejected(kwargs: dict[str, int]) -> None:
    """Negative values and inverted bounds raise ``ValueError``."""

    with pytest.raises(ValueError):
        ReconnectPolicy(**kwargs)


def test_negative_attempt_rejected() -> None:
    with pytest.raises(ValueError):
        ReconnectPolicy().delay_ms(-1)
