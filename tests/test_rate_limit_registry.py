"""Tests for the named rate limiter registry and the static policy table."""

from unittest.mock import Mock

import pytest

from notifier.adapters.rate_limit import DEFAULT_POLICIES, RateLimitPolicy, RateLimiterRegistry
from notifier.core.errors import NotFoundError


@pytest.fixture
def registry() -> RateLimiterRegistry:
    reg = RateLimiterRegistry.from_policies(
        DEFAULT_POLICIES,
        clock=Mock(return_value=1000.0),
        sweep_interval_seconds=None,
    )
    yield reg
    reg.destroy_all()


def test_policy_table_matches_configuration() -> None:
    expected = {
        "api:health": (30, 60_000),
        "api:status": (20, 60_000),
        "api:admin": (60, 60_000),
        "telegram:command": (5, 5_000),
        "telegram:start": (3, 60_000),
        "telegram:enable": (5, 60_000),
        "telegram:disable": (5, 60_000),
        "telegram:frequency": (3, 60_000),
        "telegram:status": (10, 60_000),
        "telegram:help": (20, 60_000),
        "telegram:test": (20, 60_000),
        "db:user-creation": (100, 3_600_000),
        "db:user-update": (500, 3_600_000),
        "scheduler:creation": (50, 60_000),
    }
    actual = {name: (p.max_requests, p.window_ms) for name, p in DEFAULT_POLICIES.items()}
    assert actual == expected


def test_from_policies_registers_every_entry(registry: RateLimiterRegistry) -> None:
    assert len(registry) == len(DEFAULT_POLICIES)
    assert registry.names() == sorted(DEFAULT_POLICIES)
    assert registry.has("telegram:start")
    assert "api:health" in registry


def test_get_unknown_name_raises_not_found(registry: RateLimiterRegistry) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        registry.get("telegram:unknown")

    assert exc_info.value.code == "rate_limiter_not_found"
    assert exc_info.value.details["key"] == "telegram:unknown"


def test_limiters_are_independent(registry: RateLimiterRegistry) -> None:
    start = registry.get("telegram:start")
    for _ in range(3):
        assert start.check({"identifier": "42"}).allowed is True
    assert start.check({"identifier": "42"}).allowed is False

    assert registry.get("telegram:help").check({"identifier": "42"}).allowed is True


def test_register_replaces_existing_limiter(registry: RateLimiterRegistry) -> None:
    old = registry.get("api:health")
    old.check({"identifier": "1.2.3.4"})

    new = registry.register("api:health", RateLimitPolicy(max_requests=1, window_ms=1000, label="Tight"))

    assert registry.get("api:health") is new
    assert new is not old
    assert new.limit == 1
    assert old.stats()["active_identifiers"] == 0


def test_reset_one_identifier_or_whole_limiter(registry: RateLimiterRegistry) -> None:
    limiter = registry.get("telegram:frequency")
    limiter.check({"identifier": "a"})
    limiter.check({"identifier": "b"})

    registry.reset("telegram:frequency", "a")
    assert limiter.status("a")["requests"] == 0
    assert limiter.status("b")["requests"] == 1

    registry.reset("telegram:frequency")
    assert limiter.status("b")["requests"] == 0

    with pytest.raises(NotFoundError):
        registry.reset("nope")


def test_reset_all_keeps_limiters_registered(registry: RateLimiterRegistry) -> None:
    registry.get("api:admin").check({"identifier": "x"})

    registry.reset_all()

    assert len(registry) == len(DEFAULT_POLICIES)
    assert registry.stats()["api:admin"]["total_requests"] == 0


def test_destroy_all_drops_everything(registry: RateLimiterRegistry) -> None:
    registry.destroy_all()

    assert len(registry) == 0
    assert registry.has("api:health") is False
    with pytest.raises(NotFoundError):
        registry.get("api:health")


def test_stats_exposes_counters_not_identifiers(registry: RateLimiterRegistry) -> None:
    registry.get("telegram:command").check({"identifier": "secret-chat"})

    stats = registry.stats()["telegram:command"]

    assert stats["max_requests"] == 5
    assert stats["window_ms"] == 5000
    assert stats["active_identifiers"] == 1
    assert "secret-chat" not in repr(stats)
