"""
Unit tests for the change feed and per-entity status cache.
"""

import json

import pytest

from hopelink.app.core.reliability import redis_circuit_breaker
from hopelink.app.services.change_feed import (
    ChangeEvent, StatusCache, build_snapshot, cache_key, channel_for,
    drop_cached_status, publish_change
)


def test_keys():
    assert channel_for("donation") == "hopelink:changes:donation"
    assert cache_key("delivery", 7) == "hopelink:status:delivery:7"


def test_event_json():
    event = ChangeEvent("request", 3, "open", "claimed", actor_id=9)
    decoded = ChangeEvent.from_json(event.to_json())
    assert decoded == event
    assert decoded.occurred_at is not None


def test_event_rejects_unknown_entity_type():
    with pytest.raises(ValueError):
        ChangeEvent("invoice", 1, None, "pending")


def test_snapshot_for_terminal_status():
    snapshot = build_snapshot("donation", 5, "expired", None)
    assert snapshot["is_terminal"] is True
    assert snapshot["ordinal"] is None
    assert snapshot["percentage"] is None
    assert snapshot["label"] == "Expired"


async def test_apply_patches_only_that_entity(redis):
    cache = StatusCache(redis)
    await cache.put(build_snapshot("donation", 1, "available", None))
    await cache.put(build_snapshot("donation", 2, "available", None))

    await cache.apply(ChangeEvent("donation", 2, "available", "claimed"))

    first = await cache.get("donation", 1)
    second = await cache.get("donation", 2)
    assert first["status"] == "available"
    assert second["status"] == "claimed"
    assert second["percentage"] == 40


async def test_publish_change(redis):
    event = ChangeEvent("delivery", 4, "pending", "assigned", actor_id=2)
    assert await publish_change(redis, event) is True

    channel, message = redis.published[-1]
    assert channel == "hopelink:changes:delivery"
    assert json.loads(message)["status"] == "assigned"
    assert (await StatusCache(redis).get("delivery", 4))["label"] == "Assigned"


async def test_publish_failure_is_reported_not_raised(redis):
    redis.fail = True
    event = ChangeEvent("donation", 1, "available", "cancelled")
    assert await publish_change(redis, event) is False


async def test_circuit_opens_after_repeated_failures(redis):
    redis.fail = True
    for _ in range(redis_circuit_breaker.failure_threshold):
        await publish_change(redis, ChangeEvent("donation", 1, None, "available"))
    assert redis_circuit_breaker.state == "OPEN"

    # Circuit open: Redis is not touched even once it recovers
    redis.fail = False
    assert await publish_change(redis, ChangeEvent("donation", 1, None, "available")) is False
    assert redis.published == []


async def test_drop_cached_status(redis):
    cache = StatusCache(redis)
    await cache.put(build_snapshot("request", 8, "open", None))
    assert await drop_cached_status(redis, "request", 8) is True
    assert await cache.get("request", 8) is None
