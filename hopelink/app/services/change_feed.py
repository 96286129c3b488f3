"""
Change feed and per-entity status cache.

Each committed status change is published on a Redis channel per entity
type and applied to a cache key for that single entity. Consumers patch
their view by entity id instead of reloading whole collections.
"""

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from hopelink.app.core.config import settings
from hopelink.app.core.reliability import CircuitOpenError, redis_circuit_breaker
from hopelink.app.domain.workflow.progress import describe_status
from hopelink.app.domain.workflow.stages import EntityType

logger = logging.getLogger(__name__)


@dataclass
class ChangeEvent:
    entity_type: str
    entity_id: int
    previous_status: Optional[str]
    status: str
    actor_id: Optional[int] = None
    occurred_at: Optional[str] = None

    def __post_init__(self):
        self.entity_type = EntityType(self.entity_type).value
        if self.occurred_at is None:
            self.occurred_at = datetime.now(timezone.utc).isoformat()

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "ChangeEvent":
        return cls(**json.loads(raw))


def channel_for(entity_type) -> str:
    return f"{settings.change_channel_prefix}:{EntityType(entity_type).value}"


def cache_key(entity_type, entity_id: int) -> str:
    return f"{settings.status_cache_prefix}:{EntityType(entity_type).value}:{entity_id}"


def build_snapshot(entity_type, entity_id: int, status: Optional[str], updated_at: Optional[str]) -> Dict[str, Any]:
    view = describe_status(entity_type, status)
    return {
        "entity_type": view.entity_type.value,
        "entity_id": entity_id,
        "status": status,
        "label": view.record.label,
        "ordinal": view.record.ordinal,
        "percentage": view.progress.percentage if view.progress else None,
        "is_terminal": view.is_terminal,
        "updated_at": updated_at,
    }


class StatusCache:
    """One Redis key per entity holding its latest status snapshot."""

    def __init__(self, redis, ttl_seconds: Optional[int] = None):
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.status_cache_ttl_seconds

    async def get(self, entity_type, entity_id: int) -> Optional[Dict[str, Any]]:
        raw = await self.redis.get(cache_key(entity_type, entity_id))
        if raw is None:
            return None
        return json.loads(raw)

    async def put(self, snapshot: Dict[str, Any]) -> None:
        key = cache_key(snapshot["entity_type"], snapshot["entity_id"])
        await self.redis.set(key, json.dumps(snapshot), ex=self.ttl_seconds)

    async def apply(self, event: ChangeEvent) -> Dict[str, Any]:
        """Patch the cached snapshot of the single entity named by the event."""
        snapshot = build_snapshot(event.entity_type, event.entity_id, event.status, event.occurred_at)
        await self.put(snapshot)
        return snapshot

    async def invalidate(self, entity_type, entity_id: int) -> None:
        await self.redis.delete(cache_key(entity_type, entity_id))


async def publish_change(redis, event: ChangeEvent) -> bool:
    """
    Publish a change event and apply it to the status cache.

    Runs after the database commit; a Redis failure is logged and reported
    through the return value, never raised, so the committed write stands.
    When the event cannot be applied, the entity's cached snapshot is dropped
    so later reads go to the database instead of serving the old status.
    """
    async def _send():
        await redis.publish(channel_for(event.entity_type), event.to_json())
        await StatusCache(redis).apply(event)

    try:
        await redis_circuit_breaker.call(_send)
    except CircuitOpenError:
        logger.warning(
            "Change feed circuit open, dropped %s %s -> %s",
            event.entity_type, event.entity_id, event.status
        )
    except Exception as e:
        logger.warning(
            "Failed to publish change for %s %s: %s",
            event.entity_type, event.entity_id, e
        )
    else:
        return True

    # Bypasses the breaker: Redis may be back before the circuit closes
    try:
        await StatusCache(redis).invalidate(event.entity_type, event.entity_id)
    except Exception as e:
        logger.warning(
            "Stale status cache for %s %s could not be dropped: %s",
            event.entity_type, event.entity_id, e
        )
    return False


async def drop_cached_status(redis, entity_type, entity_id: int) -> bool:
    """Remove a deleted entity's cached snapshot. Failures are logged, not raised."""
    try:
        await redis_circuit_breaker.call(StatusCache(redis).invalidate, entity_type, entity_id)
    except Exception as e:
        logger.warning(
            "Failed to drop cached status for %s %s: %s",
            EntityType(entity_type).value, entity_id, e
        )
        return False
    return True
