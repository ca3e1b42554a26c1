"""
Booking event fan-out.

The real-time push layer (websocket hubs, e-mail) lives outside this
service. It subscribes to a Redis pub/sub channel; we publish one JSON
message per successful booking change, after the transaction commits.

Publishing is best-effort: a missing or failing Redis is logged and
counted, never surfaced to the booking caller.
"""

import json
from datetime import datetime, timezone
from typing import Any

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_event_published
from app.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

BOOKING_CREATED = "booking_created"
BOOKING_STATUS_CHANGED = "booking_status_changed"
BOOKING_PAID = "booking_paid"


def build_event(event: str, **payload: Any) -> dict:
    return {
        "event": event,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        **payload,
    }


async def publish_booking_event(event: str, **payload: Any) -> bool:
    """Publish to the booking events channel. Returns True if sent."""
    client = await get_redis()
    if not client:
        record_event_published(event, "skipped")
        return False

    message = build_event(event, **payload)
    try:
        receivers = await client.publish(
            settings.BOOKING_EVENTS_CHANNEL,
            json.dumps(message, default=str),
        )
        record_event_published(event, "published")
        logger.debug("booking_event_published", booking_event=event, receivers=receivers)
        return True
    except Exception as e:
        record_event_published(event, "error")
        logger.error("booking_event_publish_failed", booking_event=event, error=str(e))
        return False
