import json
from typing import Any

from redis.asyncio import Redis
from redis.asyncio.client import PubSub

# Global Redis client instance
redis_client: Redis | None = None


async def publish_event(channel: str, event: dict[str, Any]) -> int:
    """
    Publish a JSON-encoded event on a pub/sub channel.

    Args:
        channel: Pub/sub channel name
        event: JSON-serializable payload

    Returns:
        Number of subscribers that received the message

    Example:
        await publish_event("courier:events", {"event": "message:new", ...})
    """
    if redis_client is None:
        raise RuntimeError("Redis client is not initialized")
    receivers: int = await redis_client.publish(channel, json.dumps(event, default=str))
    return receivers


async def subscribe(channel: str) -> PubSub:
    """
    Open a pub/sub subscription on a channel.

    The caller owns the returned PubSub and must close it.

    Args:
        channel: Pub/sub channel name

    Returns:
        Subscribed PubSub handle
    """
    if redis_client is None:
        raise RuntimeError("Redis client is not initialized")
    pubsub = redis_client.pubsub(ignore_subscribe_messages=True)
    await pubsub.subscribe(channel)
    return pubsub


def decode_event(raw: str | bytes) -> dict[str, Any] | None:
    """Decode a pub/sub payload, returning None for anything that isn't a JSON object."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return data
