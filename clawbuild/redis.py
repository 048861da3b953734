"""Redis connection for live activity fan-out."""

import redis.asyncio as aioredis

ACTIVITY_CHANNEL = "clawbuild:activity"


async def init_redis(url: str) -> aioredis.Redis:
    """Open a Redis connection and verify it answers."""
    client = aioredis.from_url(url, decode_responses=True)
    await client.ping()
    return client


async def close_redis(client: aioredis.Redis | None) -> None:
    if client is not None:
        await client.aclose()
