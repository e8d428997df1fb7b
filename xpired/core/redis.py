from typing import Optional

import redis

from xpired.core.config import settings


def get_redis(url: Optional[str] = None, timeout: float = 2.0) -> redis.Redis:
    """Client for the broker instance; short timeouts so health checks never hang."""
    return redis.Redis.from_url(
        url or settings.REDIS_URL,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
