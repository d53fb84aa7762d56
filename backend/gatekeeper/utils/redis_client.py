from functools import lru_cache

import redis

from gatekeeper.utils.config import Settings


@lru_cache
def _client(host: str, port: int, db: int) -> redis.Redis:
    return redis.Redis(host=host, port=port, db=db, decode_responses=True)


def get_redis_client(settings: Settings) -> redis.Redis:
    return _client(settings.REDIS_HOST, settings.REDIS_PORT, settings.REDIS_DB)
