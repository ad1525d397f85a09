"""
Redis configuration for the outreach store and RQ workers
"""
import logging
import os
from typing import Optional

import redis

logger = logging.getLogger("redis-config")


def get_redis_config() -> dict:
    """Get Redis configuration from environment variables"""
    return {
        'host': os.getenv('REDIS_HOST', 'localhost'),
        'port': int(os.getenv('REDIS_PORT', '6379')),
        'db': int(os.getenv('REDIS_DB', '0')),
        'password': os.getenv('REDIS_PASSWORD'),
        'socket_timeout': int(os.getenv('REDIS_SOCKET_TIMEOUT', '5')),
        'socket_connect_timeout': int(os.getenv('REDIS_CONNECT_TIMEOUT', '5')),
        'decode_responses': True
    }


def create_redis_connection(**overrides) -> redis.Redis:
    """Create a Redis connection from the environment, with optional overrides"""
    config = get_redis_config()
    # Unset overrides keep the environment value
    config.update({k: v for k, v in overrides.items() if v is not None})
    config = {k: v for k, v in config.items() if v is not None}

    return redis.Redis(**config)


def check_redis_connection(client: Optional[redis.Redis] = None) -> bool:
    """Return True if Redis answers a ping"""
    try:
        (client or create_redis_connection()).ping()
        return True
    except redis.RedisError as e:
        logger.error(f"Redis connection failed: {e}")
        return False
