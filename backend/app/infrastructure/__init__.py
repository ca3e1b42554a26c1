"""
Connections to systems outside the database. Only Redis for now, used to
hand booking events to the notification layer.
"""

from .redis_client import get_redis, close_redis, redis_status

__all__ = ['get_redis', 'close_redis', 'redis_status']
