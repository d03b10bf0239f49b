"""Redis pub/sub broadcast for cross-process observers."""

from __future__ import annotations

from typing import Any, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..constants import DEFAULT_REDIS_CHANNEL
from ..models import WorkflowRun
from .base import BaseBroadcast


class RedisBroadcast(BaseBroadcast):
    """Publish run snapshots as JSON on a Redis channel."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        channel: str = DEFAULT_REDIS_CHANNEL,
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisBroadcast")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.channel = channel
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, run: WorkflowRun) -> None:
        """Publish the run document on the configured channel."""
        if not self._redis:
            await self.connect()

        await self._redis.publish(self.channel, run.model_dump_json())
