"""Broadcast factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import KanflowConfig, load_config
from .base import BaseBroadcast, NullBroadcast
from .inmemory import InMemoryBroadcast


def get_broadcast(
    backend: Optional[str] = None, config: Optional[KanflowConfig] = None
) -> BaseBroadcast:
    """Factory function to get the configured broadcast."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("KANFLOW_BROADCAST")
        or config.broadcast.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryBroadcast()
    elif backend == "none":
        return NullBroadcast()
    elif backend == "redis":
        from .redis import RedisBroadcast

        redis_conf = config.broadcast.redis
        return RedisBroadcast(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            channel=redis_conf.channel,
        )
    else:
        raise ValueError(f"Unsupported broadcast backend: {backend}")


__all__ = ["BaseBroadcast", "InMemoryBroadcast", "NullBroadcast", "get_broadcast"]
