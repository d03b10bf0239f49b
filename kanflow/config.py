from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    BROADCAST_TIMEOUT,
    DEFAULT_REDIS_CHANNEL,
    MAX_CONCURRENT_RUNS,
    MAX_PROGRESS_FILE_SIZE,
)


class RedisConfig(BaseModel):
    """Configuration for the Redis broadcast backend."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    channel: str = DEFAULT_REDIS_CHANNEL


class BroadcastConfig(BaseModel):
    """Run status broadcast settings."""

    backend: Literal["inmemory", "redis", "none"] = "inmemory"
    timeout: float = BROADCAST_TIMEOUT
    redis: RedisConfig = RedisConfig()


class KanflowConfig(BaseModel):
    """Top-level configuration model."""

    runs_dir: str = ".kanflow/runs"
    workflows_dir: str = ".kanflow/workflows"
    task_service_url: Optional[str] = None
    max_concurrent_runs: int = MAX_CONCURRENT_RUNS
    progress_max_bytes: int = MAX_PROGRESS_FILE_SIZE
    log_level: str = "INFO"
    broadcast: BroadcastConfig = BroadcastConfig()


def load_config(path: Optional[str] = None) -> KanflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to KANFLOW_CONFIG env
            variable or 'kanflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("KANFLOW_CONFIG", "kanflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = KanflowConfig(**data)
    else:
        config = KanflowConfig()

    env_runs_dir = os.getenv("KANFLOW_RUNS_DIR")
    if env_runs_dir:
        config.runs_dir = env_runs_dir
    env_workflows_dir = os.getenv("KANFLOW_WORKFLOWS_DIR")
    if env_workflows_dir:
        config.workflows_dir = env_workflows_dir
    env_task_url = os.getenv("KANFLOW_TASK_SERVICE_URL")
    if env_task_url:
        config.task_service_url = env_task_url
    return config
