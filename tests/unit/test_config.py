"""Tests for configuration loading."""

import pytest

from kanflow.broadcast import InMemoryBroadcast, NullBroadcast, get_broadcast
from kanflow.config import load_config
from kanflow.persistence import FileRunStore, get_run_store


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "kanflow.yaml"
    config_path.write_text(
        """
runs_dir: /var/kanflow/runs
max_concurrent_runs: 4
broadcast:
  backend: redis
  redis:
    host: testhost
    port: 1234
"""
    )
    monkeypatch.setenv("KANFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("KANFLOW_RUNS_DIR", raising=False)

    config = load_config()
    assert config.runs_dir == "/var/kanflow/runs"
    assert config.max_concurrent_runs == 4
    assert config.broadcast.backend == "redis"
    assert config.broadcast.redis.host == "testhost"
    assert config.broadcast.redis.port == 1234
    assert config.broadcast.redis.channel == "kanflow:runs"


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.setenv("KANFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("KANFLOW_RUNS_DIR", raising=False)

    config = load_config()
    assert config.max_concurrent_runs == 10
    assert config.progress_max_bytes == 10 * 1024 * 1024
    assert config.broadcast.backend == "inmemory"
    assert config.broadcast.timeout == 5.0


def test_env_overrides_directories(tmp_path, monkeypatch):
    monkeypatch.setenv("KANFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("KANFLOW_RUNS_DIR", str(tmp_path / "runs"))
    monkeypatch.setenv("KANFLOW_WORKFLOWS_DIR", str(tmp_path / "workflows"))
    monkeypatch.setenv("KANFLOW_TASK_SERVICE_URL", "http://tasks.local")

    config = load_config()
    assert config.runs_dir == str(tmp_path / "runs")
    assert config.workflows_dir == str(tmp_path / "workflows")
    assert config.task_service_url == "http://tasks.local"

    store = get_run_store(config=config)
    assert isinstance(store, FileRunStore)
    assert store.runs_dir == tmp_path / "runs"


def test_get_broadcast_backends(tmp_path, monkeypatch):
    monkeypatch.setenv("KANFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("KANFLOW_BROADCAST", raising=False)

    assert isinstance(get_broadcast(), InMemoryBroadcast)
    assert isinstance(get_broadcast("none"), NullBroadcast)

    monkeypatch.setenv("KANFLOW_BROADCAST", "none")
    assert isinstance(get_broadcast(), NullBroadcast)

    with pytest.raises(ValueError):
        get_broadcast("carrier-pigeon")


def test_get_broadcast_uses_redis_config(tmp_path, monkeypatch):
    pytest.importorskip("redis")
    config_path = tmp_path / "kanflow.yaml"
    config_path.write_text(
        """
broadcast:
  backend: redis
  redis:
    host: confighost
    port: 6380
    channel: board:runs
"""
    )
    monkeypatch.setenv("KANFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("KANFLOW_BROADCAST", raising=False)

    from kanflow.broadcast.redis import RedisBroadcast

    broadcast = get_broadcast()
    assert isinstance(broadcast, RedisBroadcast)
    assert broadcast.host == "confighost"
    assert broadcast.port == 6380
    assert broadcast.channel == "board:runs"
