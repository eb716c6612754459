"""Tests for configuration loading."""

import pytest

from stepflow.config import StepflowConfig, load_config, load_workflow_version
from stepflow.contracts import ApprovalStep
from stepflow.events import InMemoryBroadcaster, get_broadcaster
from stepflow.events.redis import RedisBroadcaster
from stepflow.persistence import InMemoryExecutionStore, SQLiteExecutionStore, get_stores
from stepflow.runtime import Runtime


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("STEPFLOW_CONFIG", "STEPFLOW_DATABASE_URL", "DATABASE_URL", "STEPFLOW_EVENTS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults_without_config_file():
    config = load_config()
    assert config.queue.max_attempts == 3
    assert config.queue.backoff_base == 2.0
    assert config.sla.breach_interval == 300
    assert config.sla.warning_interval == 900
    assert config.sla.warning_window_minutes == 60
    assert config.events.backend == "inmemory"
    assert config.database_url is None


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "stepflow.yaml"
    config_path.write_text(
        """
queue:
  max_attempts: 5
  backoff_unit: 0.5
sla:
  breach_interval: 60
events:
  backend: redis
  redis:
    host: testhost
    port: 1234
directory:
  users:
    - id: mary
      role: manager
"""
    )
    monkeypatch.setenv("STEPFLOW_CONFIG", str(config_path))

    config = load_config()
    assert config.queue.max_attempts == 5
    assert config.queue.backoff_unit == 0.5
    assert config.sla.breach_interval == 60
    assert config.events.redis.host == "testhost"
    assert config.directory.users[0].id == "mary"


def test_database_url_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite://from-file.db\n")
    monkeypatch.setenv("STEPFLOW_DATABASE_URL", "sqlite://from-env.db")

    assert load_config().database_url == "sqlite://from-env.db"


def test_get_broadcaster_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
events:
  backend: redis
  redis:
    host: confighost
    port: 6380
    channel_prefix: approvals
"""
    )
    monkeypatch.setenv("STEPFLOW_CONFIG", str(config_path))

    broadcaster = get_broadcaster()
    assert isinstance(broadcaster, RedisBroadcaster)
    assert broadcaster.host == "confighost"
    assert broadcaster.port == 6380
    assert broadcaster._channel("execution:e1") == "approvals:execution:e1"


def test_get_broadcaster_env_and_unknown_backend(monkeypatch):
    monkeypatch.setenv("STEPFLOW_EVENTS", "inmemory")
    assert isinstance(get_broadcaster(), InMemoryBroadcaster)

    with pytest.raises(ValueError):
        get_broadcaster("kafka")


def test_get_stores_backends(tmp_path):
    stores = get_stores()
    assert isinstance(stores.executions, InMemoryExecutionStore)
    assert get_stores() is stores

    sqlite_stores = get_stores(f"sqlite://{tmp_path / 'state.db'}")
    assert isinstance(sqlite_stores.executions, SQLiteExecutionStore)

    with pytest.raises(ValueError):
        get_stores("postgresql://localhost/stepflow")


def test_runtime_wires_config(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
queue:
  max_attempts: 4
sla:
  warning_window_minutes: 30
directory:
  users:
    - id: mary
      role: manager
"""
    )
    runtime = Runtime.from_config(load_config(str(config_path)))

    assert runtime.queue.max_attempts == 4
    assert runtime.scheduler.warning_window.total_seconds() == 30 * 60
    assert runtime.stores is get_stores()


def test_runtimes_with_different_databases_get_their_own_stores(tmp_path):
    first = StepflowConfig(database_url=f"sqlite://{tmp_path / 'first.db'}")
    second = StepflowConfig(database_url=f"sqlite://{tmp_path / 'second.db'}")

    runtime_a = Runtime.from_config(first)
    runtime_b = Runtime.from_config(second)

    assert runtime_a.stores is not runtime_b.stores
    assert runtime_b.stores.executions._db.db_path.endswith("second.db")
    assert Runtime.from_config(second).stores is runtime_b.stores


@pytest.mark.asyncio
async def test_runtime_directory_from_config(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
directory:
  users:
    - id: dormant
      role: manager
      is_active: false
    - id: mary
      role: manager
"""
    )
    runtime = Runtime.from_config(load_config(str(config_path)))
    assert await runtime.directory.find_active_user_by_role("manager") == "mary"


def test_load_workflow_version(tmp_path):
    path = tmp_path / "purchase.yaml"
    path.write_text(
        """
id: purchase-v1
workflow_id: purchase
steps:
  - id: approve
    kind: approval
    assignee_role: manager
    sla_hours: 24
  - id: done
    kind: notification
    config:
      user_id: requester
edges:
  - source: approve
    target: done
"""
    )

    version = load_workflow_version(path)
    assert version.id == "purchase-v1"
    assert isinstance(version.get_step("approve"), ApprovalStep)
    assert len(version.edges) == 1
