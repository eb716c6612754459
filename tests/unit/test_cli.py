import asyncio

import pytest
from typer.testing import CliRunner

import stepflow.persistence as persistence
from stepflow.cli import app
from stepflow.persistence import ExecutionStatus, Stores

WORKFLOW_YAML = """
id: purchase-v1
workflow_id: purchase
steps:
  - id: approve
    kind: approval
    label: Manager approval
    assignee: bob
    sla_hours: 4
  - id: done
    kind: notification
    config:
      user_id: alice
      title: Purchase approved
edges:
  - source: approve
    target: done
"""


@pytest.fixture(autouse=True)
def _isolated(monkeypatch, tmp_path):
    for name in ("STEPFLOW_CONFIG", "STEPFLOW_DATABASE_URL", "DATABASE_URL", "STEPFLOW_EVENTS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def _setup_stores() -> Stores:
    stores = Stores.in_memory()
    persistence._stores_instance = stores
    return stores


def _load(runner, tmp_path):
    path = tmp_path / "purchase.yaml"
    path.write_text(WORKFLOW_YAML)
    return runner.invoke(app, ["workflow", "load", str(path)])


def test_workflow_load_and_missing_path(tmp_path):
    stores = _setup_stores()
    runner = CliRunner()

    result = _load(runner, tmp_path)
    assert result.exit_code == 0, result.output
    assert "Loaded workflow version purchase-v1 (purchase v1, 2 steps)" in result.output
    assert asyncio.run(stores.workflows.get_version("purchase-v1")) is not None

    again = _load(runner, tmp_path)
    assert again.exit_code == 1
    assert "already exists" in again.output

    missing = runner.invoke(app, ["workflow", "load", str(tmp_path / "nope.yaml")])
    assert missing.exit_code == 1
    assert "Specified path does not exist" in missing.output


def test_trigger_approve_and_show(tmp_path):
    stores = _setup_stores()
    runner = CliRunner()
    _load(runner, tmp_path)

    result = runner.invoke(
        app,
        ["workflow", "trigger", "purchase-v1", "--user", "alice", "--data", '{"amount": 250}'],
    )
    assert result.exit_code == 0, result.output
    assert "running (current step: approve)" in result.output

    listing = runner.invoke(app, ["task", "list", "--assignee", "bob"])
    assert listing.exit_code == 0, listing.output
    (task,) = asyncio.run(stores.tasks.list_tasks())
    assert task.id in listing.output
    assert "pending" in listing.output

    approved = runner.invoke(
        app, ["task", "approve", task.id, "--user", "bob", "--comment", "ok"]
    )
    assert approved.exit_code == 0, approved.output
    assert f"Task {task.id}: approved" in approved.output
    assert "completed (current step: done)" in approved.output

    (execution,) = asyncio.run(stores.executions.list_executions(ExecutionStatus.COMPLETED))
    shown = runner.invoke(app, ["execution", "show", execution.id])
    assert shown.exit_code == 0, shown.output
    assert f"Execution {execution.id}: completed" in shown.output
    assert "- approve: approved" in shown.output
    assert "- done: completed (Notification sent to alice)" in shown.output
    assert '"amount": 250' in shown.output


def test_errors_exit_with_code_one(tmp_path):
    stores = _setup_stores()
    runner = CliRunner()
    _load(runner, tmp_path)

    unknown = runner.invoke(app, ["workflow", "trigger", "missing", "--user", "alice"])
    assert unknown.exit_code == 1
    assert "Workflow version not found: missing" in unknown.output

    bad_data = runner.invoke(
        app, ["workflow", "trigger", "purchase-v1", "--user", "alice", "--data", "{oops"]
    )
    assert bad_data.exit_code == 1
    assert "Invalid --data JSON" in bad_data.output

    runner.invoke(app, ["workflow", "trigger", "purchase-v1", "--user", "alice"])
    (task,) = asyncio.run(stores.tasks.list_tasks())
    wrong_user = runner.invoke(app, ["task", "reject", task.id, "--user", "mallory"])
    assert wrong_user.exit_code == 1
    assert "not assigned" in wrong_user.output

    show_missing = runner.invoke(app, ["execution", "show", "missing-id"])
    assert show_missing.exit_code == 1
    assert "Execution not found" in show_missing.output


def test_reject_and_list_filters(tmp_path):
    stores = _setup_stores()
    runner = CliRunner()
    _load(runner, tmp_path)
    runner.invoke(app, ["workflow", "trigger", "purchase-v1", "--user", "alice"])
    (task,) = asyncio.run(stores.tasks.list_tasks())

    rejected = runner.invoke(app, ["task", "reject", task.id, "--user", "bob"])
    assert rejected.exit_code == 0, rejected.output
    assert "failed" in rejected.output

    failed = runner.invoke(app, ["execution", "list", "--status", "failed"])
    assert task.execution_id in failed.output
    running = runner.invoke(app, ["execution", "list", "--status", "running"])
    assert "No executions found" in running.output
    pending = runner.invoke(app, ["task", "list", "--status", "pending"])
    assert "No tasks found" in pending.output


def test_sla_sweep_reports_counts():
    _setup_stores()
    runner = CliRunner()

    result = runner.invoke(app, ["sla", "sweep"])
    assert result.exit_code == 0, result.output
    assert "Breaches flagged: 0" in result.output
    assert "Warnings sent: 0" in result.output
