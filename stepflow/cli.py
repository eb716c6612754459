"""Command line interface for stepflow."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from stepflow.config import load_config, load_workflow_version
from stepflow.contracts import ExecutionInit
from stepflow.errors import StepflowError
from stepflow.persistence import ExecutionStatus, TaskStatus
from stepflow.runtime import Runtime

app = typer.Typer(help="CLI for stepflow approval workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for workflow versions")
execution_app = typer.Typer(help="Commands for inspecting executions")
task_app = typer.Typer(help="Commands for approval tasks")
sla_app = typer.Typer(help="Commands for SLA sweeps")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(task_app, name="task")
app.add_typer(sla_app, name="sla")


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


@app.callback()
def main() -> None:
    """stepflow CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@workflow_app.command("load")
def workflow_load(path: Path) -> None:
    """
    Store a workflow version defined in a YAML file.

    The file holds ``workflow_id``, optional ``id`` and ``version_number``,
    the ordered ``steps`` and the ``edges`` between them.

    Example:
        stepflow workflow load ./purchase_approval.yaml
        # Output: Loaded workflow version 7c1e... (purchase-approval v1, 3 steps)
    """
    if not path.exists():
        _fail("Specified path does not exist")
    try:
        version = load_workflow_version(path)
    except ValidationError as exc:
        _fail(f"Invalid workflow definition: {exc}")

    runtime = Runtime.from_config()
    try:
        asyncio.run(runtime.stores.workflows.save_version(version))
    except StepflowError as exc:
        _fail(str(exc))
    typer.echo(
        f"Loaded workflow version {version.id} "
        f"({version.workflow_id} v{version.version_number}, {len(version.steps)} steps)"
    )


@workflow_app.command("trigger")
def workflow_trigger(
    version_id: str,
    user: str = typer.Option(..., help="User triggering the workflow"),
    data: Optional[str] = typer.Option(None, help="JSON object of execution data"),
) -> None:
    """
    Start an execution of a workflow version and run it until it suspends.

    Example:
        stepflow workflow trigger 7c1e... --user alice --data '{"amount": 250}'
        # Output: Execution 91ab...: running (current step: manager-approval)
    """
    try:
        execution_data = json.loads(data) if data else {}
    except json.JSONDecodeError as exc:
        _fail(f"Invalid --data JSON: {exc}")

    runtime = Runtime.from_config()

    async def _run():
        execution_id = await runtime.engine.trigger(
            ExecutionInit(
                workflow_version_id=version_id,
                triggered_by=user,
                execution_data=execution_data,
            )
        )
        await runtime.queue.join()
        return await runtime.stores.executions.get(execution_id)

    try:
        execution = asyncio.run(_run())
    except StepflowError as exc:
        _fail(str(exc))
    typer.echo(
        f"Execution {execution.id}: {execution.status.value} "
        f"(current step: {execution.current_step_id})"
    )


@execution_app.command("list")
def execution_list(
    status: Optional[ExecutionStatus] = typer.Option(None, help="Filter by status"),
) -> None:
    """List executions with their status and current step."""
    runtime = Runtime.from_config()
    executions = asyncio.run(runtime.stores.executions.list_executions(status=status))
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(
            f"{execution.id}\t{execution.status.value}\t{execution.current_step_id or '-'}"
        )


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """
    Show an execution with its step history.

    Example:
        stepflow execution show 91ab...
        # Output: Execution 91ab...: running
        #         Current step: manager-approval
        #         - notify-requester: completed (Notification sent to alice)
    """
    runtime = Runtime.from_config()
    execution = asyncio.run(runtime.stores.executions.get(execution_id))
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {execution.id}: {execution.status.value}")
    typer.echo(f"Current step: {execution.current_step_id or '-'}")
    if execution.execution_data:
        typer.echo(f"Data: {json.dumps(execution.execution_data)}")
    if execution.error:
        typer.echo(f"Error: {execution.error}")
    for entry in execution.step_history:
        detail = entry.error or entry.result
        typer.echo(
            f"- {entry.step_id}: {entry.status}" + (f" ({detail})" if detail else "")
        )


@task_app.command("list")
def task_list(
    assignee: Optional[str] = typer.Option(None, help="Filter by assignee"),
    status: Optional[TaskStatus] = typer.Option(None, help="Filter by status"),
) -> None:
    """List tasks with assignee, status and due date."""
    runtime = Runtime.from_config()
    tasks = asyncio.run(runtime.tasks.list_tasks(assigned_to=assignee, status=status))
    if not tasks:
        typer.echo("No tasks found")
        return
    for task in tasks:
        due = task.due_date.isoformat() if task.due_date else "-"
        typer.echo(f"{task.id}\t{task.assigned_to}\t{task.status.value}\t{due}")


def _resolve_task(task_id: str, user: str, comment: Optional[str], approve: bool) -> None:
    runtime = Runtime.from_config()

    async def _run():
        if approve:
            task = await runtime.tasks.approve(task_id, user, comment)
        else:
            task = await runtime.tasks.reject(task_id, user, comment)
        await runtime.queue.join()
        return task, await runtime.stores.executions.get(task.execution_id)

    try:
        task, execution = asyncio.run(_run())
    except StepflowError as exc:
        _fail(str(exc))
    typer.echo(f"Task {task.id}: {task.status.value}")
    if execution is not None:
        typer.echo(
            f"Execution {execution.id}: {execution.status.value} "
            f"(current step: {execution.current_step_id})"
        )


@task_app.command("approve")
def task_approve(
    task_id: str,
    user: str = typer.Option(..., help="Assignee approving the task"),
    comment: Optional[str] = typer.Option(None),
) -> None:
    """Approve a pending task and continue its execution."""
    _resolve_task(task_id, user, comment, approve=True)


@task_app.command("reject")
def task_reject(
    task_id: str,
    user: str = typer.Option(..., help="Assignee rejecting the task"),
    comment: Optional[str] = typer.Option(None),
) -> None:
    """Reject a pending task; its execution fails."""
    _resolve_task(task_id, user, comment, approve=False)


@sla_app.command("sweep")
def sla_sweep() -> None:
    """Run one breach sweep and one warning sweep."""
    runtime = Runtime.from_config()

    async def _run():
        breached = await runtime.scheduler.run_breach_tick()
        warned = await runtime.scheduler.run_warning_tick()
        return breached, warned

    breached, warned = asyncio.run(_run())
    typer.echo(f"Breaches flagged: {breached}")
    typer.echo(f"Warnings sent: {warned}")


@sla_app.command("run")
def sla_run(
    lifespan: Optional[float] = typer.Option(
        None, help="Seconds to keep sweeping (default: run indefinitely)"
    ),
) -> None:
    """Run both SLA sweeps on their configured periods."""
    runtime = Runtime.from_config()
    typer.echo(
        f"Starting SLA sweeps (breach every {runtime.scheduler.breach_interval}s, "
        f"warning every {runtime.scheduler.warning_interval}s)"
    )
    asyncio.run(runtime.scheduler.run(lifespan=lifespan))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
