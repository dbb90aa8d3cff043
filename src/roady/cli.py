from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from roady.config import RoadyConfig, load_config, save_config
from roady.errors import RoadyError
from roady.events import EventRecorder
from roady.logs import setup_logging
from roady.planning.dag import topological_order
from roady.planning.models import Task
from roady.policy import PolicySet
from roady.project import Coordinator
from roady.state import FilePlanRepository, FileStateRepository, JsonStateStore


@dataclass(slots=True)
class Runtime:
    repo_root: Path
    config_path: Path
    config: RoadyConfig
    store: JsonStateStore
    events: EventRecorder
    coordinator: Coordinator


def _resolve_config_path(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


def _load_runtime(repo_root: Path, config_path: Path) -> Runtime:
    config = load_config(config_path)
    log_file = Path(config.logging.file) if config.logging.file else None
    if log_file is not None and not log_file.is_absolute():
        log_file = repo_root / log_file
    setup_logging(config.logging.level, log_file)

    store = JsonStateStore(
        repo_root,
        directory=config.state.directory,
        lock_timeout_seconds=config.state.lock_timeout_seconds,
    )
    plan_repo = FilePlanRepository(store)
    state_repo = FileStateRepository(store)
    events = EventRecorder(store, max_events=config.events.max_events)
    policies = PolicySet.default(max_wip=config.policy.max_wip)
    coordinator = Coordinator(
        plan_repo,
        state_repo,
        events,
        guard=policies.guard(plan_repo, state_repo),
    )
    return Runtime(
        repo_root=repo_root,
        config_path=config_path,
        config=config,
        store=store,
        events=events,
        coordinator=coordinator,
    )


def _runtime(config_value: str) -> Runtime:
    repo_root = Path.cwd().resolve()
    return _load_runtime(repo_root, _resolve_config_path(repo_root, config_value))


@contextmanager
def _surface_errors() -> Iterator[None]:
    try:
        yield
    except RoadyError as exc:
        raise click.ClickException(str(exc)) from exc


def _read_proposed_tasks(path: Path) -> tuple[list[Task], str]:
    try:
        payload: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{path} is not valid JSON: {exc}") from exc
    spec_id = ""
    if isinstance(payload, dict):
        spec_id = str(payload.get("spec_id") or "")
        payload = payload.get("tasks", [])
    if not isinstance(payload, list):
        raise click.ClickException(f"{path} must contain a list of tasks.")
    tasks: list[Task] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            continue
        try:
            tasks.append(Task.from_dict(item))
        except ValueError as exc:
            label = item.get("id") or f"#{index + 1}"
            raise click.ClickException(f"{path}: task {label}: {exc}") from exc
    return tasks, spec_id


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


config_option = click.option("--config", "config_value", default="roady.toml", show_default=True)


@click.group()
def cli() -> None:
    """Roady CLI."""


@cli.command("init")
@click.option("--name", default=None)
@config_option
def init_command(name: str | None, config_value: str) -> None:
    repo_root = Path.cwd().resolve()
    config_path = _resolve_config_path(repo_root, config_value)
    config = load_config(config_path)
    if name:
        config.project.name = name
    save_config(config_path, config)
    store = JsonStateStore(repo_root, directory=config.state.directory)

    click.echo(f"Initialized roady in {repo_root}")
    click.echo(f"Config: {config_path}")
    click.echo(f"State directory: {store.state_dir}")


@cli.group("plan")
def plan_group() -> None:
    """Inspect, import and review the plan."""


@plan_group.command("import")
@click.argument("tasks_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--spec-id", default=None)
@config_option
def plan_import_command(tasks_file: Path, spec_id: str | None, config_value: str) -> None:
    runtime = _runtime(config_value)
    tasks, file_spec_id = _read_proposed_tasks(tasks_file)
    with _surface_errors():
        plan = runtime.coordinator.reconcile_plan(tasks, spec_id=spec_id or file_spec_id)
    click.echo(f"Plan {plan.id}: {len(plan.tasks)} tasks ({plan.approval_status})")


@plan_group.command("show")
@config_option
def plan_show_command(config_value: str) -> None:
    runtime = _runtime(config_value)
    plan = runtime.coordinator.get_plan()
    if plan is None:
        click.echo("No plan found.")
        return
    payload = plan.to_dict()
    payload["fingerprint"] = plan.fingerprint()
    _echo_json(payload)


@plan_group.command("approve")
@click.option("--by", "approver", default="cli", show_default=True)
@config_option
def plan_approve_command(approver: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        runtime.coordinator.approve_plan(approver)
    click.echo(f"Plan approved by {approver}.")


@plan_group.command("reject")
@click.option("--by", "reviewer", default="cli", show_default=True)
@config_option
def plan_reject_command(reviewer: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        runtime.coordinator.reject_plan(reviewer)
    click.echo(f"Plan rejected by {reviewer}.")


@cli.group("task")
def task_group() -> None:
    """Drive task transitions."""


@task_group.command("start")
@click.argument("task_id")
@click.option("--owner", required=True)
@click.option("--rate", "rate_id", default="")
@config_option
def task_start_command(task_id: str, owner: str, rate_id: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        runtime.coordinator.start_task(task_id, owner, rate_id)
    click.echo(f"Started {task_id} ({owner})")


@task_group.command("complete")
@click.argument("task_id")
@click.option("--evidence", default="")
@config_option
def task_complete_command(task_id: str, evidence: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        unlocked = runtime.coordinator.complete_task(task_id, evidence)
    click.echo(f"Completed {task_id}")
    if unlocked:
        click.echo(f"Unlocked: {', '.join(unlocked)}")


@task_group.command("block")
@click.argument("task_id")
@click.option("--reason", default="")
@config_option
def task_block_command(task_id: str, reason: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        runtime.coordinator.block_task(task_id, reason)
    click.echo(f"Blocked {task_id}")


@task_group.command("unblock")
@click.argument("task_id")
@config_option
def task_unblock_command(task_id: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        runtime.coordinator.unblock_task(task_id)
    click.echo(f"Unblocked {task_id}")


@task_group.command("verify")
@click.argument("task_id")
@click.option("--by", "verifier", default="cli", show_default=True)
@config_option
def task_verify_command(task_id: str, verifier: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        runtime.coordinator.verify_task(task_id, verifier)
    click.echo(f"Verified {task_id}")


@task_group.command("stop")
@click.argument("task_id")
@config_option
def task_stop_command(task_id: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        runtime.coordinator.stop_task(task_id)
    click.echo(f"Stopped {task_id}")


@task_group.command("reopen")
@click.argument("task_id")
@config_option
def task_reopen_command(task_id: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        runtime.coordinator.reopen_task(task_id)
    click.echo(f"Reopened {task_id}")


@cli.command("status")
@config_option
def status_command(config_value: str) -> None:
    runtime = _runtime(config_value)
    with _surface_errors():
        snapshot = runtime.coordinator.get_project_snapshot()
    _echo_json(snapshot.to_dict())


@cli.command("tasks")
@click.option(
    "--filter",
    "task_filter",
    type=click.Choice(["all", "ready", "blocked", "in-progress"]),
    default="all",
    show_default=True,
)
@config_option
def tasks_command(task_filter: str, config_value: str) -> None:
    runtime = _runtime(config_value)
    coordinator = runtime.coordinator
    with _surface_errors():
        if task_filter == "ready":
            summaries = coordinator.get_ready_tasks()
        elif task_filter == "blocked":
            summaries = coordinator.get_blocked_tasks()
        elif task_filter == "in-progress":
            summaries = coordinator.get_in_progress_tasks()
        else:
            summaries = coordinator.get_task_summaries()
            plan = coordinator.get_plan()
            if plan is not None:
                order = {
                    task_id: index for index, task_id in enumerate(topological_order(plan.tasks))
                }
                summaries.sort(key=lambda summary: order.get(summary.id, len(order)))

    if not summaries:
        click.echo("No tasks.")
        return
    for summary in summaries:
        owner = f" @{summary.owner}" if summary.owner else ""
        click.echo(f"{summary.id:<16} {summary.status.value:<11} {summary.title}{owner}")
