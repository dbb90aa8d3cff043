import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner

from roady.cli import cli
from roady.config import load_config, save_config


@pytest.fixture(autouse=True)
def _reset_roady_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger("roady")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def _write_tasks(path: Path, tasks: list[dict], spec_id: str = "auth") -> Path:
    path.write_text(json.dumps({"spec_id": spec_id, "tasks": tasks}), encoding="utf-8")
    return path


TASKS = [
    {"id": "A", "title": "Schema", "priority": "high"},
    {"id": "B", "title": "API", "depends_on": ["A"]},
    {"id": "C", "title": "Docs"},
]


def test_cli_full_lifecycle_commands(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()

    init_result = runner.invoke(cli, ["init", "--name", "auth-service"])
    assert init_result.exit_code == 0
    assert load_config(tmp_path / "roady.toml").project.name == "auth-service"

    tasks_file = _write_tasks(tmp_path / "tasks.json", TASKS)
    import_result = runner.invoke(cli, ["plan", "import", str(tasks_file)])
    assert import_result.exit_code == 0
    assert "3 tasks (pending)" in import_result.output

    show_result = runner.invoke(cli, ["plan", "show"])
    assert show_result.exit_code == 0
    assert '"spec_id": "auth"' in show_result.output
    assert '"fingerprint"' in show_result.output

    not_approved = runner.invoke(cli, ["task", "start", "A", "--owner", "alice"])
    assert not_approved.exit_code != 0
    assert "plan is not approved" in not_approved.output

    approve_result = runner.invoke(cli, ["plan", "approve", "--by", "lead"])
    assert approve_result.exit_code == 0

    blocked_start = runner.invoke(cli, ["task", "start", "B", "--owner", "bob"])
    assert blocked_start.exit_code != 0
    assert "blocked by dependency A" in blocked_start.output

    assert runner.invoke(cli, ["task", "start", "A", "--owner", "alice"]).exit_code == 0
    complete_result = runner.invoke(cli, ["task", "complete", "A", "--evidence", "merged #1"])
    assert complete_result.exit_code == 0
    assert "Unlocked: B" in complete_result.output

    assert runner.invoke(cli, ["task", "verify", "A", "--by", "qa"]).exit_code == 0
    assert runner.invoke(cli, ["task", "block", "C", "--reason", "waiting"]).exit_code == 0

    status_result = runner.invoke(cli, ["status"])
    assert status_result.exit_code == 0
    snapshot = json.loads(status_result.output)
    assert snapshot["progress"] == pytest.approx(33.33)
    assert snapshot["verified"] == ["A"]
    assert snapshot["blocked_tasks"] == ["C"]
    assert snapshot["unlocked_tasks"] == ["B"]

    ready_result = runner.invoke(cli, ["tasks", "--filter", "ready"])
    assert ready_result.exit_code == 0
    assert ready_result.output.split()[:3] == ["B", "pending", "API"]

    all_result = runner.invoke(cli, ["tasks"])
    assert all_result.exit_code == 0
    assert [line.split()[0] for line in all_result.output.splitlines()] == ["A", "B", "C"]

    unblock_result = runner.invoke(cli, ["task", "unblock", "C"])
    assert unblock_result.exit_code == 0

    events = json.loads((tmp_path / ".roady" / "events.json").read_text(encoding="utf-8"))
    assert [event["event"] for event in events["data"]["events"]] == [
        "plan.approved",
        "task.started",
        "task.completed",
        "task.blocked",
        "task.unblocked",
    ]


def test_block_on_done_task_reports_transition(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    assert runner.invoke(cli, ["init"]).exit_code == 0
    tasks_file = _write_tasks(tmp_path / "tasks.json", TASKS)
    assert runner.invoke(cli, ["plan", "import", str(tasks_file)]).exit_code == 0
    assert runner.invoke(cli, ["plan", "approve"]).exit_code == 0
    assert runner.invoke(cli, ["task", "start", "C", "--owner", "carol"]).exit_code == 0
    assert runner.invoke(cli, ["task", "complete", "C"]).exit_code == 0

    block_result = runner.invoke(cli, ["task", "block", "C"])

    assert block_result.exit_code != 0
    assert "cannot transition task C from done to blocked via block" in block_result.output


def test_wip_limit_from_config_vetoes_start(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    assert runner.invoke(cli, ["init"]).exit_code == 0
    config = load_config(tmp_path / "roady.toml")
    config.policy.max_wip = 1
    save_config(tmp_path / "roady.toml", config)

    tasks_file = _write_tasks(tmp_path / "tasks.json", TASKS)
    assert runner.invoke(cli, ["plan", "import", str(tasks_file)]).exit_code == 0
    assert runner.invoke(cli, ["plan", "approve"]).exit_code == 0
    assert runner.invoke(cli, ["task", "start", "A", "--owner", "alice"]).exit_code == 0

    second = runner.invoke(cli, ["task", "start", "C", "--owner", "carol"])
    assert second.exit_code != 0
    assert "cannot transition task C" in second.output

    assert runner.invoke(cli, ["task", "stop", "A"]).exit_code == 0
    assert runner.invoke(cli, ["task", "start", "C", "--owner", "carol"]).exit_code == 0


def test_import_rejects_cycles_without_writing(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    tasks_file = _write_tasks(
        tmp_path / "tasks.json",
        [
            {"id": "A", "title": "Schema", "depends_on": ["B"]},
            {"id": "B", "title": "API", "depends_on": ["A"]},
        ],
    )

    result = runner.invoke(cli, ["plan", "import", str(tasks_file)])

    assert result.exit_code != 0
    assert "cycle detected" in result.output
    assert "No plan found." in runner.invoke(cli, ["plan", "show"]).output


def test_plan_import_reports_bad_priority_by_task(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    tasks_file = _write_tasks(
        tmp_path / "tasks.json",
        [
            {"id": "A", "title": "Schema"},
            {"id": "B", "title": "API", "priority": "urgent"},
        ],
    )

    result = runner.invoke(cli, ["plan", "import", str(tasks_file)])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "task B: invalid task priority: urgent" in result.output
    assert "No plan found." in runner.invoke(cli, ["plan", "show"]).output


def test_status_without_plan(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()

    result = runner.invoke(cli, ["status"])

    assert result.exit_code == 0
    assert json.loads(result.output)["plan_id"] is None
    assert runner.invoke(cli, ["tasks"]).exit_code != 0
