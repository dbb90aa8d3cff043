from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(slots=True)
class ProjectConfig:
    name: str = "my-project"
    project_id: str = ""


@dataclass(slots=True)
class StateConfig:
    directory: str = ".roady"
    lock_timeout_seconds: float = 3.0


@dataclass(slots=True)
class PolicyConfig:
    max_wip: int = 0


@dataclass(slots=True)
class EventsConfig:
    max_events: int = 200


@dataclass(slots=True)
class LoggingConfig:
    level: LogLevel = "WARNING"
    file: str = ""


@dataclass(slots=True)
class RoadyConfig:
    project: ProjectConfig
    state: StateConfig
    policy: PolicyConfig
    events: EventsConfig
    logging: LoggingConfig

    @classmethod
    def default(cls) -> RoadyConfig:
        return cls.from_dict({})

    @classmethod
    def from_dict(cls, data: dict) -> RoadyConfig:
        return cls(
            project=ProjectConfig(**data.get("project", {})),
            state=StateConfig(**data.get("state", {})),
            policy=PolicyConfig(**data.get("policy", {})),
            events=EventsConfig(**data.get("events", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict:
        return {
            "project": {
                "name": self.project.name,
                "project_id": self.project.project_id,
            },
            "state": {
                "directory": self.state.directory,
                "lock_timeout_seconds": self.state.lock_timeout_seconds,
            },
            "policy": {
                "max_wip": self.policy.max_wip,
            },
            "events": {
                "max_events": self.events.max_events,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
            },
        }


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0")
        return rendered + "0" if rendered.endswith(".") else rendered
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: RoadyConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    for section in ["project", "state", "policy", "events", "logging"]:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> RoadyConfig:
    if not path.exists():
        return RoadyConfig.default()
    return RoadyConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: RoadyConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
