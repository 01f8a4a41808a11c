"""Lightweight dataclasses shared by the Stellar SDK."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

TERMINAL_STATUSES = frozenset({"success", "error", "cancelled"})


def _from_iso(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


@dataclass
class BuildStartRequest:
    executable: str
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "executable": self.executable,
            "args": list(self.args),
            "env": dict(self.env),
        }
        if self.cwd:
            payload["cwd"] = self.cwd
        return payload


@dataclass
class BuildStatus:
    status: str
    exit_code: int | None = None
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildStatus:
        exit_code = data.get("exit_code")
        error = data.get("error")
        return cls(
            status=str(data["status"]),
            exit_code=int(exit_code) if exit_code is not None else None,
            error=str(error) if error is not None else None,
            started_at=_from_iso(data.get("started_at")),
            finished_at=_from_iso(data.get("finished_at")),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_text(self) -> str:
        parts = [self.status]
        if self.exit_code is not None:
            parts.append(f"exit code {self.exit_code}")
        if self.error:
            parts.append(self.error)
        return " | ".join(parts)


@dataclass
class BuildLogs:
    lines: list[str]
    next_cursor: int
    finished: bool

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildLogs:
        raw_lines = data.get("lines") or []
        return cls(
            lines=[str(line) for line in raw_lines],
            next_cursor=int(data.get("next_cursor", 0)),
            finished=bool(data.get("finished", False)),
        )
