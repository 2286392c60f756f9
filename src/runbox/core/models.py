from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Status(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"

    @property
    def terminal(self) -> bool:
        return self in (Status.COMPLETED, Status.ERROR)


# position of each status in PENDING -> RUNNING -> {COMPLETED | ERROR}
STATUS_ORDER = {
    Status.PENDING: 0,
    Status.RUNNING: 1,
    Status.COMPLETED: 2,
    Status.ERROR: 2,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Job:
    job_id: str
    language: str     # "cpp" | "python" | "java" | "javascript" | ...
    source_code: str
    stdin: str = ""


@dataclass
class JobRecord:
    job_id: str
    language: str
    status: Status = Status.PENDING
    output: str = ""
    error: str = ""
    exit_code: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass
class ProcessResult:
    exit_code: Optional[int]  # negative signal number when killed on POSIX
    stdout: str
    stderr: str
    timed_out: bool = False
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0
