from __future__ import annotations
import uuid


def new_job_id() -> str:
    return uuid.uuid4().hex


def first_line(text: str, limit: int = 200) -> str:
    """Short single-line preview of process output for log events."""
    line = (text or "").strip().splitlines()[0] if (text or "").strip() else ""
    return line if len(line) <= limit else line[: limit - 3] + "..."
