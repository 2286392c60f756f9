from __future__ import annotations
import dataclasses
import threading
from typing import Dict, Optional

from ..core.models import STATUS_ORDER, JobRecord, Status, utcnow
from ..errors import InvalidTransition, NotFound


class JobStore:
    """
    In-memory registry: latest JobRecord per job id.

    Writers are the execution pipeline; readers (status queries) may come from
    other threads, so every access goes through one lock and callers only ever
    get copies.
    """

    def __init__(self):
        self._records: Dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def add(self, job_id: str, language: str) -> JobRecord:
        with self._lock:
            if job_id in self._records:
                raise InvalidTransition(f"job {job_id} already registered")
            record = JobRecord(job_id=job_id, language=language)
            self._records[job_id] = record
            return dataclasses.replace(record)

    def get(self, job_id: str) -> JobRecord:
        with self._lock:
            record = self._records.get(job_id)
            if record is None:
                raise NotFound(job_id)
            return dataclasses.replace(record)

    def set_running(self, job_id: str) -> JobRecord:
        return self._update(
            job_id, Status.RUNNING, output="", error="", exit_code=None, started_at=utcnow()
        )

    def complete(
        self, job_id: str, output: str, error: str, exit_code: Optional[int] = None
    ) -> JobRecord:
        return self._update(
            job_id, Status.COMPLETED,
            output=output, error=error, exit_code=exit_code, finished_at=utcnow(),
        )

    def fail(self, job_id: str, error: str, output: str = "") -> JobRecord:
        return self._update(
            job_id, Status.ERROR, output=output, error=error, finished_at=utcnow()
        )

    def _update(self, job_id: str, status: Status, **changes) -> JobRecord:
        with self._lock:
            record = self._records.get(job_id)
            if record is None:
                raise NotFound(job_id)
            if record.status.terminal or STATUS_ORDER[status] <= STATUS_ORDER[record.status]:
                raise InvalidTransition(
                    f"job {job_id}: {record.status.value} -> {status.value}"
                )
            # swap in a new object; readers holding a copy never see a half-written record
            record = dataclasses.replace(record, status=status, **changes)
            self._records[job_id] = record
            return dataclasses.replace(record)
