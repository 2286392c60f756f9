from __future__ import annotations


class RunboxError(Exception):
    """Base class for engine errors."""


class InvalidInput(RunboxError, ValueError):
    """Submission rejected before a job was created."""


class NotFound(RunboxError, LookupError):
    """No record exists for the requested job id."""

    def __init__(self, job_id: str):
        super().__init__(f"job not found: {job_id}")
        self.job_id = job_id


class EngineFault(RunboxError):
    """The engine itself failed while orchestrating a job."""


class SpawnError(EngineFault):
    """An external command could not be started."""

    def __init__(self, command: str, reason: str):
        super().__init__(f"failed to spawn '{command}': {reason}")
        self.command = command
        self.reason = reason


class InvalidTransition(EngineFault):
    pass
