from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Mapping, Optional

import structlog

from ..core.models import Job
from ..core.utils import first_line
from ..runner.languages import LanguageProfile, get_profile
from ..runner.process import ProcessRunner
from ..settings import Settings
from .job_store import JobStore
from .workspace import WorkspaceManager

logger = structlog.get_logger(__name__)

UNSUPPORTED_LANGUAGE = "Unsupported language"
COMPILATION_FAILED = "Compilation failed"
EXECUTION_ERROR = "Execution error"
EXECUTION_CANCELLED = "Execution cancelled"


class ExecutionPipeline:
    """
    One job end to end: write source into a fresh workspace, compile if the
    language needs it, run against the job's stdin, record the outcome in the
    JobStore, then drop the workspace.
    """

    def __init__(
        self,
        store: JobStore,
        runner: ProcessRunner,
        workspaces: WorkspaceManager,
        *,
        compile_timeout_s: float = 8.0,
        run_timeout_s: float = 8.0,
        runtimes: Optional[Mapping[str, str]] = None,
        profiles: Optional[Mapping[str, LanguageProfile]] = None,
    ):
        self.store = store
        self.runner = runner
        self.workspaces = workspaces
        self.compile_timeout_s = compile_timeout_s
        self.run_timeout_s = run_timeout_s
        self.runtimes = dict(runtimes or {})
        # explicit profiles replace the built-in table (used by tests)
        self.profiles = profiles

    @classmethod
    def from_settings(cls, store: JobStore, settings: Settings) -> "ExecutionPipeline":
        return cls(
            store,
            ProcessRunner(max_output_chars=settings.max_output_chars),
            WorkspaceManager(settings.scratch_root),
            compile_timeout_s=settings.compile_timeout_s,
            run_timeout_s=settings.run_timeout_s,
            runtimes=settings.runtimes,
        )

    def profile_for(self, language: str) -> Optional[LanguageProfile]:
        if self.profiles is not None:
            return self.profiles.get(language)
        return get_profile(language, self.runtimes)

    async def execute(self, job: Job) -> None:
        log = logger.bind(job_id=job.job_id, language=job.language)

        profile = self.profile_for(job.language)
        if profile is None:
            self.store.fail(job.job_id, UNSUPPORTED_LANGUAGE)
            log.info("job_rejected", reason="unsupported_language")
            return

        try:
            with self.workspaces.workspace() as workspace:
                await self._compile_and_run(job, profile, workspace, log)
        except asyncio.CancelledError:
            self.store.fail(job.job_id, EXECUTION_CANCELLED)
            log.warning("job_cancelled")
            raise
        except Exception as e:
            self.store.fail(job.job_id, str(e) or EXECUTION_ERROR)
            log.error("job_errored", error=str(e), error_type=type(e).__name__)

    async def _compile_and_run(
        self, job: Job, profile: LanguageProfile, workspace: Path, log
    ) -> None:
        (workspace / profile.source_file).write_text(job.source_code, encoding="utf-8")
        self.store.set_running(job.job_id)
        log.info("job_started", workspace=str(workspace))

        if profile.compiled:
            argv = profile.compile_argv()
            compiled = await self.runner.run(
                argv[0], argv[1:], cwd=workspace, time_limit=self.compile_timeout_s
            )
            if not compiled.ok:
                self.store.complete(
                    job.job_id,
                    output=compiled.stdout,
                    error=compiled.stderr or COMPILATION_FAILED,
                    exit_code=compiled.exit_code,
                )
                log.info(
                    "compile_failed",
                    exit_code=compiled.exit_code,
                    timed_out=compiled.timed_out,
                    stderr=first_line(compiled.stderr),
                )
                return

        argv = profile.run_argv()
        result = await self.runner.run(
            argv[0], argv[1:],
            cwd=workspace, stdin_text=job.stdin, time_limit=self.run_timeout_s,
        )
        # exit codes are reported, never judged
        self.store.complete(
            job.job_id, output=result.stdout, error=result.stderr, exit_code=result.exit_code
        )
        log.info(
            "job_finished",
            exit_code=result.exit_code,
            timed_out=result.timed_out,
            duration_s=round(result.duration_s, 3),
        )
