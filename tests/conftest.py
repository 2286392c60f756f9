"""
Shared fixtures: a throwaway scratch root and an engine wired to the
interpreter running the tests, so "python" jobs work on any host.
"""

import sys

import pytest

from runbox.core.models import Job, JobRecord
from runbox.core.utils import new_job_id
from runbox.runner.process import ProcessRunner
from runbox.services.job_store import JobStore
from runbox.services.pipeline import ExecutionPipeline
from runbox.services.scheduler import Scheduler
from runbox.services.workspace import WorkspaceManager
from runbox.settings import Settings


@pytest.fixture
def scratch(tmp_path):
    return tmp_path / "scratch"


@pytest.fixture
def settings(scratch) -> Settings:
    return Settings(
        scratch_root=scratch,
        compile_timeout_s=30,
        run_timeout_s=5,
        runtimes={"python3": sys.executable},
        log_json=False,
    )


@pytest.fixture
def store() -> JobStore:
    return JobStore()


@pytest.fixture
def workspaces(scratch) -> WorkspaceManager:
    return WorkspaceManager(scratch)


@pytest.fixture
def runner() -> ProcessRunner:
    return ProcessRunner()


@pytest.fixture
def pipeline(store, settings) -> ExecutionPipeline:
    return ExecutionPipeline.from_settings(store, settings)


@pytest.fixture
async def scheduler(pipeline, store):
    async with Scheduler(pipeline, store) as sched:
        yield sched


@pytest.fixture
def run_job(store, pipeline):
    """Register and execute one job directly through the pipeline."""

    async def _run(language: str, code: str, stdin: str = "", using=None) -> JobRecord:
        job = Job(job_id=new_job_id(), language=language, source_code=code, stdin=stdin)
        store.add(job.job_id, job.language)
        await (using or pipeline).execute(job)
        return store.get(job.job_id)

    return _run
