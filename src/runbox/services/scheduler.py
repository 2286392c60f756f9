from __future__ import annotations
import asyncio
from typing import Optional

import structlog

from ..core.models import Job, JobRecord
from ..core.utils import new_job_id
from ..errors import InvalidInput, RunboxError
from ..settings import Settings
from .job_store import JobStore
from .pipeline import EXECUTION_ERROR, ExecutionPipeline

logger = structlog.get_logger(__name__)


class Scheduler:
    """
    Submission queue plus its single worker.

    Jobs wait in a FIFO; one worker task takes the head, awaits the whole
    pipeline run, then takes the next one. Because there is exactly one
    consumer, at most one job executes at any time and jobs start in
    arrival order.
    """

    def __init__(self, pipeline: ExecutionPipeline, store: Optional[JobStore] = None):
        self.store = store or pipeline.store
        self.pipeline = pipeline
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self.running_job_id: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Scheduler":
        store = JobStore()
        return cls(ExecutionPipeline.from_settings(store, settings), store)

    # ---------- engine api ----------

    def submit(self, language: str, source_code: str, stdin: str = "") -> str:
        if not language or not source_code:
            raise InvalidInput("language and code are required")

        job = Job(job_id=new_job_id(), language=language, source_code=source_code, stdin=stdin or "")
        # record first, so a status query right after submit never misses
        self.store.add(job.job_id, job.language)
        self._queue.put_nowait(job)
        logger.info("job_submitted", job_id=job.job_id, language=language, queued=self._queue.qsize())
        return job.job_id

    def get_status(self, job_id: str) -> JobRecord:
        return self.store.get(job_id)

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def busy(self) -> bool:
        return self.running_job_id is not None

    # ---------- lifecycle ----------

    async def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._work(), name="runbox-worker")
            logger.info("worker_started")

    async def stop(self) -> None:
        worker, self._worker = self._worker, None
        if worker is None:
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
        logger.info("worker_stopped", pending=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued job has reached a terminal status."""
        await self._queue.join()

    async def __aenter__(self) -> "Scheduler":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    # ---------- worker ----------

    async def _work(self) -> None:
        while True:
            job = await self._queue.get()
            self.running_job_id = job.job_id
            try:
                await self.pipeline.execute(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("worker_pipeline_crashed", job_id=job.job_id)
                self._fail_if_open(job.job_id, str(e) or EXECUTION_ERROR)
            finally:
                self.running_job_id = None
                self._queue.task_done()

    def _fail_if_open(self, job_id: str, error: str) -> None:
        try:
            if not self.store.get(job_id).status.terminal:
                self.store.fail(job_id, error)
        except RunboxError as e:
            logger.error("worker_record_update_failed", job_id=job_id, error=str(e))
