"""
Tests for the submission queue and its single worker
"""

import asyncio

import pytest

from runbox.core.models import STATUS_ORDER, Status
from runbox.errors import InvalidInput, NotFound
from runbox.services.pipeline import EXECUTION_CANCELLED, UNSUPPORTED_LANGUAGE
from runbox.services.scheduler import Scheduler


class RecordingPipeline:
    """Stands in for the real pipeline and checks the serial invariant."""

    def __init__(self, store, delay=0.01, crash_on=()):
        self.store = store
        self.delay = delay
        self.crash_on = set(crash_on)
        self.started = []
        self.active = 0
        self.max_active = 0
        self.max_running_records = 0

    async def execute(self, job):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.append(job.job_id)
        try:
            self.store.set_running(job.job_id)
            running = sum(
                1 for j in self.started if self.store.get(j).status == Status.RUNNING
            )
            self.max_running_records = max(self.max_running_records, running)
            await asyncio.sleep(self.delay)
            if job.source_code in self.crash_on:
                raise RuntimeError(f"boom: {job.source_code}")
            self.store.complete(job.job_id, output=job.source_code, error="")
        finally:
            self.active -= 1


@pytest.fixture
def recording(store):
    return RecordingPipeline(store)


class TestSubmit:
    """Synchronous engine api"""

    @pytest.mark.parametrize(
        "language,code",
        [("", "print(1)"), ("python", ""), (None, "print(1)"), ("python", None)],
    )
    def test_invalid_input_is_rejected(self, recording, store, language, code):
        sched = Scheduler(recording, store)

        with pytest.raises(InvalidInput):
            sched.submit(language, code, "")
        assert len(store) == 0
        assert sched.pending_count == 0

    def test_status_is_pending_right_after_submit(self, recording, store):
        sched = Scheduler(recording, store)
        job_id = sched.submit("python", "print(1+1)")

        assert sched.get_status(job_id).status == Status.PENDING
        assert sched.pending_count == 1

    def test_ids_are_unique(self, recording, store):
        sched = Scheduler(recording, store)
        ids = {sched.submit("python", "x") for _ in range(100)}

        assert len(ids) == 100

    def test_unknown_job_raises_not_found(self, recording, store):
        with pytest.raises(NotFound):
            Scheduler(recording, store).get_status("nonexistent-id")


class TestWorker:
    """Serial FIFO draining"""

    async def test_jobs_start_in_arrival_order_one_at_a_time(self, recording, store):
        sched = Scheduler(recording, store)
        ids = [sched.submit("python", f"job {i}") for i in range(25)]

        async with sched:
            await sched.join()

        assert recording.started == ids
        assert recording.max_active == 1
        assert recording.max_running_records == 1
        for i, job_id in enumerate(ids):
            rec = store.get(job_id)
            assert rec.status == Status.COMPLETED
            assert rec.output == f"job {i}"

    async def test_concurrent_submitters(self, recording, store):
        async with Scheduler(recording, store) as sched:

            async def burst(n):
                out = []
                for i in range(10):
                    out.append(sched.submit("python", f"{n}-{i}"))
                    await asyncio.sleep(0)
                return out

            batches = await asyncio.gather(*(burst(n) for n in range(5)))
            await sched.join()

        assert sorted(recording.started) == sorted(j for b in batches for j in b)
        assert recording.max_active == 1
        # within each submitter the order is preserved
        for batch in batches:
            positions = [recording.started.index(j) for j in batch]
            assert positions == sorted(positions)

    async def test_worker_goes_dormant_and_wakes_up(self, recording, store):
        async with Scheduler(recording, store) as sched:
            first = sched.submit("python", "first")
            await sched.join()
            assert not sched.busy

            second = sched.submit("python", "second")
            await sched.join()

        assert store.get(first).status == Status.COMPLETED
        assert store.get(second).status == Status.COMPLETED

    async def test_crashing_pipeline_fails_job_and_keeps_going(self, store):
        pipeline = RecordingPipeline(store, crash_on={"explode"})
        async with Scheduler(pipeline, store) as sched:
            bad = sched.submit("python", "explode")
            good = sched.submit("python", "fine")
            await sched.join()

        assert store.get(bad).status == Status.ERROR
        assert store.get(bad).error == "boom: explode"
        assert store.get(good).status == Status.COMPLETED

    async def test_running_job_id_tracks_the_worker(self, store):
        pipeline = RecordingPipeline(store, delay=0.2)
        async with Scheduler(pipeline, store) as sched:
            job_id = sched.submit("python", "slow")
            for _ in range(50):
                if sched.busy:
                    break
                await asyncio.sleep(0.01)
            assert sched.running_job_id == job_id
            await sched.join()
            assert sched.running_job_id is None


class TestEndToEnd:
    """Real pipeline behind the scheduler"""

    async def test_python_scenario(self, scheduler, scratch):
        job_id = scheduler.submit("python", "print(1+1)", "")
        await scheduler.join()

        rec = scheduler.get_status(job_id)
        assert rec.status == Status.COMPLETED
        assert rec.output == "2\n"
        assert rec.error == ""
        assert list(scratch.glob("runbox-job-*")) == []

    async def test_unsupported_scenario(self, scheduler):
        job_id = scheduler.submit("ruby", "puts 1")
        await scheduler.join()

        rec = scheduler.get_status(job_id)
        assert rec.status == Status.ERROR
        assert rec.error == UNSUPPORTED_LANGUAGE

    async def test_status_never_goes_backwards(self, scheduler):
        ids = [scheduler.submit("python", f"print({i})") for i in range(3)]
        seen = {job_id: [] for job_id in ids}

        async def watch():
            while not all(scheduler.get_status(j).status.terminal for j in ids):
                for j in ids:
                    status = scheduler.get_status(j).status
                    if not seen[j] or seen[j][-1] != status:
                        seen[j].append(status)
                await asyncio.sleep(0.005)

        await asyncio.wait_for(asyncio.gather(watch(), scheduler.join()), timeout=30)

        for j in ids:
            order = [STATUS_ORDER[s] for s in seen[j]]
            assert order == sorted(order)
            assert scheduler.get_status(j).status == Status.COMPLETED

    async def test_stop_cancels_in_flight_job(self, pipeline, store, scratch):
        sched = Scheduler(pipeline, store)
        await sched.start()
        job_id = sched.submit("python", "import time\ntime.sleep(30)")
        for _ in range(200):
            if store.get(job_id).status == Status.RUNNING:
                break
            await asyncio.sleep(0.025)

        await asyncio.wait_for(sched.stop(), timeout=10)

        rec = store.get(job_id)
        assert rec.status == Status.ERROR
        assert rec.error == EXECUTION_CANCELLED
        assert list(scratch.glob("runbox-job-*")) == []

    async def test_from_settings(self, settings):
        async with Scheduler.from_settings(settings) as sched:
            job_id = sched.submit("python", "print(input()[::-1])", "abc\n")
            await sched.join()

        assert sched.get_status(job_id).output == "cba\n"
