"""
Single-worker job queue.

Flow:
1. Enqueue: job recorded as 'queued', worker woken
2. Claim: worker picks the oldest still-queued job, marks it 'running'
3. Execute: pluggable runner produces an output or raises
4. Complete: job marked 'succeeded' (output) or 'failed' (error)
5. Repeat until no queued job is left, then sleep until the next enqueue

Exactly one worker task exists per queue, so no two jobs ever run at the
same time. Jobs only move forward and are kept in memory for the life of
the process. There is no cancellation: a running job always finishes.
"""
from __future__ import annotations

import asyncio
import threading
from typing import Any, Dict, List, Optional, Union

import structlog

from ..primitives import utc_now
from .models import JobStatus, JobType, QueueJob, SandboxMode
from .runner import Runner

logger = structlog.get_logger()


class JobQueue:
    """In-process FIFO queue drained by one asyncio worker task."""

    def __init__(
        self,
        runner: Runner,
        default_sandbox: Union[str, SandboxMode] = SandboxMode.SIMULATED,
    ):
        self.runner = runner
        self.default_sandbox = SandboxMode(default_sandbox)
        self._jobs: Dict[str, QueueJob] = {}
        self._order: List[str] = []  # most recently enqueued first
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._worker: Optional[asyncio.Task] = None
        self._stopping = False
        self.active_job_id: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        """Start the worker on the current event loop."""
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        self._stopping = False
        self._worker = asyncio.create_task(self._work(), name="job-queue-worker")
        # Pick up anything enqueued before start
        self._wakeup.set()
        logger.info("job_queue_started", runner=self.runner.name)

    async def stop(self) -> None:
        """Stop the worker after the job it is running, if any."""
        worker = self._worker
        if worker is None:
            return
        self._stopping = True
        if self._wakeup is not None:
            self._wakeup.set()
        await worker
        self._worker = None
        logger.info("job_queue_stopped")

    def enqueue(
        self,
        job_type: Union[str, JobType],
        input: Optional[Dict[str, Any]] = None,
        sandbox: Optional[Union[str, SandboxMode]] = None,
    ) -> QueueJob:
        """Record a queued job and wake the worker.

        Raises:
            ValueError: If the job type or sandbox mode is unknown
        """
        job = QueueJob(
            type=JobType(job_type),
            sandbox=SandboxMode(sandbox) if sandbox else self.default_sandbox,
            input=dict(input or {}),
        )
        with self._lock:
            self._jobs[job.id] = job
            self._order.insert(0, job.id)

        logger.info("job_enqueued", job_id=job.id, type=job.type.value, sandbox=job.sandbox.value)
        self._notify()
        return job

    def get_job(self, job_id: str) -> Optional[QueueJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[QueueJob]:
        """All jobs, most recently enqueued first."""
        with self._lock:
            return [self._jobs[job_id] for job_id in self._order]

    def has_pending(self) -> bool:
        with self._lock:
            return any(not job.is_finished for job in self._jobs.values())

    async def join(self, poll_interval: float = 0.01) -> None:
        """Wait until every enqueued job has finished."""
        while self.has_pending():
            if not self.is_running:
                raise RuntimeError("Job worker is not running")
            await asyncio.sleep(poll_interval)

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            counts = {status.value: 0 for status in JobStatus}
            for job in self._jobs.values():
                counts[job.status.value] += 1
        return {
            "worker_running": self.is_running,
            "active_job_id": self.active_job_id,
            "runner": self.runner.name,
            "runner_version": self.runner.version,
            "jobs": counts,
        }

    def _notify(self) -> None:
        loop, wakeup = self._loop, self._wakeup
        if loop is None or wakeup is None or loop.is_closed():
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            wakeup.set()
        else:
            loop.call_soon_threadsafe(wakeup.set)

    def _claim_next(self) -> Optional[QueueJob]:
        """Mark the oldest queued job as running and return it."""
        with self._lock:
            for job_id in reversed(self._order):
                job = self._jobs[job_id]
                if job.status != JobStatus.QUEUED:
                    continue
                running = job.model_copy(
                    update={"status": JobStatus.RUNNING, "started_at": utc_now()}
                )
                self._jobs[job_id] = running
                return running
        return None

    async def _work(self) -> None:
        if self._wakeup is None:
            raise RuntimeError("Job worker is not started")
        while not self._stopping:
            await self._wakeup.wait()
            self._wakeup.clear()
            while not self._stopping:
                job = self._claim_next()
                if job is None:
                    break
                await self._execute(job)

    async def _execute(self, job: QueueJob) -> None:
        self.active_job_id = job.id
        logger.info(
            "job_started", job_id=job.id, runner=self.runner.name, runner_version=self.runner.version
        )
        try:
            output = await self.runner.run(job)
            finished = job.model_copy(
                update={
                    "status": JobStatus.SUCCEEDED,
                    "finished_at": utc_now(),
                    "output": output,
                    "error": None,
                }
            )
            logger.info("job_succeeded", job_id=job.id, verdict=(output or {}).get("verdict"))
        except Exception as e:
            finished = job.model_copy(
                update={
                    "status": JobStatus.FAILED,
                    "finished_at": utc_now(),
                    "error": str(e) or "Queue job failed.",
                }
            )
            logger.error("job_failed", job_id=job.id, error=finished.error)
        finally:
            self.active_job_id = None

        with self._lock:
            self._jobs[job.id] = finished
