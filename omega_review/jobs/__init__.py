"""
Serial job queue for reproduction tasks.

Components:
    - models: QueueJob and its status/type/sandbox enums
    - runner: Runner interface and the deterministic simulated runner
    - queue: JobQueue, a single-worker FIFO executor
"""

from .models import JobStatus, JobType, QueueJob, SandboxMode
from .queue import JobQueue
from .runner import Runner, SimulatedReproductionRunner, fnv1a_32, get_runner

__all__ = [
    "JobQueue",
    "JobStatus",
    "JobType",
    "QueueJob",
    "Runner",
    "SandboxMode",
    "SimulatedReproductionRunner",
    "fnv1a_32",
    "get_runner",
]
