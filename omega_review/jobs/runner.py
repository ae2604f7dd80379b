"""
Reproduction runners for the job queue.

The bundled runner is a deterministic stand-in: it derives a score from a
hash of the job input, so the same input always yields the same verdict. A
real sandboxed backend replaces it by implementing ``Runner`` without any
change to the queue.

Contract: ``run(job)`` returns ``{"verdict", "score", "note", ...}`` or
raises. Runners must not block the event loop; blocking work belongs in a
thread (``asyncio.to_thread``). Timeouts are the runner's responsibility.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict

from ..artifacts.canonical import stable_stringify
from .models import JobType, QueueJob, SandboxMode

PASS_THRESHOLD = 0.18

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a over the UTF-16 code units of ``text``."""
    value = _FNV_OFFSET
    encoded = text.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        value ^= encoded[i] | (encoded[i + 1] << 8)
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    return value


class Runner(ABC):
    """Abstract base class for job runners."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Runner name for logging and identification."""
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        """Runner version."""
        pass

    @abstractmethod
    async def run(self, job: QueueJob) -> Dict[str, Any]:
        """Execute ``job`` and return its output.

        Args:
            job: The running job; ``job.input`` carries the structured input

        Returns:
            Output dict with at least verdict, score and note
        """
        pass


class SimulatedReproductionRunner(Runner):
    """Deterministic placeholder for a sandboxed reproduction run.

    - Seeds from a hash of the canonical job input
    - Waits 0.8-1.5s (scaled by ``delay_scale``) to mimic work
    - score = (seed % 1000) / 1000, verdict pass when score > 0.18
    """

    def __init__(self, delay_scale: float = 1.0):
        self.delay_scale = delay_scale

    @property
    def name(self) -> str:
        return "simulated"

    @property
    def version(self) -> str:
        return "0.1.0"

    def evaluate(self, job: QueueJob) -> Dict[str, Any]:
        seed = fnv1a_32(stable_stringify(job.input))
        score = (seed % 1000) / 1000
        verdict = "pass" if score > PASS_THRESHOLD else "fail"
        if job.sandbox == SandboxMode.SIMULATED:
            note = "Simulated execution (demo). Replace with sandboxed runner."
        else:
            note = "Sandbox runner required."
        return {
            "verdict": verdict,
            "score": round(score, 3),
            "sandbox": job.sandbox.value,
            "note": note,
            "seed": seed,
        }

    async def run(self, job: QueueJob) -> Dict[str, Any]:
        if job.type != JobType.REPRODUCTION_TICKET:
            raise ValueError(f"Unsupported job type: {job.type}")

        result = self.evaluate(job)
        delay = (0.8 + (result["seed"] % 700) / 1000) * self.delay_scale
        if delay > 0:
            await asyncio.sleep(delay)
        return result


def get_runner(runner_type: str = "simulated", delay_scale: float = 1.0) -> Runner:
    """Factory function to get a runner by type.

    Args:
        runner_type: Type of runner ("simulated"; sandboxed backends later)
        delay_scale: Delay multiplier for the simulated runner

    Returns:
        Runner instance

    Raises:
        ValueError: If runner type is not supported
    """
    if runner_type == "simulated":
        return SimulatedReproductionRunner(delay_scale=delay_scale)
    else:
        raise ValueError(
            f"Unsupported runner type: {runner_type}. "
            f"Supported: simulated"
        )
