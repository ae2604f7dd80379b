"""
Omega Review

Content-addressed review artifacts, reproduction bounties and a serial
reproduction job queue.
"""

import importlib.metadata

__version__ = importlib.metadata.version("omega-review")

from .artifacts import Artifact, ArtifactStore, hash_payload, stable_stringify
from .core import Orchestrator
from .jobs import JobQueue, QueueJob
from .market import Bounty, BountyMarket, MarketError

__all__ = [
    "Artifact",
    "ArtifactStore",
    "Bounty",
    "BountyMarket",
    "JobQueue",
    "MarketError",
    "Orchestrator",
    "QueueJob",
    "hash_payload",
    "stable_stringify",
]
