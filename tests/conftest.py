"""Test configuration and fixtures."""

from typing import Any, Dict

import pytest
import pytest_asyncio

from omega_review.artifacts.store import ArtifactStore
from omega_review.config import Settings
from omega_review.core.orchestrator import Orchestrator
from omega_review.market.service import BountyMarket


def make_payload(**overrides) -> Dict[str, Any]:
    """Create a review payload with one reproduction task."""
    payload: Dict[str, Any] = {
        "paper": {"id": "p1", "title": "Attention Is Enough", "doi": "10.1000/p1"},
        "tasks": [{"id": "t1", "claim": "X", "rewardELF": 180, "stakeELF": 40}],
        "riskFlags": [
            {"severity": "high", "label": "small sample"},
            {"severity": "low", "label": "typo"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def sample_payload() -> Dict[str, Any]:
    return make_payload()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with every backing file under tmp_path and no runner delay."""
    return Settings(
        artifact_dir=str(tmp_path / "artifacts"),
        market_file=str(tmp_path / "market.json"),
        runner_delay_scale=0.0,
    )


@pytest.fixture
def artifact_store(tmp_path):
    store = ArtifactStore(tmp_path / "artifacts")
    yield store
    store.close()


@pytest.fixture
def market(tmp_path):
    bounty_market = BountyMarket(tmp_path / "market.json")
    yield bounty_market
    bounty_market.close()


@pytest_asyncio.fixture
async def orchestrator(settings) -> Orchestrator:
    """Create a test orchestrator instance."""
    orch = Orchestrator.from_settings(settings)
    yield orch
    if orch.is_running:
        await orch.stop()
    orch.close()
