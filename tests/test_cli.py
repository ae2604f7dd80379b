"""Tests for the operator CLI."""

import json

import pytest
from typer.testing import CliRunner

from omega_review.cli import app
from omega_review.market.models import BountyStatus
from omega_review.market.service import BountyMarket

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Point the CLI at tmp_path files and disable the runner delay."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OMEGA_ARTIFACT_DIR", str(tmp_path / "artifacts"))
    monkeypatch.setenv("OMEGA_MARKET_FILE", str(tmp_path / "market.json"))
    monkeypatch.setenv("OMEGA_RUNNER_DELAY_SCALE", "0")
    return tmp_path


@pytest.fixture
def payload_file(workspace, sample_payload):
    path = workspace / "payload.json"
    path.write_text(json.dumps(sample_payload))
    return path


def _bounties(workspace):
    market = BountyMarket(workspace / "market.json")
    try:
        return market.list()
    finally:
        market.close()


class TestMint:
    def test_mint_seeds_bounties(self, workspace, payload_file):
        result = runner.invoke(app, ["mint", str(payload_file)])

        assert result.exit_code == 0, result.output
        assert "Minted" in result.output
        (bounty,) = _bounties(workspace)
        assert bounty.status == BountyStatus.OPEN
        assert len(list((workspace / "artifacts").glob("*.json"))) == 1

    def test_mint_without_seed(self, workspace, payload_file):
        result = runner.invoke(app, ["mint", str(payload_file), "--no-seed"])

        assert result.exit_code == 0, result.output
        assert _bounties(workspace) == []
        assert len(list((workspace / "artifacts").glob("*.json"))) == 1

    def test_mint_rejects_bad_payload(self, workspace):
        path = workspace / "bad.json"
        path.write_text("[1, 2]")
        result = runner.invoke(app, ["mint", str(path)])
        assert result.exit_code == 1

    def test_artifacts_and_show(self, workspace, payload_file):
        runner.invoke(app, ["mint", str(payload_file)])
        (artifact_file,) = (workspace / "artifacts").glob("*.json")
        digest = json.loads(artifact_file.read_text())["hash"]

        listing = runner.invoke(app, ["artifacts"])
        assert listing.exit_code == 0, listing.output
        assert "Artifacts" in listing.output

        shown = runner.invoke(app, ["show-artifact", digest])
        assert shown.exit_code == 0, shown.output
        assert '"protocol"' in shown.output

        missing = runner.invoke(app, ["show-artifact", "sha256:" + "0" * 64])
        assert missing.exit_code == 1


class TestMarketCommands:
    @pytest.fixture
    def bounty_id(self, workspace, payload_file):
        runner.invoke(app, ["mint", str(payload_file)])
        (bounty,) = _bounties(workspace)
        return bounty.id

    def test_full_lifecycle(self, workspace, bounty_id):
        assert runner.invoke(app, ["claim", bounty_id, "alice"]).exit_code == 0

        rejected = runner.invoke(app, ["claim", bounty_id, "bob"])
        assert rejected.exit_code == 1
        assert "BOUNTY_NOT_OPEN" in rejected.output

        submitted = runner.invoke(app, ["submit", bounty_id, "alice", "pass", "--notes", "reran"])
        assert submitted.exit_code == 0, submitted.output

        self_audit = runner.invoke(app, ["claim-audit", bounty_id, "alice"])
        assert self_audit.exit_code == 1
        assert "SELF_AUDIT_NOT_ALLOWED" in self_audit.output

        assert runner.invoke(app, ["claim-audit", bounty_id, "carol"]).exit_code == 0
        assert runner.invoke(app, ["submit-audit", bounty_id, "carol", "confirm"]).exit_code == 0

        (bounty,) = _bounties(workspace)
        assert bounty.status == BountyStatus.PASSED
        assert bounty.last_attempt.notes == "reran"
        assert bounty.audit.claimed_by == "carol"

    def test_invalid_result(self, workspace, bounty_id):
        runner.invoke(app, ["claim", bounty_id, "alice"])
        result = runner.invoke(app, ["submit", bounty_id, "alice", "maybe"])
        assert result.exit_code == 1
        assert "INVALID_REQUEST" in result.output

    def test_bounties_listing(self, workspace, bounty_id):
        result = runner.invoke(app, ["bounties", "--status", "open"])
        assert result.exit_code == 0, result.output
        assert "Bounties" in result.output

        assert runner.invoke(app, ["bounties", "--status", "bogus"]).exit_code == 1


class TestRunJob:
    def test_run_job_prints_output(self, workspace):
        result = runner.invoke(app, ["run-job", "X", "--paper-id", "p1"])

        assert result.exit_code == 0, result.output
        assert "succeeded" in result.output
        assert '"verdict"' in result.output

    def test_run_job_rejects_unknown_sandbox(self, workspace):
        result = runner.invoke(app, ["run-job", "X", "--sandbox", "vm"])
        assert result.exit_code == 1
