"""
API tests for the artifact, market and queue endpoints.

Each test builds its own app over tmp_path files; the TestClient context
runs the lifespan so the job worker is live.
"""

import time

import pytest
from fastapi.testclient import TestClient

from conftest import make_payload
from omega_review.api import create_app


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings=settings)) as test_client:
        yield test_client


def _publish(client, payload, **extra):
    resp = client.post("/artifacts", json={"payload": payload, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _error_code(resp):
    return resp.json()["detail"]["error"]["code"]


def _wait_for_job(client, job_id, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = client.get(f"/queue/job/{job_id}").json()
        if job["status"] in ("succeeded", "failed"):
            return job
        time.sleep(0.01)
    pytest.fail(f"job {job_id} did not finish")


class TestSystemEndpoints:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert resp.headers["cache-control"] == "no-store"

    def test_version(self, client):
        resp = client.get("/version")
        assert resp.status_code == 200
        assert resp.json()["version"]

    def test_status(self, client, sample_payload):
        _publish(client, sample_payload)
        status = client.get("/status").json()
        assert status["is_running"] is True
        assert status["artifacts"] == 1
        assert status["bounties"] == {"open": 1}

    def test_title_follows_settings(self, settings):
        renamed = settings.model_copy(update={"app_name": "Review Staging"})
        assert create_app(settings=renamed).title == "Review Staging"


class TestArtifactEndpoints:
    def test_publish_returns_artifact_and_bounties(self, client, sample_payload):
        body = _publish(client, sample_payload)

        artifact = body["artifact"]
        assert artifact["hash"].startswith("sha256:")
        assert artifact["payload"] == sample_payload
        assert [b["status"] for b in body["bounties"]] == ["open"]
        assert body["bounties"][0]["rewardELF"] == 180

    def test_get_by_hash(self, client, sample_payload):
        digest = _publish(client, sample_payload)["artifact"]["hash"]

        resp = client.get(f"/artifacts/{digest}")
        assert resp.status_code == 200
        assert resp.json()["hash"] == digest
        assert resp.headers["cache-control"] == "no-store"

    def test_unknown_or_malformed_hash(self, client):
        assert client.get("/artifacts/sha256:" + "0" * 64).status_code == 404
        assert client.get("/artifacts/not-a-hash").status_code == 404

    def test_list_summaries(self, client, sample_payload):
        digest = _publish(client, sample_payload)["artifact"]["hash"]

        body = client.get("/artifacts").json()
        assert body["count"] == 1
        (summary,) = body["artifacts"]
        assert summary["hash"] == digest
        assert summary["paperId"] == "p1"
        assert summary["paperTitle"] == "Attention Is Enough"
        assert summary["taskCount"] == 1
        assert summary["highRiskCount"] == 1
        assert [t["id"] for t in summary["bountyTasks"]] == ["t1"]

    def test_publish_requires_payload_object(self, client):
        assert client.post("/artifacts", json={"payload": [1, 2]}).status_code == 422
        assert client.post("/artifacts", json={}).status_code == 422

    def test_publish_with_reproductions_enqueues_jobs(self, client, sample_payload):
        body = _publish(client, sample_payload, enqueueReproductions=True)

        task = body["artifact"]["payload"]["tasks"][0]
        assert task["status"] == "queued"
        job = _wait_for_job(client, task["queueJobId"])
        assert job["status"] == "succeeded"
        assert job["input"]["bountyId"] == "t1"

    def test_publish_with_numeric_doi_still_seeds(self, client):
        payload = make_payload(paper={"id": "p1", "title": "T", "doi": 1234})
        body = _publish(client, payload)

        (bounty,) = body["bounties"]
        assert "paperDoi" not in bounty
        assert client.get(f"/artifacts/{body['artifact']['hash']}").status_code == 200


class TestMarketEndpoints:
    @pytest.fixture
    def bounty_id(self, client, sample_payload):
        return _publish(client, sample_payload)["bounties"][0]["id"]

    def test_list_and_get(self, client, bounty_id):
        assert [b["id"] for b in client.get("/market/bounties").json()["bounties"]] == [bounty_id]
        assert client.get("/market/bounties", params={"status": "claimed"}).json() == {"bounties": []}
        assert client.get("/market/bounties", params={"status": "nope"}).status_code == 400

        resp = client.get(f"/market/bounties/{bounty_id}")
        assert resp.status_code == 200
        assert resp.json()["status"] == "open"
        assert client.get("/market/bounties/bty-missing").status_code == 404

    def test_full_lifecycle(self, client, bounty_id):
        resp = client.post("/market/bounties/claim", json={"id": bounty_id, "handle": "alice"})
        assert resp.status_code == 200
        assert resp.json()["bounty"]["claimedBy"] == "alice"

        resp = client.post(
            "/market/bounties/submit", json={"id": bounty_id, "handle": "bob", "result": "pass"}
        )
        assert resp.status_code == 409
        assert _error_code(resp) == "CLAIMED_BY_ANOTHER"

        resp = client.post(
            "/market/bounties/submit",
            json={
                "id": bounty_id,
                "handle": "alice",
                "result": "pass",
                "artifactUrl": "https://example.org/run",
                "notes": "  ",
            },
        )
        assert resp.status_code == 200
        bounty = resp.json()["bounty"]
        assert bounty["status"] == "pass_pending_audit"
        assert bounty["audit"] == {"version": 1, "status": "pending", "rewardELF": 63}
        assert bounty["lastAttempt"]["artifactUrl"] == "https://example.org/run"
        assert "notes" not in bounty["lastAttempt"]

        resp = client.post("/market/bounties/audit/claim", json={"id": bounty_id, "handle": "alice"})
        assert resp.status_code == 409
        assert _error_code(resp) == "SELF_AUDIT_NOT_ALLOWED"

        resp = client.post("/market/bounties/audit/claim", json={"id": bounty_id, "handle": "carol"})
        assert resp.status_code == 200
        assert resp.json()["bounty"]["audit"]["status"] == "claimed"

        resp = client.post(
            "/market/bounties/audit/submit",
            json={"id": bounty_id, "handle": "carol", "decision": "confirm"},
        )
        assert resp.status_code == 200
        assert resp.json()["bounty"]["status"] == "passed"

    def test_invalid_requests(self, client, bounty_id):
        resp = client.post("/market/bounties/claim", json={"id": bounty_id, "handle": ""})
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == {"code": "INVALID_REQUEST", "message": "Missing handle."}

        resp = client.post("/market/bounties/claim", json={"id": "bty-missing", "handle": "alice"})
        assert resp.status_code == 404
        assert _error_code(resp) == "BOUNTY_NOT_FOUND"

        client.post("/market/bounties/claim", json={"id": bounty_id, "handle": "alice"})
        resp = client.post(
            "/market/bounties/submit", json={"id": bounty_id, "handle": "alice", "result": "maybe"}
        )
        assert resp.status_code == 400
        assert _error_code(resp) == "INVALID_REQUEST"

    def test_double_claim_conflict(self, client, bounty_id):
        client.post("/market/bounties/claim", json={"id": bounty_id, "handle": "alice"})
        resp = client.post("/market/bounties/claim", json={"id": bounty_id, "handle": "bob"})
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"]["message"] == "Bounty is not open."


class TestRateLimiting:
    def test_claims_are_rate_limited_per_client(self, settings):
        limited = settings.model_copy(update={"rate_limit_claim": 2})
        with TestClient(create_app(settings=limited)) as client:
            body = {"id": "bty-missing", "handle": "alice"}
            assert client.post("/market/bounties/claim", json=body).status_code == 404
            assert client.post("/market/bounties/claim", json=body).status_code == 404

            resp = client.post("/market/bounties/claim", json=body)
            assert resp.status_code == 429
            assert _error_code(resp) == "RATE_LIMITED"

            other = client.post(
                "/market/bounties/claim", json=body, headers={"X-Forwarded-For": "203.0.113.9"}
            )
            assert other.status_code == 404

    def test_reads_are_not_limited(self, settings):
        limited = settings.model_copy(update={"rate_limit_claim": 1})
        with TestClient(create_app(settings=limited)) as client:
            for _ in range(5):
                assert client.get("/market/bounties").status_code == 200


class TestQueueEndpoints:
    def test_enqueue_and_poll(self, client):
        resp = client.post("/queue/jobs", json={"type": "reproduction_ticket", "input": {"claim": "X"}})
        assert resp.status_code == 201
        job = resp.json()["job"]
        assert job["status"] == "queued"
        assert job["sandbox"] == "simulated"

        finished = _wait_for_job(client, job["id"])
        assert finished["status"] == "succeeded"
        assert finished["output"]["verdict"] in ("pass", "fail")

        jobs = client.get("/queue/jobs").json()["jobs"]
        assert [j["id"] for j in jobs] == [job["id"]]

    def test_invalid_job(self, client):
        assert client.post("/queue/jobs", json={"type": "benchmark"}).status_code == 400
        assert (
            client.post("/queue/jobs", json={"type": "reproduction_ticket", "sandbox": "vm"}).status_code
            == 400
        )

    def test_unknown_job(self, client):
        assert client.get("/queue/job/job-missing").status_code == 404
