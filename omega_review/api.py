"""
FastAPI application exposing artifacts, the bounty market and the job queue.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import Settings, get_settings
from .core.orchestrator import Orchestrator
from .jobs.models import JobType
from .market.errors import BountyNotFoundError, InvalidRequestError, MarketError
from .market.models import REPRODUCTION_TASK_KIND, Evidence
from .policy.rate_limit import RateLimiter, client_id

# Initialize structured logging
logger = structlog.get_logger()


# Request schemas
class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class PublishRequest(_Request):
    payload: Dict[str, Any]
    enqueue_reproductions: bool = False


class ClaimRequest(_Request):
    id: str = ""
    handle: str = ""


class SubmitRequest(ClaimRequest):
    result: str = ""
    artifact_url: Optional[str] = None
    artifact_hash: Optional[str] = None
    notes: Optional[str] = None


class AuditSubmitRequest(ClaimRequest):
    decision: str = ""
    artifact_url: Optional[str] = None
    artifact_hash: Optional[str] = None
    notes: Optional[str] = None


class EnqueueRequest(_Request):
    type: str = JobType.REPRODUCTION_TICKET.value
    input: Dict[str, Any] = Field(default_factory=dict)
    sandbox: Optional[str] = None


def _market_status_code(error: MarketError) -> int:
    if isinstance(error, InvalidRequestError):
        return 400
    if isinstance(error, BountyNotFoundError):
        return 404
    return 409


def _rejected(error: MarketError) -> HTTPException:
    logger.info("market_operation_rejected", code=error.code, message=error.message)
    return HTTPException(status_code=_market_status_code(error), detail=error.to_dict())


def artifact_summary(artifact) -> Dict[str, Any]:
    """Compact listing entry for an artifact."""
    tasks = artifact.tasks
    risk_flags = artifact.payload.get("riskFlags")
    risk_flags = risk_flags if isinstance(risk_flags, list) else []
    bounty_tasks = [
        t for t in tasks
        if isinstance(t, dict) and t.get("kind") in (None, REPRODUCTION_TASK_KIND)
    ]
    return {
        "hash": artifact.hash,
        "id": artifact.id,
        "createdAt": artifact.to_dict()["createdAt"],
        "protocol": artifact.protocol,
        "paperId": artifact.paper.get("id"),
        "paperTitle": artifact.paper.get("title"),
        "taskCount": len(tasks),
        "bountyTasks": bounty_tasks[:3],
        "highRiskCount": len(
            [f for f in risk_flags if isinstance(f, dict) and f.get("severity") == "high"]
        ),
    }


def create_app(
    orchestrator: Optional[Orchestrator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the application.

    Args:
        orchestrator: Pre-built orchestrator (tests); built from settings otherwise
        settings: Settings to use (default: process settings)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        logger.info("Starting", app=settings.app_name)
        orch = orchestrator or Orchestrator.from_settings(settings)
        app.state.orchestrator = orch
        await orch.start()

        yield

        logger.info("Shutting down", app=settings.app_name)
        await orch.stop()
        if orchestrator is None:
            orch.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        description="Review artifacts, reproduction bounties and the reproduction job queue",
        version=importlib.metadata.version("omega-review"),
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.rate_limiter = RateLimiter()

    @app.middleware("http")
    async def no_store(request: Request, call_next):
        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store"
        return response

    def get_orchestrator(request: Request) -> Orchestrator:
        orch = getattr(request.app.state, "orchestrator", None)
        if orch is None:
            raise HTTPException(status_code=503, detail="Orchestrator not initialized")
        return orch

    def rate_limited(key: str, limit_of: Callable[[Settings], int]):
        def dependency(request: Request) -> None:
            peer = request.client.host if request.client else None
            decision = request.app.state.rate_limiter.check(
                key,
                client_id(request.headers, peer),
                limit_of(settings),
                settings.rate_limit_window_seconds,
            )
            if not decision.allowed:
                logger.warning("rate_limited", key=key, client=decision.client)
                raise HTTPException(
                    status_code=429,
                    detail={
                        "error": {
                            "code": "RATE_LIMITED",
                            "message": "Rate limit exceeded.",
                            "resetAt": decision.reset_at.isoformat(),
                        }
                    },
                )

        return dependency

    # Health and Info Endpoints
    @app.get("/health", tags=["system"])
    async def health() -> Dict[str, str]:
        """Basic health check endpoint."""
        return {"status": "ok"}

    @app.get("/version", tags=["system"])
    def version() -> Dict[str, str]:
        """Return the version of the application."""
        return {"version": importlib.metadata.version("omega-review")}

    @app.get("/status", tags=["system"])
    async def status(orch: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
        """Get comprehensive system status."""
        return orch.get_status()

    # Artifact Endpoints
    @app.get("/artifacts", tags=["artifacts"])
    async def list_artifacts(orch: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
        """List artifacts, newest first."""
        artifacts = orch.artifacts.list()
        return {
            "count": len(artifacts),
            "artifacts": [artifact_summary(a) for a in artifacts],
        }

    @app.post(
        "/artifacts",
        status_code=201,
        tags=["artifacts"],
        dependencies=[Depends(rate_limited("artifact_mint_v1", lambda s: s.rate_limit_mint))],
    )
    async def publish_artifact(
        body: PublishRequest, orch: Orchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        """Mint and store a review payload, then seed its bounties."""
        try:
            artifact = orch.publish(body.payload, enqueue_reproductions=body.enqueue_reproductions)
        except TypeError as e:
            raise HTTPException(status_code=400, detail=f"Invalid payload: {e}")

        bounties = [b.to_dict() for b in orch.market.list() if b.artifact_hash == artifact.hash]
        return {"artifact": artifact.to_dict(), "bounties": bounties}

    @app.get("/artifacts/{artifact_hash}", tags=["artifacts"])
    async def get_artifact(
        artifact_hash: str, orch: Orchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        """Get an artifact by hash."""
        artifact = orch.artifacts.get(artifact_hash.strip())
        if artifact is None:
            raise HTTPException(status_code=404, detail="Artifact not found")
        return artifact.to_dict()

    # Bounty Market Endpoints
    @app.get("/market/bounties", tags=["market"])
    async def list_bounties(
        status: Optional[str] = None, orch: Orchestrator = Depends(get_orchestrator)
    ) -> Dict[str, List[Dict[str, Any]]]:
        """List bounties, newest first."""
        try:
            bounties = orch.market.list(status=status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
        return {"bounties": [b.to_dict() for b in bounties]}

    @app.get("/market/bounties/{bounty_id}", tags=["market"])
    async def get_bounty(
        bounty_id: str, orch: Orchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        """Get a bounty by id."""
        bounty = orch.market.get(bounty_id)
        if bounty is None:
            raise HTTPException(status_code=404, detail="Bounty not found")
        return bounty.to_dict()

    @app.post(
        "/market/bounties/claim",
        tags=["market"],
        dependencies=[Depends(rate_limited("market_claim_v1", lambda s: s.rate_limit_claim))],
    )
    async def claim_bounty(
        body: ClaimRequest, orch: Orchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        """Claim an open bounty."""
        try:
            bounty = orch.market.claim(body.id, body.handle)
        except MarketError as e:
            raise _rejected(e)
        return {"bounty": bounty.to_dict()}

    @app.post(
        "/market/bounties/submit",
        tags=["market"],
        dependencies=[Depends(rate_limited("market_submit_v1", lambda s: s.rate_limit_submit))],
    )
    async def submit_bounty(
        body: SubmitRequest, orch: Orchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        """Submit a reproduction attempt for a claimed bounty."""
        evidence = Evidence.clean(body.artifact_url, body.artifact_hash, body.notes)
        try:
            bounty = orch.market.submit(body.id, body.handle, body.result, evidence)
        except MarketError as e:
            raise _rejected(e)
        return {"bounty": bounty.to_dict()}

    @app.post(
        "/market/bounties/audit/claim",
        tags=["market"],
        dependencies=[Depends(rate_limited("market_claim_v1", lambda s: s.rate_limit_claim))],
    )
    async def claim_audit(
        body: ClaimRequest, orch: Orchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        """Claim the audit of a passing attempt."""
        try:
            bounty = orch.market.claim_audit(body.id, body.handle)
        except MarketError as e:
            raise _rejected(e)
        return {"bounty": bounty.to_dict()}

    @app.post(
        "/market/bounties/audit/submit",
        tags=["market"],
        dependencies=[Depends(rate_limited("market_submit_v1", lambda s: s.rate_limit_submit))],
    )
    async def submit_audit(
        body: AuditSubmitRequest, orch: Orchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        """Confirm or reject a passing attempt."""
        evidence = Evidence.clean(body.artifact_url, body.artifact_hash, body.notes)
        try:
            bounty = orch.market.submit_audit(body.id, body.handle, body.decision, evidence)
        except MarketError as e:
            raise _rejected(e)
        return {"bounty": bounty.to_dict()}

    # Queue Endpoints
    @app.get("/queue/jobs", tags=["queue"])
    async def list_jobs(orch: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
        """List jobs, most recently submitted first."""
        return {"jobs": [job.to_dict() for job in orch.queue.list_jobs()]}

    @app.post("/queue/jobs", status_code=201, tags=["queue"])
    async def enqueue_job(
        body: EnqueueRequest, orch: Orchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        """Enqueue a job for the serial worker."""
        try:
            job = orch.queue.enqueue(body.type, body.input, sandbox=body.sandbox)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid job: {e}")
        return {"job": job.to_dict()}

    @app.get("/queue/job/{job_id}", tags=["queue"])
    async def get_job(job_id: str, orch: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
        """Get a job by id."""
        job = orch.queue.get_job(job_id.strip())
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job.to_dict()

    return app


app = create_app()
