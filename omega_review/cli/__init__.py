"""
Command Line Interface for Omega Review.
"""

import asyncio
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Settings
from ..core.orchestrator import Orchestrator
from ..jobs.models import JobType
from ..market.errors import MarketError
from ..market.models import Bounty, Evidence

app = typer.Typer(help="Omega Review - review artifacts, reproduction bounties and jobs")
console = Console()

STATUS_STYLES = {
    "open": "green",
    "claimed": "yellow",
    "pass_pending_audit": "magenta",
    "passed": "bold blue",
}


@contextmanager
def open_orchestrator() -> Iterator[Orchestrator]:
    """Orchestrator over the configured files; flushed and closed on exit."""
    orch = Orchestrator.from_settings(Settings())
    try:
        yield orch
    finally:
        orch.close()


def _reject(error: MarketError) -> None:
    console.print(f"❌ [red]{error.code}[/red]: {error.message}")
    raise typer.Exit(code=1)


def _print_bounty(bounty: Bounty) -> None:
    style = STATUS_STYLES.get(bounty.status.value, "white")
    lines = [
        f"[bold]{bounty.id}[/bold]",
        f"Status: [{style}]{bounty.status.value}[/{style}]",
        f"Claim: {bounty.claim}",
        f"Reward: {bounty.reward_elf} ELF  Stake: {bounty.stake_elf} ELF",
    ]
    if bounty.claimed_by:
        lines.append(f"Claimed by: {bounty.claimed_by}")
    if bounty.last_attempt:
        lines.append(f"Last attempt: {bounty.last_attempt.result.value} by {bounty.last_attempt.by}")
    if bounty.audit:
        audit = bounty.audit
        lines.append(f"Audit: {audit.status.value} (reward {audit.reward_elf} ELF)")
        if audit.claimed_by:
            lines.append(f"Auditor: {audit.claimed_by}")
    console.print(Panel("\n".join(lines), title="Bounty"))


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    dev: bool = typer.Option(False, help="Run in development mode (auto reload)"),
):
    """Start the Omega Review API server."""
    settings = Settings()
    logging.basicConfig(level=settings.log_level.upper())
    host = host or settings.api_host
    port = port or settings.api_port
    rprint(Panel.fit("Starting Omega Review", style="bold blue"))
    console.print(f"🚀 Serving on http://{host}:{port}")
    uvicorn.run("omega_review.main:app", host=host, port=port, reload=dev)


@app.command()
def mint(
    payload_file: Path = typer.Argument(..., help="JSON file holding the review payload"),
    seed: bool = typer.Option(True, "--seed/--no-seed", help="Seed bounties from the artifact"),
):
    """Mint an artifact from a payload file."""
    try:
        payload = json.loads(payload_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"❌ Cannot read payload: {e}")
        raise typer.Exit(code=1)
    if not isinstance(payload, dict):
        console.print("❌ Payload must be a JSON object")
        raise typer.Exit(code=1)

    with open_orchestrator() as orch:
        if seed:
            artifact = orch.publish(payload)
            created = [b for b in orch.market.list() if b.artifact_hash == artifact.hash]
        else:
            artifact = orch.artifacts.mint(payload)
            orch.artifacts.put(artifact)
            created = []

    console.print(f"✅ Minted {artifact.id}")
    console.print(f"Hash: {artifact.hash}")
    for bounty in created:
        console.print(f"  • {bounty.id} [{bounty.status.value}]")


@app.command()
def artifacts():
    """List stored artifacts, newest first."""
    with open_orchestrator() as orch:
        items = orch.artifacts.list()

    table = Table(title="Artifacts", show_header=True, header_style="bold magenta")
    table.add_column("Created", style="cyan")
    table.add_column("Paper")
    table.add_column("Tasks", justify="right")
    table.add_column("Hash", style="dim")
    for artifact in items:
        paper = artifact.paper
        table.add_row(
            artifact.created_at.isoformat(),
            str(paper.get("title") or paper.get("id") or "-"),
            str(len(artifact.tasks)),
            artifact.hash,
        )
    console.print(table)


@app.command("show-artifact")
def show_artifact(artifact_hash: str = typer.Argument(..., help="sha256:<hex> digest")):
    """Print an artifact as JSON."""
    with open_orchestrator() as orch:
        artifact = orch.artifacts.get(artifact_hash.strip())
    if artifact is None:
        console.print(f"❌ Artifact not found: {artifact_hash}")
        raise typer.Exit(code=1)
    console.print_json(json.dumps(artifact.to_dict()))


@app.command()
def bounties(
    status: Optional[str] = typer.Option(
        None, help="Filter by status (open/claimed/pass_pending_audit/passed)"
    ),
):
    """List bounties, newest first."""
    with open_orchestrator() as orch:
        try:
            items = orch.market.list(status=status)
        except ValueError:
            console.print(f"❌ Invalid status: {status}")
            raise typer.Exit(code=1)

    table = Table(title="Bounties", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Status")
    table.add_column("Claim")
    table.add_column("Reward", justify="right")
    table.add_column("Claimed by")
    for bounty in items:
        style = STATUS_STYLES.get(bounty.status.value, "white")
        table.add_row(
            bounty.id,
            f"[{style}]{bounty.status.value}[/{style}]",
            bounty.claim,
            str(bounty.reward_elf),
            bounty.claimed_by or "-",
        )
    console.print(table)


@app.command()
def claim(
    bounty_id: str = typer.Argument(..., help="Bounty id"),
    handle: str = typer.Argument(..., help="Validator handle"),
):
    """Claim an open bounty."""
    with open_orchestrator() as orch:
        try:
            bounty = orch.market.claim(bounty_id, handle)
        except MarketError as e:
            _reject(e)
    _print_bounty(bounty)


@app.command()
def submit(
    bounty_id: str = typer.Argument(..., help="Bounty id"),
    handle: str = typer.Argument(..., help="Validator handle"),
    result: str = typer.Argument(..., help="pass or fail"),
    artifact_url: Optional[str] = typer.Option(None, help="Link to reproduction evidence"),
    artifact_hash: Optional[str] = typer.Option(None, help="Digest of reproduction evidence"),
    notes: Optional[str] = typer.Option(None, help="Free-form notes"),
):
    """Submit a reproduction attempt."""
    evidence = Evidence.clean(artifact_url, artifact_hash, notes)
    with open_orchestrator() as orch:
        try:
            bounty = orch.market.submit(bounty_id, handle, result, evidence)
        except MarketError as e:
            _reject(e)
    _print_bounty(bounty)


@app.command("claim-audit")
def claim_audit(
    bounty_id: str = typer.Argument(..., help="Bounty id"),
    handle: str = typer.Argument(..., help="Auditor handle"),
):
    """Claim the audit of a passing attempt."""
    with open_orchestrator() as orch:
        try:
            bounty = orch.market.claim_audit(bounty_id, handle)
        except MarketError as e:
            _reject(e)
    _print_bounty(bounty)


@app.command("submit-audit")
def submit_audit(
    bounty_id: str = typer.Argument(..., help="Bounty id"),
    handle: str = typer.Argument(..., help="Auditor handle"),
    decision: str = typer.Argument(..., help="confirm or reject"),
    artifact_url: Optional[str] = typer.Option(None, help="Link to audit evidence"),
    artifact_hash: Optional[str] = typer.Option(None, help="Digest of audit evidence"),
    notes: Optional[str] = typer.Option(None, help="Free-form notes"),
):
    """Confirm or reject a passing attempt."""
    evidence = Evidence.clean(artifact_url, artifact_hash, notes)
    with open_orchestrator() as orch:
        try:
            bounty = orch.market.submit_audit(bounty_id, handle, decision, evidence)
        except MarketError as e:
            _reject(e)
    _print_bounty(bounty)


@app.command("run-job")
def run_job(
    claim_text: str = typer.Argument(..., metavar="CLAIM", help="Claim to reproduce"),
    paper_id: Optional[str] = typer.Option(None, help="Paper id"),
    bounty_id: Optional[str] = typer.Option(None, help="Bounty id"),
    sandbox: Optional[str] = typer.Option(None, help="Sandbox tag (simulated/docker)"),
):
    """Run one reproduction job to completion and print its output."""
    job_input = {"paperId": paper_id, "bountyId": bounty_id, "claim": claim_text, "evidenceIds": []}

    async def execute():
        orch = Orchestrator.from_settings(Settings())
        await orch.start()
        try:
            job = orch.queue.enqueue(JobType.REPRODUCTION_TICKET, job_input, sandbox=sandbox)
            await orch.queue.join()
            return orch.queue.get_job(job.id)
        finally:
            await orch.stop()
            orch.close()

    try:
        job = asyncio.run(execute())
    except ValueError as e:
        console.print(f"❌ Invalid job: {e}")
        raise typer.Exit(code=1)

    console.print(f"Job {job.id}: [bold]{job.status.value}[/bold]")
    if job.error:
        console.print(f"❌ {job.error}")
        raise typer.Exit(code=1)
    console.print_json(json.dumps(job.output))


if __name__ == "__main__":
    app()
