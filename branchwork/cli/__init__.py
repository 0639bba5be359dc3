"""
Command Line Interface for Branchwork.
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.orm import Session

from ..ai import AIProviderError, build_generator
from ..config import get_settings
from ..context import ContextBuilder, ContextBuilderOptions
from ..db.base import get_engine, get_session_local, init_database
from ..enums import ArtifactType
from ..errors import NotFoundError
from ..summarization import SummarizationConfig, SummarizationService

app = typer.Typer(help="Branchwork - conversation context and rolling summaries")
console = Console()


@app.callback()
def main() -> None:
    """Configure logging from settings before any command runs."""
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@contextmanager
def _session() -> Iterator[Session]:
    db = get_session_local()()
    try:
        yield db
    finally:
        db.close()


def _summarization_service(db: Session) -> SummarizationService:
    return SummarizationService(
        db, generator=build_generator(), config=SummarizationConfig.from_settings()
    )


@app.command()
def context(
    branch_id: str = typer.Argument(..., help="Branch to build context for"),
    limit: Optional[int] = typer.Option(
        None, "--limit", min=1, max=100, help="Recent-message window size"
    ),
    no_artifacts: bool = typer.Option(False, "--no-artifacts", help="Skip artifacts"),
    artifact_type: Optional[List[ArtifactType]] = typer.Option(
        None, "--artifact-type", help="Artifact type to include (repeatable)"
    ),
):
    """Print the prompt-ready context for a branch."""
    options = ContextBuilderOptions(
        message_limit=limit or get_settings().context_message_limit,
        include_artifacts=not no_artifacts,
    )
    if artifact_type:
        options.artifact_types = artifact_type

    with _session() as db:
        try:
            text = ContextBuilder(db, options).build_context_string(branch_id)
        except NotFoundError as e:
            console.print(f"❌ {e}")
            raise typer.Exit(code=1)

    console.print(text, markup=False, highlight=False)


@app.command()
def needs_summary(branch_id: str = typer.Argument(..., help="Branch to check")):
    """Show whether a branch is due for a new summary."""
    with _session() as db:
        service = SummarizationService(db, config=SummarizationConfig.from_settings())
        status = service.summary_status(branch_id)

    if status is None:
        console.print(f"❌ Branch not found: {branch_id}")
        raise typer.Exit(code=1)

    current, last = status
    due = service.needs_summary(current, last)
    table = Table(title=f"Summary status: {branch_id}", show_header=True, header_style="bold magenta")
    table.add_column("Messages", style="cyan")
    table.add_column("Summarized", style="blue")
    table.add_column("Needs summary", style="green")
    table.add_row(str(current), str(last), "yes" if due else "no")
    console.print(table)


@app.command()
def summarize(branch_id: str = typer.Argument(..., help="Branch to summarize")):
    """Summarize a branch now."""
    with _session() as db:
        try:
            summary = asyncio.run(_summarization_service(db).summarize_branch(branch_id))
        except (NotFoundError, AIProviderError) as e:
            console.print(f"❌ {e}")
            raise typer.Exit(code=1)

    if summary is None:
        console.print("⏭️ No summary committed")
        return

    rprint(Panel.fit(summary.summary, title="Branch summary", style="bold blue"))
    for title, items in (
        ("Key Decisions", summary.key_decisions),
        ("Open Questions", summary.open_questions),
        ("Next Steps", summary.next_steps),
    ):
        if items:
            console.print(f"[bold]{title}[/bold]")
            for item in items:
                console.print(f"  • {item}", markup=False)


@app.command()
def summarize_project(project_id: str = typer.Argument(..., help="Project to summarize")):
    """Summarize a project from its recent work items."""
    with _session() as db:
        try:
            summary = asyncio.run(_summarization_service(db).summarize_project(project_id))
        except (NotFoundError, AIProviderError) as e:
            console.print(f"❌ {e}")
            raise typer.Exit(code=1)

    if summary is None:
        console.print("⏭️ No summary committed")
        return

    rprint(Panel.fit(summary.summary, title="Project summary", style="bold blue"))
    if summary.current_focus:
        console.print(f"Current focus: {summary.current_focus}", markup=False)


@app.command()
def sweep():
    """Summarize every branch that is due."""
    with _session() as db:
        result = asyncio.run(_summarization_service(db).update_pending_summaries())

    table = Table(title="Pending summaries", show_header=True, header_style="bold cyan")
    table.add_column("Branch", style="yellow")
    table.add_column("Outcome")
    for branch_id in result.updated:
        table.add_row(branch_id, "✅ updated")
    for branch_id in result.skipped:
        table.add_row(branch_id, "⏭️ skipped")
    for branch_id in result.failed:
        table.add_row(branch_id, "❌ failed")
    console.print(table)
    console.print(
        f"Updated: {len(result.updated)}, skipped: {len(result.skipped)}, "
        f"failed: {len(result.failed)}"
    )


@app.command()
def init_db():
    """Create all database tables."""
    init_database(get_engine())
    console.print("✅ Database initialized")


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    dev: bool = typer.Option(False, help="Run in development mode (auto-reload)"),
):
    """Start the Branchwork API server."""
    from ..main import run

    settings = get_settings()
    rprint(Panel.fit("🌿 Starting Branchwork", style="bold blue"))
    console.print(f"🚀 Serving on http://{host or settings.api_host}:{port or settings.api_port}")
    run(host=host, port=port, reload=dev)


if __name__ == "__main__":
    app()
