"""Main CLI entry point using Typer."""

from pathlib import Path
from typing import NoReturn

import anyio
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from engineering_partner import __version__
from engineering_partner.core.config import Settings, get_settings
from engineering_partner.core.errors import PartnerError
from engineering_partner.core.events import EventEmitter, EventLevel, WorkflowEvent
from engineering_partner.core.logging_config import configure_logging
from engineering_partner.llm.invoker import ModelInvoker
from engineering_partner.llm.provider import AnthropicProvider, ModelProvider
from engineering_partner.project.models import DevelopmentMode, Phase, Project, create_default_phases
from engineering_partner.project.store import JsonProjectStore
from engineering_partner.workflow.change import ChangeImpactPipeline
from engineering_partner.workflow.export import ExportCatalog, ExportPipeline
from engineering_partner.workflow.insights import query_project
from engineering_partner.workflow.phases import PhaseAutomation
from engineering_partner.workflow.pipeline import PipelineStatus
from engineering_partner.workflow.search import RESOURCE_SEARCH, RISK_SEARCH, IterativeSearchLoop, SearchConfig

app = typer.Typer(
    name="engineering-partner",
    help="Engineering Partner - AI-driven engineering documentation workflows",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()

LEVEL_STYLES = {
    EventLevel.INFO: "dim",
    EventLevel.SUCCESS: "green",
    EventLevel.ERROR: "red",
}


# =============================================================================
# WIRING
# =============================================================================


def build_provider(settings: Settings) -> ModelProvider:
    """Create the model provider for CLI commands."""
    return AnthropicProvider(api_key=settings.anthropic_api_key.get_secret_value())


def _setup() -> tuple[Settings, JsonProjectStore]:
    settings = get_settings()
    configure_logging(settings, console=settings.partner_debug)
    return settings, JsonProjectStore(settings.partner_project_dir)


def _invoker(settings: Settings) -> ModelInvoker:
    return ModelInvoker(
        build_provider(settings),
        settings.model_table(),
        retry_policy=settings.retry_policy(),
        max_tokens=settings.partner_max_tokens,
    )


def _events() -> EventEmitter:
    events = EventEmitter()

    def show(event: WorkflowEvent) -> None:
        style = LEVEL_STYLES.get(event.level, "white")
        console.print(f"[{style}]{event.message}[/{style}]")

    events.subscribe(show)
    return events


def _load(store: JsonProjectStore, project_id: str) -> Project:
    try:
        return store.get(project_id)
    except PartnerError as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=1) from e


def _fail(e: Exception) -> NoReturn:
    console.print(f"\n[bold red]Failed: {e}[/bold red]")
    raise typer.Exit(code=1) from e


def _phase(project: Project, phase: str) -> Phase:
    target = project.get_phase(phase) or project.get_phase_by_name(phase)
    if target is None:
        console.print(f"[bold red]Phase not found: {phase}[/bold red]")
        raise typer.Exit(code=1)
    return target


# =============================================================================
# COMMANDS
# =============================================================================


@app.command()
def version() -> None:
    """Print version and exit."""
    console.print(f"[bold blue]Engineering Partner[/bold blue] version {__version__}")


@app.command()
def init(
    name: str = typer.Argument(..., help="Project name"),
    requirements: str = typer.Option("", "--requirements", "-r", help="Requirements text or path to a file"),
    constraints: str = typer.Option("", "--constraints", "-c", help="Constraints text or path to a file"),
    discipline: list[str] = typer.Option(
        [],
        "--discipline",
        "-d",
        help="Engineering discipline (repeatable)",
    ),
    rapid: bool = typer.Option(False, "--rapid", help="Use rapid (concise) development mode"),
) -> None:
    """
    Create a project with the standard lifecycle phases.

    Example:
        engineering-partner init "CubeSat Comms" -d "Aerospace Engineering" -r ./requirements.md
    """
    _, store = _setup()

    def read(value: str) -> str:
        path = Path(value)
        if value and len(value) < 256 and path.is_file():
            return path.read_text()
        return value

    project = Project(
        name=name,
        requirements=read(requirements),
        constraints=read(constraints),
        disciplines=discipline,
        development_mode=DevelopmentMode.RAPID if rapid else DevelopmentMode.FULL,
        phases=create_default_phases(),
    )
    store.add(project)

    console.print(f"[green]Created project[/green] [bold]{project.name}[/bold]")
    console.print(f"ID: {project.id}")


@app.command()
def targets() -> None:
    """List the external tools projects can be exported to."""
    table = Table(title="Export Targets")
    table.add_column("Tool ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Format")
    table.add_column("Ext")

    for target in ExportCatalog.default().targets():
        table.add_row(target.tool_id, target.name, target.category.value, target.output_format, target.extension)

    console.print(table)


@app.command("run-phase")
def run_phase(
    project_id: str = typer.Argument(..., help="Project ID"),
    phase: str = typer.Argument(..., help="Phase ID or name"),
    regenerate_all: bool = typer.Option(
        False,
        "--regenerate",
        help="Generate new versions of documents that are already completed",
    ),
) -> None:
    """
    Generate a lifecycle phase end to end.

    Example:
        engineering-partner run-phase 3f2c... "Critical Design"
    """
    settings, store = _setup()
    project = _load(store, project_id)
    target = _phase(project, phase)
    automation = PhaseAutomation(
        _invoker(settings),
        sink=store,
        events=_events(),
        unit_delay=settings.partner_unit_delay_seconds,
    )

    async def execute() -> None:
        result = await automation.run(project, target.id, regenerate=regenerate_all)
        console.print(f"\n[bold green]Phase {target.name}: {result.status.value}[/bold green]")
        if not result.report.succeeded:
            console.print(f"[yellow]Failed: {', '.join(result.report.failed) or '-'}[/yellow]")
            console.print(f"[yellow]Stalled: {', '.join(result.report.stalled) or '-'}[/yellow]")

    try:
        anyio.run(execute)
    except PartnerError as e:
        _fail(e)


@app.command()
def regenerate(
    project_id: str = typer.Argument(..., help="Project ID"),
    phase: str = typer.Argument(..., help="Phase ID or name"),
    item_id: str = typer.Argument(..., help="Document or sprint ID"),
    reason: str = typer.Option("Regenerated", "--reason", help="Reason recorded on the new version"),
) -> None:
    """
    Generate a new version of one document or sprint.

    Example:
        engineering-partner regenerate 3f2c... Testing testing-1 --reason "Tighter margins"
    """
    settings, store = _setup()
    project = _load(store, project_id)
    target = _phase(project, phase)
    automation = PhaseAutomation(_invoker(settings), sink=store, events=_events())

    try:
        output = anyio.run(automation.regenerate_item, project, target.id, item_id, reason)
    except PartnerError as e:
        _fail(e)

    console.print(f"[green]Saved version {output.version} of {item_id}[/green]")


@app.command()
def change(
    project_id: str = typer.Argument(..., help="Project ID"),
    request: str = typer.Argument(..., help="Change request"),
) -> None:
    """
    Propagate a change request through the impacted documents.

    Example:
        engineering-partner change 3f2c... "Switch the enclosure to aluminium"
    """
    settings, store = _setup()
    project = _load(store, project_id)
    pipeline = ChangeImpactPipeline(
        _invoker(settings),
        events=_events(),
        qa_max_attempts=settings.partner_qa_max_attempts,
    )

    try:
        result = anyio.run(pipeline.run, project, request, store)
    except PartnerError as e:
        _fail(e)

    table = Table(title="Impacted Documents")
    table.add_column("Document", style="bold")
    table.add_column("Status")
    table.add_column("QA Feedback")
    for doc in result.documents:
        table.add_row(doc.name, doc.status.value, doc.qa_feedback or "-")
    console.print(table)

    if result.status == PipelineStatus.ERROR:
        console.print(f"[bold red]{result.error}[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def export(
    project_id: str = typer.Argument(..., help="Project ID"),
    tool: str = typer.Argument(..., help="Export target tool ID (see 'targets')"),
    out: Path | None = typer.Option(None, "--out", "-o", help="Output directory"),
) -> None:
    """
    Export the project to a file for an external engineering tool.

    Example:
        engineering-partner export 3f2c... kicad --out ./exports
    """
    settings, store = _setup()
    project = _load(store, project_id)
    pipeline = ExportPipeline(
        _invoker(settings),
        ExportCatalog.default(),
        events=_events(),
        qa_max_attempts=settings.partner_qa_max_attempts,
    )

    try:
        artifact = anyio.run(pipeline.export_project, project, tool)
    except PartnerError as e:
        _fail(e)

    directory = out or Path(".")
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / artifact.file_name
    path.write_text(artifact.content)
    console.print(f"[green]Saved to {path}[/green]")


def _search(project_id: str, config: SearchConfig, max_iterations: int | None) -> None:
    settings, store = _setup()
    project = _load(store, project_id)
    loop = IterativeSearchLoop(
        _invoker(settings),
        config,
        events=_events(),
        max_iterations=max_iterations or settings.partner_max_search_iterations,
    )

    try:
        result = anyio.run(loop.run, project, store)
    except PartnerError as e:
        _fail(e)

    table = Table(title=f"{config.label} Findings ({result.iterations} iterations)")
    table.add_column("#", style="cyan")
    table.add_column(config.label, style="bold")
    for index, item in enumerate(result.items, start=1):
        table.add_row(str(index), config.headline(item))
    console.print(table)


@app.command()
def risks(
    project_id: str = typer.Argument(..., help="Project ID"),
    max_iterations: int | None = typer.Option(None, "--max-iterations", "-n", help="Iteration budget"),
) -> None:
    """Discover project risks with the iterative search agents."""
    _search(project_id, RISK_SEARCH, max_iterations)


@app.command()
def resources(
    project_id: str = typer.Argument(..., help="Project ID"),
    max_iterations: int | None = typer.Option(None, "--max-iterations", "-n", help="Iteration budget"),
) -> None:
    """Discover required software and equipment with the iterative search agents."""
    _search(project_id, RESOURCE_SEARCH, max_iterations)


@app.command()
def ask(
    project_id: str = typer.Argument(..., help="Project ID"),
    question: str = typer.Argument(..., help="Question about the project"),
) -> None:
    """Answer a question from the project's documentation."""
    settings, store = _setup()
    project = _load(store, project_id)

    try:
        answer = anyio.run(query_project, _invoker(settings), project, question)
    except PartnerError as e:
        _fail(e)

    console.print(Panel(answer, title=f"[bold blue]{project.name}[/bold blue]", border_style="blue"))


if __name__ == "__main__":
    app()
