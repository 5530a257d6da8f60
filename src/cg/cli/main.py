"""
CLI for the campaign generator.

Commands:
    cg generate DOMAIN - Build a campaign for a company domain
    cg serve - Run the HTTP API
    cg config - Show current configuration
    cg version - Print version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import orjson
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cg import __version__
from cg.cli.progress import CampaignProgress
from cg.config import Settings, clear_settings_cache, get_settings
from cg.coordinator.pipeline import CampaignPipeline, PipelineConfig
from cg.coordinator.progress import ProgressChannel
from cg.exceptions import PersistenceFailure, StageFailure
from cg.logging import setup_logging
from cg.normalize.domains import normalize_domain
from cg.storage.store import SqliteCampaignStore
from cg.types import CampaignResult, FilterSet

app = typer.Typer(
    name="cg",
    help="Campaign Generator - outbound campaigns from a company domain",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _load_filters(
    filters_file: Path | None,
    titles: list[str],
    locations: list[str],
    industries: list[str],
    company_size: str | None,
) -> FilterSet | None:
    """Combine a filters file with command-line overrides."""
    data: dict = {}
    if filters_file is not None:
        data = orjson.loads(filters_file.read_bytes())
        if not isinstance(data, dict):
            raise typer.BadParameter("filters file must contain a JSON object", param_hint="--filters")
    if titles:
        data["titles"] = titles
    if locations:
        data["locations"] = locations
    if industries:
        data["industries"] = industries
    if company_size:
        data["company_size"] = company_size

    filters = FilterSet.from_dict(data)
    return None if filters.is_empty else filters


async def _run_generate(
    settings: Settings,
    domain: str,
    filters: FilterSet | None,
    config: PipelineConfig,
    save: bool,
) -> CampaignResult:
    channel = ProgressChannel()
    store: SqliteCampaignStore | None = None
    if save:
        store = SqliteCampaignStore(settings.OUTPUT_DIR)
        await store.init()

    pipeline = CampaignPipeline(settings=settings, config=config, channel=channel, store=store)
    subscription = channel.subscribe(normalize_domain(domain))
    try:
        with CampaignProgress(console, normalize_domain(domain)) as display:
            watcher = asyncio.create_task(display.follow(subscription))
            try:
                return await pipeline.run(domain, filters)
            finally:
                channel.close()
                await watcher
    finally:
        if store is not None:
            await store.close()


def _print_result(result: CampaignResult) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold]Company:[/bold] {result.company_name}\n"
            f"[bold]Helps with:[/bold] {result.helps_with}\n"
            f"[bold]Great at:[/bold] {result.great_at}\n"
            f"[bold]Persona:[/bold] {result.ranking.selected_persona.name}\n"
            f"[bold]Target:[/bold] {' | '.join(result.icp_attributes)}\n"
            f"[bold]Location:[/bold] {result.location}\n\n"
            f"[dim]Cost: ${result.usage.get('total_cost_usd', 0.0):.2f} | "
            f"Leads: {len(result.qualified_leads)}[/dim]",
            title=f"[bold green]{result.subject_key} Campaign[/bold green]",
            border_style="green",
        )
    )

    if result.qualified_leads:
        table = Table(title="Qualified Leads", show_header=True)
        table.add_column("Name", style="cyan")
        table.add_column("Title")
        table.add_column("Company")
        table.add_column("Email", style="green")
        table.add_column("Subject", style="dim")
        for lead in result.qualified_leads:
            table.add_row(
                lead.name,
                lead.title,
                lead.company,
                lead.email or "[dim]sample[/dim]" if lead.synthetic else lead.email or "",
                lead.email_subject,
            )
        console.print(table)

    for note in result.degradations:
        console.print(f"[yellow]Note:[/yellow] {note}")


def _write_json(path: Path, result: CampaignResult) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(result.to_dict(), option=orjson.OPT_INDENT_2))
    console.print(f"\n[bold]Campaign saved to:[/bold] {path}")


@app.command()
def generate(
    domain: Annotated[str, typer.Argument(help="Company domain or URL (e.g., acme.com)")],
    filters_file: Annotated[
        Optional[Path],
        typer.Option("--filters", "-f", help="JSON file with search filters (starts lead search early)"),
    ] = None,
    title: Annotated[
        Optional[list[str]],
        typer.Option("--title", "-t", help="Job title to target (repeatable)"),
    ] = None,
    location: Annotated[
        Optional[list[str]],
        typer.Option("--location", "-l", help="Location to target (repeatable)"),
    ] = None,
    industry: Annotated[
        Optional[list[str]],
        typer.Option("--industry", "-i", help="Industry to target (repeatable)"),
    ] = None,
    company_size: Annotated[
        Optional[str],
        typer.Option("--company-size", help="Employee range, e.g. 51-200"),
    ] = None,
    target: Annotated[
        Optional[int],
        typer.Option("--target", "-n", min=1, max=100, help="Number of leads to find"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Use canned reasoning responses instead of calling APIs"),
    ] = False,
    trace: Annotated[
        bool,
        typer.Option("--trace", help="Keep prompts and responses on stage results"),
    ] = False,
    save: Annotated[
        bool,
        typer.Option("--save/--no-save", help="Record the campaign in the output directory"),
    ] = True,
    json_path: Annotated[
        Optional[Path],
        typer.Option("--json", "-o", help="Write the campaign as JSON to this path"),
    ] = None,
) -> None:
    """Build an outbound campaign for a company.

    Runs the four analysis stages, finds and enriches leads, and drafts one
    email per lead. Supplying filters starts the lead search immediately.
    """
    settings = Settings(DRY_RUN=True) if dry_run else _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'cg config' to see what's missing."
        )
        raise typer.Exit(1)
    setup_logging(log_level=settings.LOG_LEVEL)

    subject_key = normalize_domain(domain)
    if not subject_key:
        error_console.print("[red]Error:[/red] Invalid domain")
        raise typer.Exit(1)

    filters = _load_filters(filters_file, title or [], location or [], industry or [], company_size)
    config = PipelineConfig(lead_target=target, capture_trace=True if trace else None)

    console.print()
    console.print(
        Panel(
            f"[bold]Domain:[/bold] {subject_key}\n"
            f"[bold]Lead source:[/bold] {settings.LEAD_SOURCE}"
            f"{'' if settings.lead_source_configured else ' (not configured, sample leads)'}\n"
            f"[bold]Leads:[/bold] {target or settings.leads_target}\n"
            f"[bold]Early lead search:[/bold] {'yes' if filters else 'no'}\n"
            f"[bold]Dry Run:[/bold] {settings.DRY_RUN}",
            title="[bold cyan]Campaign Generator[/bold cyan]",
            border_style="cyan",
        )
    )

    try:
        result = asyncio.run(_run_generate(settings, subject_key, filters, config, save))
    except PersistenceFailure as e:
        error_console.print(f"\n[red]Error:[/red] {e.message}")
        if json_path is not None and e.result is not None:
            _write_json(json_path, e.result)
        raise typer.Exit(1)
    except StageFailure as e:
        error_console.print(f"\n[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    _print_result(result)
    if json_path is not None:
        _write_json(json_path, result)
    console.print()


@app.command()
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="Port")] = 8000,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on code changes")] = False,
) -> None:
    """Run the HTTP API."""
    import uvicorn

    if _get_settings_safe() is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'cg config' to see what's missing."
        )
        raise typer.Exit(1)

    uvicorn.run("cg.api.server:create_app", factory=True, host=host, port=port, reload=reload)


@app.command()
def config() -> None:
    """Show current configuration.

    Displays all configuration values with API keys redacted.
    Also shows which LLM providers are available.
    """
    console.print()
    console.print("[bold]Campaign Generator Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid or incomplete.[/red]")
        error_console.print()
        error_console.print("Required environment variables:")
        error_console.print("  - At least one of: OPENAI_API_KEY, ANTHROPIC_API_KEY")
        error_console.print("    (or DRY_RUN=true)")
        error_console.print()
        error_console.print("Create a .env file or set environment variables.")
        error_console.print("See .env.example for a template.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)

    console.print()
    providers = settings.available_providers
    if providers:
        console.print(f"[bold]Available LLM Providers:[/bold] {', '.join(providers)}")
    else:
        console.print("[yellow]No LLM providers configured.[/yellow]")

    if not settings.lead_source_configured or not settings.enrichment_configured:
        console.print("[yellow]Lead sourcing not fully configured; runs use sample leads.[/yellow]")

    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"campaign-generator version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
