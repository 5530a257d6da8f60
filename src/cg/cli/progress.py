"""Rich progress display for the campaign pipeline."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from cg.coordinator.progress import Subscription
from cg.types import ProgressEvent, RunStatus, StageName


@dataclass
class StageInfo:
    """Information about a pipeline stage."""

    number: int
    name: str
    status: str = "pending"  # pending, running, complete, degraded, error
    detail: str = ""
    duration_ms: int | None = None

    @property
    def duration_str(self) -> str:
        """Get formatted duration string."""
        if self.duration_ms is None:
            return ""
        seconds = self.duration_ms / 1000
        if seconds < 60:
            return f"{seconds:.0f}s"
        return f"{int(seconds // 60)}m {int(seconds % 60)}s"


class CampaignProgress:
    """Live progress display for one campaign run."""

    STAGE_NAMES = {
        StageName.FETCH_CONTENT: "Website",
        StageName.COMPANY_PROFILE: "Company Profile",
        StageName.PERSONAS: "Personas",
        StageName.RANKING: "Ranking",
        StageName.FILTERS: "Filters",
        StageName.LEAD_SEARCH: "Leads",
        StageName.CONTENT: "Emails",
    }

    STATUS_ICONS = {
        "pending": "[dim]...[/dim]",
        "running": "[yellow]...[/yellow]",
        "complete": "[green]OK[/green]",
        "degraded": "[yellow]~[/yellow]",
        "error": "[red]ERR[/red]",
    }

    def __init__(self, console: Console, domain: str) -> None:
        """Initialize progress display.

        Args:
            console: Rich console to write to.
            domain: Domain being processed.
        """
        self.console = console
        self.domain = domain
        self.started_at = time.time()

        self.stages: dict[StageName, StageInfo] = {
            stage: StageInfo(number=i, name=name)
            for i, (stage, name) in enumerate(self.STAGE_NAMES.items(), start=1)
        }
        self.percentage = 0
        self.message = "Queued"
        self.is_complete = False
        self.error_message: str | None = None

        self._live: Live | None = None

    def _build_display(self) -> Panel:
        """Build the progress display panel."""
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Stage", width=3, justify="right")
        table.add_column("Status", width=4)
        table.add_column("Name", width=16)
        table.add_column("Detail", style="dim")
        table.add_column("Time", width=8, justify="right", style="dim")

        for stage in self.stages.values():
            if stage.status == "running":
                name_style = "bold yellow"
            elif stage.status in ("complete", "degraded"):
                name_style = "green"
            elif stage.status == "error":
                name_style = "red"
            else:
                name_style = "dim"

            detail = stage.detail[:45] + "..." if len(stage.detail) > 45 else stage.detail
            table.add_row(
                f"{stage.number}.",
                self.STATUS_ICONS.get(stage.status, ""),
                Text(stage.name, style=name_style),
                detail,
                stage.duration_str,
            )

        footer = Text()
        footer.append(f"{self.percentage:>3}% ", style="bold")
        footer.append(self.message, style="cyan")
        footer.append("  |  Elapsed: ", style="dim")
        footer.append(f"{time.time() - self.started_at:.0f}s", style="cyan")

        content = Group(
            table,
            Text(""),
            ProgressBar(total=100, completed=self.percentage, width=50),
            footer,
        )

        if self.is_complete:
            title = f"[bold green]{self.domain} Campaign Ready[/bold green]"
            border_style = "green"
        elif self.error_message:
            title = f"[bold red]{self.domain} Campaign Failed[/bold red]"
            border_style = "red"
        else:
            title = f"[bold cyan]Building campaign for {self.domain}...[/bold cyan]"
            border_style = "cyan"

        return Panel(content, title=title, border_style=border_style)

    def update(self, event: ProgressEvent) -> None:
        """Apply one progress event."""
        self.percentage = event.percentage
        self.message = event.message

        for result in event.stage_results:
            stage = self.stages.get(result.stage)
            if stage is None:
                continue
            stage.status = "degraded" if result.degraded else "complete"
            stage.detail = result.note or result.summary
            stage.duration_ms = result.duration_ms

        current = self.stages.get(event.current_stage) if event.current_stage else None
        if current is not None and current.status == "pending":
            current.status = "running"

        if event.status == RunStatus.COMPLETE:
            self.is_complete = True
        elif event.status == RunStatus.ERROR:
            self.error_message = event.error or event.message
            if current is not None and current.status == "running":
                current.status = "error"
                current.detail = self.error_message

        if self._live:
            self._live.update(self._build_display())

    async def follow(self, subscription: Subscription) -> None:
        """Consume events until the subscription ends."""
        async for event in subscription:
            self.update(event)

    def __enter__(self) -> CampaignProgress:
        """Start the live display."""
        self._live = Live(
            self._build_display(),
            console=self.console,
            refresh_per_second=4,
            transient=False,
            auto_refresh=True,
            get_renderable=self._build_display,
        )
        self._live.__enter__()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Stop the live display."""
        if self._live:
            self._live.update(self._build_display())
            self._live.__exit__(exc_type, exc_val, exc_tb)
            self._live = None
