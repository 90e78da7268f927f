"""Console rendering and progress helpers for the post-up CLI."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .models import MediaAsset, ModerationAssessment, PublishResult, PublishStatus, Severity
from .services.thumbnails import Frame

console = Console()

_SEVERITY_STYLE = {
    Severity.LOW: "yellow",
    Severity.MEDIUM: "dark_orange",
    Severity.HIGH: "red",
    Severity.CRITICAL: "bold red",
}


def _echo(message: str) -> None:
    console.print(message)


def human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]post-up[/bold green]",
        subtitle="[dim]publisher CLI[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_warning(assessment: Optional[ModerationAssessment]) -> None:
    if assessment is None:
        return
    style = _SEVERITY_STYLE.get(assessment.effective_severity, "white")
    _echo(f"[{style}]{assessment.label}[/{style}]{escape(assessment.explanation)}")


def render_frames(frames: List[Frame]) -> None:
    table = Table(title="Extracted frames", show_lines=False)
    table.add_column("#", justify="right", style="bold cyan")
    table.add_column("Time", justify="right")
    table.add_column("Path")
    for index, frame in enumerate(frames):
        table.add_row(str(index), f"{frame.timestamp:.1f}s", escape(frame.thumbnail_path))
    console.print(table)


def render_result(result: PublishResult) -> None:
    if result.status == PublishStatus.PUBLISHED:
        post_id = (result.post or {}).get("id")
        suffix = f" (id {post_id})" if post_id is not None else ""
        _echo(f"[green]Post created[/green]{suffix}")
        if result.thumbnail_path:
            _echo(f"  thumbnail: {escape(result.thumbnail_path)}")
        return
    if result.status == PublishStatus.AWAITING_THUMBNAIL:
        _echo(f"[cyan]Video uploaded:[/cyan] {escape(result.media_path or '')}")
        return
    if result.status == PublishStatus.BLOCKED:
        _echo(f"[red]Content blocked:[/red] {escape(result.error or '')}")
        render_warning(result.assessment)
        return
    _echo(f"[red]Failed to create post:[/red] {escape(result.error or '')}")


class UploadProgress:
    """Percent-based upload progress bar fed by composer progress events."""

    def __init__(self, asset: MediaAsset, strategy: str):
        self.asset = asset
        self.strategy = strategy
        self._started = False
        self._live: Optional[Live] = None
        self._task_id = None
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[filename]}", justify="left"),
            TextColumn("[dim]{task.fields[strategy]}"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
        )

    def start(self) -> None:
        if self._started:
            return
        self._live = Live(
            self._progress,
            console=console,
            refresh_per_second=5,
            vertical_overflow="visible",
        )
        self._live.start()
        self._task_id = self._progress.add_task(
            "upload",
            filename=escape(self.asset.filename[:60]),
            strategy=self.strategy,
            total=100,
        )
        self._started = True

    def update(self, percent: int) -> None:
        if not self._started:
            self.start()
        self._progress.update(self._task_id, completed=percent)

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        if not self._started:
            return
        if self._live is not None:
            self._live.stop()
            self._live = None

        if success:
            _echo(f"[green]Uploaded:[/green] {escape(self.asset.filename)} ({human_size(self.asset.size_bytes)})")
            return

        suffix = f" - {escape(error)}" if error else ""
        _echo(f"[red]Failed:[/red] {escape(self.asset.filename)}{suffix}")

    def get_callback(self):
        def callback(percent: int) -> None:
            self.update(percent)

        return callback
