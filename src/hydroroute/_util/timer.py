"""Timing and output tracking for hydroroute commands."""

import time
from contextlib import contextmanager
from pathlib import Path

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_duration(seconds: float) -> str:
    """Convert seconds into a string like '2 minutes and 34 seconds'."""
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    units = [(hours, "hour"), (minutes, "minute"), (secs, "second")]
    words = [f"{n} {unit}{'' if n == 1 else 's'}" for n, unit in units if n]
    if not words:
        return "0 seconds"
    if len(words) == 1:
        return words[0]
    return ", ".join(words[:-1]) + " and " + words[-1]


def raster_size(path: Path) -> str:
    """Size of a written raster, or a marker if it is missing."""
    if not path.exists():
        return "[red]missing[/red]"
    size = float(path.stat().st_size)
    for unit in SIZE_UNITS[:-1]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} {SIZE_UNITS[-1]}"


class ResourceStats:
    """Durations of the operations a command ran and the files it wrote."""

    def __init__(self) -> None:
        self.stats: dict[str, float] = {}
        self.output_files: list[tuple[str, Path]] = []
        self.warnings: list[str] = []

    def reset(self) -> None:
        """Forget everything recorded by a previous command."""
        self.stats = {}
        self.output_files = []
        self.warnings = []

    def add_stats(self, description: str, duration: float) -> None:
        self.stats[description] = duration

    def add_output_file(self, description: str, file_path: Path | str) -> None:
        self.output_files.append((description, Path(file_path)))

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def get_summary_panel(self, success: bool = True) -> Panel:
        """Status and warnings followed by one row per timed step and raster."""
        if success:
            lines = [Text("✓ Operation completed successfully", style="bold green")]
        else:
            lines = [Text("✗ Operation failed", style="bold red")]
        lines += [Text(f"⚠ {warning}", style="yellow") for warning in self.warnings]

        rows = Table.grid(padding=(0, 2))
        for description, duration in self.stats.items():
            rows.add_row(description, f"[cyan]{format_duration(duration)}[/cyan]")
        for description, path in self.output_files:
            rows.add_row(description, f"{path} [green]{raster_size(path)}[/green]")

        return Panel(
            Group(*lines, Text(), rows),
            title="[bold blue]Summary[/bold blue]",
            border_style="blue",
        )


resource_stats = ResourceStats()


@contextmanager
def timer(description: str, silent: bool = False):
    """
    Time a block and record the duration in resource_stats.

    The duration is recorded even if the block raises.
    """
    start = time.perf_counter()
    if not silent:
        console.print(f"[bold blue]{description}...[/bold blue]")
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        resource_stats.add_stats(description, elapsed)
        if not silent:
            console.print(
                f"[green]✓[/green] {description} took [cyan]{format_duration(elapsed)}[/cyan]"
            )
