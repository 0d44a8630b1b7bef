import sys
import time
from contextlib import contextmanager

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)


def format_duration(seconds: float) -> str:
    """Convert seconds into compact string like 1h2m32s.

    Durations under a minute keep one decimal place.
    """
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs_int = divmod(remainder, 60)
    parts = []

    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0 or hours > 0:
        parts.append(f"{minutes}m")

    if hours == 0 and minutes == 0:
        parts.append(f"{seconds:.1f}s")
    else:
        parts.append(f"{secs_int}s")

    return "".join(parts)


class RichProgressDisplay:
    """Renders ProgressCallback reports on the terminal.

    On a TTY each step gets a rich progress bar that is filled by chunk
    progress and replaced by a timing line when the step finishes. Without a
    TTY, plain lines are printed: one per step and one per percentage change.

    Args:
        console: Console to print to (a new one by default)
        show_progress: If False, every report is ignored
    """

    MAX_STEP_WIDTH = 34

    def __init__(
        self,
        console: Console | None = None,
        show_progress: bool = True,
    ) -> None:
        self.console = console if console is not None else Console()
        self.show_progress = show_progress
        self.is_tty = sys.stdout.isatty()
        self.current_phase: str = ""
        self.current_step: str = ""
        self.step_start_time: float = 0.0
        self.last_logged_percentage: int = -1
        self.progress: Progress | None = None
        self.task_id: TaskID | None = None

    def _finish_step(self) -> None:
        """Print the timing line of the running step, if any."""
        if not self.current_step:
            return
        elapsed = format_duration(time.time() - self.step_start_time)
        if self.progress is not None:
            self.progress.stop()
            self.progress = None
            self.task_id = None
        if self.is_tty:
            padded_step = self.current_step.ljust(self.MAX_STEP_WIDTH)
            self.console.print(f"  {padded_step} [dim]({elapsed})[/dim]")
        else:
            print(f"  {self.current_step} - {elapsed}", flush=True)
        self.current_step = ""

    def _start_step(self, step: str) -> None:
        self.current_step = step
        self.step_start_time = time.time()
        self.last_logged_percentage = -1
        if self.is_tty:
            self.progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold cyan]{task.description}"),
                BarColumn(bar_width=20),
                TaskProgressColumn(),
                TimeElapsedColumn(),
                console=self.console,
                transient=True,
            )
            self.progress.start()
            self.task_id = self.progress.add_task(step, total=1.0)

    def callback(
        self,
        phase: str | None = None,
        step_name: str | None = None,
        step_number: int = 0,
        total_steps: int = 0,
        message: str = "",
        progress: float = 0.0,
    ) -> None:
        """Progress callback."""
        if not self.show_progress:
            return

        if phase is not None and phase != self.current_phase:
            self._finish_step()
            self.current_phase = phase
            if self.is_tty:
                self.console.print(f"\n[bold cyan]{phase}[/bold cyan]")
            else:
                print(f"\n{phase}", flush=True)

        if step_name is not None:
            if total_steps > 1:
                new_step = f"{step_number}/{total_steps} {step_name}"
            else:
                new_step = step_name
            if new_step != self.current_step:
                self._finish_step()
                self._start_step(new_step)

        if not message or not self.current_step:
            return
        if self.progress is not None and self.task_id is not None:
            self.progress.update(self.task_id, completed=progress)
        else:
            percentage = int(progress * 100)
            if percentage != self.last_logged_percentage:
                self.last_logged_percentage = percentage
                print(f"  {self.current_step}: {percentage}% ({message})", flush=True)

    @contextmanager
    def progress_context(self, initial_message: str = ""):
        """Context manager for progress display."""
        if not self.show_progress:
            yield self
            return

        try:
            if initial_message:
                self.current_phase = initial_message
                if self.is_tty:
                    self.console.print(f"\n[bold cyan]{initial_message}[/bold cyan]")
                else:
                    print(f"\n{initial_message}", flush=True)
            yield self
        finally:
            self._finish_step()
            self.current_phase = ""
