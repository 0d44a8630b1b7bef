from typing import Protocol, runtime_checkable


@runtime_checkable
class ProgressCallback(Protocol):
    """Protocol for progress reporting callbacks.

    Progress is reported in three levels so a front end can render a
    routing run as it goes:

    * **Phase**: the operation as a whole (e.g., 'D8 flow accumulation').
    * **Step**: one pass of the operation (e.g., 'Num. inflowing neighbours').
    * **Message** and **Progress**: detail within the step, such as
      'Chunk 3/12' while a raster is read, with progress from 0.0 to 1.0.

    Args:
        phase (str | None): Name of the operation. If `None`, the previously
            reported phase is kept.
        step_name (str | None): Name of the current pass. If `None`, the
            previously reported step is kept.
        step_number (int): The current step number (1-indexed). Defaults to 0.
        total_steps (int): The number of steps in the phase. Defaults to 0.
        message (str): Detail about the current activity.
        progress (float): Completion of the current step, 0.0 to 1.0.

    Returns:
        None
    """

    def __call__(
        self,
        phase: str | None = None,
        step_name: str | None = None,
        step_number: int = 0,
        total_steps: int = 0,
        message: str = "",
        progress: float = 0.0,
    ) -> None:
        """Report progress for an operation."""
        ...


def silent_callback(
    phase: str | None = None,
    step_name: str | None = None,
    step_number: int = 0,
    total_steps: int = 0,
    message: str = "",
    progress: float = 0.0,
) -> None:
    """Default callback, discards every report."""
    pass


class ProgressTracker:
    """Keeps the step counter for one phase and forwards reports.

    Sub-step reports made through `step_tracker` are only forwarded when the
    whole-number percentage changes, so a callback sees a monotonically
    increasing sequence of at most 101 values per step.

    Args:
        callback: The progress callback to forward to (silent when None)
        phase: Name of the phase, reported once on construction
        total_steps: Number of steps in the phase
    """

    def __init__(
        self,
        callback: ProgressCallback | None,
        phase: str,
        total_steps: int = 1,
    ) -> None:
        self.callback = callback if callback is not None else silent_callback
        self.phase = phase
        self.total_steps = max(1, total_steps)
        self.current_step = 0
        self.last_percentage = -1
        self.callback(phase=phase)

    def update(
        self,
        step: int | None = None,
        step_name: str = "",
        message: str = "",
        progress: float | None = None,
    ) -> None:
        """Start a step (or advance to the next one) and report it.

        Args:
            step: Step number to move to (if None, the next step)
            step_name: Name of the step
            message: Optional detail
            progress: Progress within the step, clamped to 0.0-1.0
        """
        if step is not None:
            self.current_step = step
        else:
            self.current_step += 1
        self.last_percentage = -1

        progress = 0.0 if progress is None else max(0.0, min(1.0, progress))

        self.callback(
            step_name=step_name if step_name else None,
            step_number=self.current_step,
            total_steps=self.total_steps,
            progress=progress,
            message=message,
        )

    def step_tracker(self, step: int, total: int, message: str) -> None:
        """Report progress through the current step.

        Args:
            step: Sub-steps completed so far (e.g., row blocks written)
            total: Total sub-steps
            message: Status message
        """
        step_progress = min(1.0, step / max(1, total))
        percentage = int(step_progress * 100)
        if percentage == self.last_percentage:
            return
        self.last_percentage = percentage

        self.callback(
            step_number=self.current_step,
            total_steps=self.total_steps,
            progress=step_progress,
            message=message,
        )
