from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

- Single tqdm instance; disabled when stdout is not a TTY (CI / pipes)
- One step per entity file read, plus one step for the validation pass
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class ProgressTracker:
    """Step progress for the load -> validate run.

    In non-TTY environments no tqdm bar is created at all, so nothing but
    the labeled log lines reach stdout.
    """

    def __init__(self, total_steps: int, *, description: str = "Validating") -> None:
        self.total_steps = total_steps
        self.description = description
        self.completed = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_steps,
                desc=description,
                unit="step",
                leave=True,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_step(self, label: str) -> None:
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({label})")

    def finish_step(self, **postfix: Any) -> None:
        self.completed += 1
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)
            if postfix:
                self.pbar.set_postfix(**postfix)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
