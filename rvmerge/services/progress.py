from __future__ import annotations

import sys
from typing import Any, Protocol

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress reporting for the merge phases.

The orchestrator only talks to a ProgressListener (count done / total per
phase), so the core stays independent of any display. ProgressTracker is the
console implementation: one tqdm bar per phase, disabled when stdout is not a
TTY to avoid ANSI control sequence spam in CI logs.
"""

__all__ = [
    "NullProgress",
    "ProgressListener",
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressListener(Protocol):
    def start_phase(self, phase: str, total: int) -> None: ...

    def advance(self, detail: str = "", step: int = 1) -> None: ...

    def finish_phase(self) -> None: ...


class NullProgress:
    def start_phase(self, phase: str, total: int) -> None:
        pass

    def advance(self, detail: str = "", step: int = 1) -> None:
        pass

    def finish_phase(self) -> None:
        pass


class ProgressTracker:
    """tqdm based listener; every method is a no-op outside a TTY."""

    def __init__(self, *, enabled: bool | None = None) -> None:
        self.enabled = is_tty_enabled() if enabled is None else enabled
        self.pbar: TqdmType[Any] | None = None
        self.phase = ""

    def start_phase(self, phase: str, total: int) -> None:
        self.finish_phase()
        self.phase = phase
        if self.enabled:
            self.pbar = tqdm(
                total=total,
                desc=phase,
                unit="step",
                leave=True,
                ncols=80,
                ascii=True,
            )

    def advance(self, detail: str = "", step: int = 1) -> None:
        if self.pbar is not None:
            self.pbar.set_description(f"{self.phase} ({detail})" if detail else self.phase)
            self.pbar.update(step)

    def finish_phase(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def close(self) -> None:
        self.finish_phase()

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
