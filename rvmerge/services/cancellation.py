from __future__ import annotations

import threading

"""Cooperative cancellation shared between the CLI thread and the merge worker."""

__all__ = ["CancellationToken"]


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
