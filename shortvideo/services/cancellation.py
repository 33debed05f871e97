from __future__ import annotations

import threading

from shortvideo.errors import JobCancelledError


class CancellationToken:
    """Per-job flag checked by the pipeline before each stage starts."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self._event.is_set():
            raise JobCancelledError(f"job cancelled before {stage}")
