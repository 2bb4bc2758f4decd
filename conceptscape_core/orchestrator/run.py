"""Per-run cancellation."""

import asyncio
import uuid
from typing import Optional

from ..errors import RunCancelled


class RunHandle:
    """
    Cancellation flag owned by one orchestration run.

    Cancellation is one-way. An optional ``asyncio.Event`` supplied by the
    caller also counts as cancellation once set.
    """

    def __init__(self, concept: str, signal: Optional[asyncio.Event] = None):
        self.run_id = f"run_{uuid.uuid4().hex[:16]}"
        self.concept = concept
        self.signal = signal
        self.reason: Optional[str] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled or (self.signal is not None and self.signal.is_set())

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    def check(self) -> None:
        """Raise ``RunCancelled`` if the run has been cancelled."""
        if self.cancelled:
            raise RunCancelled(
                f"Run for '{self.concept}' was {self.reason or 'cancelled'}",
                details={"run_id": self.run_id},
            )

    def __repr__(self) -> str:
        return f"RunHandle({self.run_id!r}, concept={self.concept!r}, cancelled={self.cancelled})"
