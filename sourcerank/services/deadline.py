from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field


@dataclass
class Deadline:
    """Request-scoped deadline plus cancellation flag.

    Children share the parent's cancel flag and never outlive the parent's expiry.
    """

    expires_at: float | None = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @classmethod
    def after(cls, seconds: float | None) -> "Deadline":
        if seconds is None:
            return cls()
        return cls(expires_at=time.monotonic() + max(seconds, 0.0))

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(self.expires_at - time.monotonic(), 0.0)

    def timeout(self, cap: float | None = None) -> float | None:
        """Seconds allowed for the next call: the smaller of `cap` and what is left."""
        left = self.remaining()
        if cap is None:
            return left
        if left is None:
            return cap
        return min(cap, left)

    def child(self, seconds: float | None) -> "Deadline":
        budget = self.timeout(seconds)
        if budget is None:
            return Deadline(cancel_event=self.cancel_event)
        return Deadline(expires_at=time.monotonic() + budget, cancel_event=self.cancel_event)

    @property
    def expired(self) -> bool:
        left = self.remaining()
        return left is not None and left <= 0

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise asyncio.CancelledError("request cancelled")
