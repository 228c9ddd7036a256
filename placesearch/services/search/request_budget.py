"""
Per-call time budget for a place search.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Optional

from ...core.exceptions import SearchTimeoutException


@dataclass
class SearchDeadline:
    """Track the remaining time a search may spend in the store."""

    total_ms: int
    start_time: float = field(default_factory=time.perf_counter)

    # Smallest statement timeout worth sending; below this the search is treated as expired.
    MIN_STATEMENT_MS = 1

    @classmethod
    def from_settings(cls, timeout_ms: Optional[int]) -> Optional["SearchDeadline"]:
        if timeout_ms is None:
            return None
        return cls(total_ms=timeout_ms)

    @property
    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.start_time) * 1000)

    @property
    def remaining_ms(self) -> int:
        return max(0, self.total_ms - self.elapsed_ms)

    def is_expired(self) -> bool:
        return self.remaining_ms < self.MIN_STATEMENT_MS

    def ensure_remaining(self, stage: str) -> int:
        """Return the remaining milliseconds, raising if the deadline has passed."""
        remaining = self.remaining_ms
        if remaining < self.MIN_STATEMENT_MS:
            raise SearchTimeoutException(stage, budget_ms=self.total_ms)
        return remaining
