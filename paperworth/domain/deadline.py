import time
from dataclasses import dataclass, field
from typing import Optional

from paperworth.domain.errors import DeadlineExceeded


@dataclass
class RequestDeadline:
    """Request-scoped time budget shared by every outbound call of one request."""

    budget_seconds: float
    started: float = field(default_factory=time.monotonic)

    def remaining(self) -> float:
        return max(0.0, self.budget_seconds - (time.monotonic() - self.started))

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def timeout(self, cap: Optional[float] = None) -> float:
        """Timeout for the next outbound call, never longer than ``cap``."""
        remaining = self.remaining()
        if remaining <= 0.0:
            raise DeadlineExceeded("Request deadline exceeded")
        return min(remaining, cap) if cap is not None else remaining

    def check(self, step: str = "") -> None:
        if self.expired:
            suffix = f" before {step}" if step else ""
            raise DeadlineExceeded(f"Request deadline exceeded{suffix}")
