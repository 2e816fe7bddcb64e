"""Data models for rate limiting."""

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after: Optional[int] = None


@dataclass
class RateLimitEntry:
    """Fixed-window counter for one client key.

    ``count`` starts at 1 when the window opens and only grows until the
    window expires, at which point the entry is replaced.
    """
    count: int = 1
    window_start: float = field(default_factory=time.time)
