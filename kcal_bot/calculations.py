"""Daily calorie arithmetic for the short stat."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class ShortStat:
    """Calories consumed today against the optional daily limit."""

    total: float
    limit: Optional[float] = None

    @property
    def has_limit(self) -> bool:
        return self.limit is not None

    @property
    def percent(self) -> Optional[int]:
        """Share of the limit consumed, rounded to a whole percent."""

        if self.limit is None:
            return None
        if self.limit == 0:
            return 0 if self.total == 0 else None
        return round(self.total / self.limit * 100)

    @property
    def left(self) -> float:
        if self.limit is None:
            return 0.0
        return max(self.limit - self.total, 0.0)

    @property
    def overeat(self) -> float:
        if self.limit is None:
            return 0.0
        return max(self.total - self.limit, 0.0)


def build_short_stat(total: Optional[float], limit: Optional[float]) -> ShortStat:
    """Normalise storage values into a ``ShortStat``."""

    if limit is not None and limit < 0:
        raise ValueError(f"Unsupported limit: {limit}")
    return ShortStat(total=float(total or 0.0), limit=None if limit is None else float(limit))
