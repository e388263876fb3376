"""Half-open time intervals shared by the classifier and the aggregators.

An interval covers ``[start, end)``. A missing end means the interval is
still open. Because the end is exclusive, a stay ending exactly at
midnight does not touch the following day.
"""

import math
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime | None = None

    def __post_init__(self):
        if self.end is not None and self.end < self.start:
            raise ValueError(f"Interval end {self.end} before start {self.start}")

    @classmethod
    def between(cls, start: datetime | None, end: datetime | None) -> "Interval | None":
        """Interval for raw record bounds.

        Returns None when the start is missing or the end lies before it.
        """
        if start is None:
            return None
        if end is not None and end < start:
            return None
        return cls(start, end)

    @staticmethod
    def is_inverted(start: datetime | None, end: datetime | None) -> bool:
        return start is not None and end is not None and end < start

    @property
    def is_open(self) -> bool:
        return self.end is None

    @property
    def is_empty(self) -> bool:
        return self.end is not None and self.end == self.start

    def contains(self, t: datetime) -> bool:
        return self.start <= t and (self.end is None or t < self.end)

    def overlaps(self, other: "Interval") -> bool:
        return self.intersection(other) is not None

    def intersection(self, other: "Interval") -> "Interval | None":
        """Common part of both intervals, or None if they do not overlap."""
        start = max(self.start, other.start)
        if self.end is None:
            end = other.end
        elif other.end is None:
            end = self.end
        else:
            end = min(self.end, other.end)
        if end is not None and end <= start:
            return None
        return Interval(start, end)

    def clip(self, start: datetime | None = None, end: datetime | None = None) -> "Interval | None":
        """Restrict the interval to [start, end); open bounds are left alone."""
        new_start = self.start if start is None else max(self.start, start)
        if end is None:
            new_end = self.end
        elif self.end is None:
            new_end = end
        else:
            new_end = min(self.end, end)
        if new_end is not None and new_end <= new_start:
            return None
        return Interval(new_start, new_end)

    def seconds(self) -> float:
        if self.end is None:
            raise ValueError("Open interval has no duration")
        return (self.end - self.start).total_seconds()

    def hours(self) -> int:
        """Duration in whole hours, rounded up."""
        return math.ceil(self.seconds() / 3600)

    @staticmethod
    def merge(intervals) -> list["Interval"]:
        """Union of the given intervals as sorted, non-overlapping intervals.

        Touching intervals are joined. An open interval absorbs everything
        after its start.
        """
        ordered = sorted(
            (i for i in intervals if not i.is_empty),
            key=lambda i: (i.start, i.end is None, i.end),
        )
        merged: list[Interval] = []
        for interval in ordered:
            if merged:
                last = merged[-1]
                if last.end is None or interval.start <= last.end:
                    if last.end is None or interval.end is None:
                        end = None
                    else:
                        end = max(last.end, interval.end)
                    merged[-1] = Interval(last.start, end)
                    continue
            merged.append(interval)
        return merged

    @staticmethod
    def union_hours(intervals) -> int:
        """Whole hours covered by the union of closed intervals."""
        total = sum(i.seconds() for i in Interval.merge(intervals))
        return math.ceil(total / 3600)
