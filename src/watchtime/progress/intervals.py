"""Watched-interval engine: merging, coverage queries, and acceptance rules.

Pure logic, no I/O. Operates on a ``WatchState`` value that the service layer
loads from and saves back to the database.

Intervals are half-open ``[start, end)`` in seconds. After every merge the
stored list is sorted by start, pairwise disjoint, and no two neighbours lie
within ``MERGE_TOLERANCE_SECONDS`` of each other.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

MERGE_TOLERANCE_SECONDS = 1.0
COMPLETION_THRESHOLD = 0.95
MAX_SKIP_SECONDS = 10.0
MIN_NOVELTY_RATIO = 0.5


@dataclass(frozen=True, order=True)
class Interval:
    """A contiguous span of video watched in one sitting."""

    start: float
    end: float

    @property
    def length(self) -> float:
        return self.end - self.start

    def contains(self, start: float, end: float) -> bool:
        return self.start <= start and end <= self.end


def merge_intervals(
    intervals: Iterable[Interval],
    tolerance: float = MERGE_TOLERANCE_SECONDS,
) -> list[Interval]:
    """Coalesce overlapping or nearly-touching intervals.

    Two intervals merge when the later one starts no more than ``tolerance``
    seconds after the earlier one ends. The merged span covers the bridged gap,
    so the gap counts toward watched time.
    """
    ordered = sorted(intervals, key=lambda i: i.start)
    if not ordered:
        return []

    merged: list[Interval] = [ordered[0]]
    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end + tolerance:
            merged[-1] = Interval(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def uncovered_seconds(start: float, end: float, intervals: Iterable[Interval]) -> float:
    """Measure of ``[start, end)`` not covered by any of ``intervals``.

    ``intervals`` need not be sorted or disjoint.
    """
    if end <= start:
        return 0.0

    covered = 0.0
    cursor = start
    for interval in merge_intervals(intervals, tolerance=0.0):
        if interval.end <= cursor:
            continue
        if interval.start >= end:
            break
        overlap_start = max(cursor, interval.start)
        overlap_end = min(end, interval.end)
        if overlap_end > overlap_start:
            covered += overlap_end - overlap_start
            cursor = overlap_end
    return (end - start) - covered


@dataclass
class WatchState:
    """Watch progress for one (user, video) pair.

    ``total_watched`` and ``is_completed`` are derived from ``intervals`` and
    ``video_duration`` by ``merge()``; callers should not set them directly.
    Once ``is_completed`` is true it stays true, even if ``video_duration`` grows.
    ``duration_reported`` is false while ``video_duration`` is only a lower bound
    learned from a reported interval's end.
    """

    intervals: list[Interval] = field(default_factory=list)
    last_position: float = 0.0
    total_watched: float = 0.0
    video_duration: float = 0.0
    last_watched_at: datetime | None = None
    is_completed: bool = False
    duration_reported: bool = False

    @property
    def completion_ratio(self) -> float:
        if self.video_duration <= 0:
            return 0.0
        return self.total_watched / self.video_duration

    def is_watched(self, query_start: float, query_end: float) -> bool:
        """True iff a single stored interval contains ``[query_start, query_end]``.

        A query spanning two distinct stored intervals is not watched, even if
        their union would cover it. A gap bridged by the merge tolerance lies
        inside a merged interval and so counts as watched.
        """
        return any(i.contains(query_start, query_end) for i in self.intervals)

    def merge(self) -> float:
        """Normalize ``intervals`` and recompute derived stats. Returns total watched seconds."""
        if not self.intervals:
            self.total_watched = 0.0
            return 0.0

        self.intervals = merge_intervals(self.intervals)
        self.total_watched = sum(i.length for i in self.intervals)
        if self.video_duration > 0 and self.completion_ratio >= COMPLETION_THRESHOLD:
            self.is_completed = True
        return self.total_watched

    def rejection_reason(self, start: float, end: float) -> str | None:
        """Name of the first acceptance rule ``[start, end)`` fails, or None if it passes."""
        if end <= start:
            return "empty_interval"

        if start < 0 or (self.video_duration > 0 and end > self.video_duration):
            return "out_of_range"

        # Anti-skip: a fresh record (nothing watched yet) always accepts its first interval
        if self.total_watched > 0 and abs(start - self.last_position) > MAX_SKIP_SECONDS:
            return "skip_detected"

        if uncovered_seconds(start, end, self.intervals) < MIN_NOVELTY_RATIO * (end - start):
            return "mostly_watched"

        return None

    def add_interval(
        self,
        start: float,
        end: float,
        current_position: float,
        now: datetime | None = None,
    ) -> bool:
        """Accept and merge ``[start, end)`` if it passes every rule.

        Returns False with no mutation when rejected.
        """
        if self.rejection_reason(start, end) is not None:
            return False

        self.last_position = current_position
        self.last_watched_at = now or datetime.now(timezone.utc)
        self.intervals.append(Interval(start, end))
        self.merge()
        return True
