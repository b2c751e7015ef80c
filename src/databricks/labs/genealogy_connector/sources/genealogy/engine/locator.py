"""Locating an identifier's occurrences on a channel over a time range.

Ranges are split into windows that are scanned one at a time. Each window is
raw-read first; an empty raw read falls back to a point-in-time probe at the
window's two endpoints. Timed-out or errored reads are absorbed as "no data
in this window" and counted, so callers can tell a station whose every
attempt failed from one that simply saw nothing. Raised `HistorianError`s
propagate to the station task.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Set, Tuple

from databricks.labs.genealogy_connector.sources.genealogy.engine.boundary import (
    BoundaryResolver,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.intervals import (
    split_range,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_constants import (
    WINDOW_AT_TIME_TIMEOUT,
    WINDOW_RAW_TIMEOUT,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_http import (
    HistorianReader,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    DataPoint,
    Occurrence,
    SignalIdentity,
    TimeRange,
    Window,
)

logger = logging.getLogger(__name__)


@dataclass
class WindowScan:
    window: Window
    points: List[DataPoint] = field(default_factory=list)
    failed: bool = False


@dataclass
class ScanTally:
    """Window attempt counters shared by every scan result."""

    attempts: int = 0
    failed_attempts: int = 0

    def record(self, failed: bool) -> None:
        self.attempts += 1
        if failed:
            self.failed_attempts += 1

    def merge(self, other: "ScanTally") -> None:
        self.attempts += other.attempts
        self.failed_attempts += other.failed_attempts


@dataclass
class LocateResult(ScanTally):
    occurrences: List[Occurrence] = field(default_factory=list)


@dataclass
class SearchResult(ScanTally):
    point: Optional[DataPoint] = None


@dataclass
class HarvestResult(ScanTally):
    points: List[DataPoint] = field(default_factory=list)


class OccurrenceLocator:
    """Windowed scans of one channel for a target value."""

    def __init__(
        self,
        historian: HistorianReader,
        boundary: BoundaryResolver,
        raw_timeout: float = WINDOW_RAW_TIMEOUT,
        at_time_timeout: float = WINDOW_AT_TIME_TIMEOUT,
    ) -> None:
        self.historian = historian
        self.boundary = boundary
        self.raw_timeout = raw_timeout
        self.at_time_timeout = at_time_timeout

    def scan_window(self, signal: SignalIdentity, window: Window) -> WindowScan:
        """Raw-read one window, probing its endpoints when the raw read is empty."""
        raw = self.historian.read_raw(signal, window.start, window.end, self.raw_timeout)
        if raw.has_points:
            return WindowScan(window, list(raw.points))
        if raw.failed:
            logger.warning(
                "Raw read of %s over [%s, %s] absorbed: %s",
                signal,
                window.start,
                window.end,
                raw.error or raw.status.value,
            )
            return WindowScan(window, failed=True)

        probe = self.historian.read_at_times(
            signal, [window.start, window.end], self.at_time_timeout
        )
        if probe.failed:
            logger.warning(
                "Point-in-time probe of %s at [%s, %s] absorbed: %s",
                signal,
                window.start,
                window.end,
                probe.error or probe.status.value,
            )
            return WindowScan(window, failed=True)
        return WindowScan(window, list(probe.points) if probe.has_points else [])

    def find_occurrences(  # pylint: disable=too-many-arguments
        self,
        signal: SignalIdentity,
        value: str,
        trigger: SignalIdentity,
        bounds: TimeRange,
        window_size: timedelta,
        include_rework: bool = True,
    ) -> LocateResult:
        """Find every instant `signal` held `value` inside `bounds`.

        Windows and matches are walked newest first. Each match gets its
        bounding window from the trigger channel; occurrences sharing a
        (from_dt, to_dt, channel) key are kept once. Without
        `include_rework` the walk stops at the first (most recent) match.
        """
        bounds = bounds.normalized()
        result = LocateResult()
        seen: Set[Tuple[datetime, datetime, SignalIdentity]] = set()

        for window in reversed(split_range(bounds, window_size)):
            scan = self.scan_window(signal, window)
            result.record(scan.failed)
            if scan.failed:
                continue

            matches = sorted(
                (p for p in scan.points if p.text == value),
                key=lambda p: p.timestamp,
                reverse=True,
            )
            for point in matches:
                from_dt, to_dt = self.boundary.resolve_window(trigger, point.timestamp, bounds)
                occurrence = Occurrence(signal, value, point.timestamp, from_dt, to_dt)
                if occurrence.key in seen:
                    continue
                seen.add(occurrence.key)
                result.occurrences.append(occurrence)
                logger.debug("Found %s on %s at %s", value, signal, point.timestamp)
                if not include_rework:
                    return result

        return result

    def find_latest(  # pylint: disable=too-many-arguments
        self,
        signal: SignalIdentity,
        value: str,
        bounds: TimeRange,
        step: timedelta,
        timeout: Optional[float] = None,
    ) -> SearchResult:
        """Search backward from the end of `bounds` in `step`-sized raw reads.

        Stops at the first window holding `value` and returns its most recent
        matching sample.
        """
        bounds = bounds.normalized()
        result = SearchResult()
        end = bounds.end
        while end > bounds.start:
            start = max(end - step, bounds.start)
            raw = self.historian.read_raw(signal, start, end, timeout or self.raw_timeout)
            result.record(raw.failed)
            if raw.has_points:
                matches = [p for p in raw.points if p.text == value]
                if matches:
                    result.point = max(matches, key=lambda p: p.timestamp)
                    return result
            end = start
        return result

    def harvest(
        self,
        signal: SignalIdentity,
        bounds: TimeRange,
        window_size: timedelta,
        timeout: Optional[float] = None,
    ) -> HarvestResult:
        """Raw-read every sample of `signal` in `bounds`, window by window."""
        result = HarvestResult()
        for window in split_range(bounds.normalized(), window_size):
            raw = self.historian.read_raw(
                signal, window.start, window.end, timeout or self.raw_timeout
            )
            result.record(raw.failed)
            if raw.failed:
                logger.warning(
                    "Harvest of %s over [%s, %s] absorbed: %s",
                    signal,
                    window.start,
                    window.end,
                    raw.error or raw.status.value,
                )
                continue
            result.points.extend(raw.points)
        return result
