"""Ascendant genealogy: discover every identifier that passed through a station.

For each tag address the request range is scanned in 12-hour windows for the
look-up value. Every match becomes a super-occurrence bounded by trigger
lookups (or, for the galia strategy, by the matching probe instants). The
station's identifier channel is then harvested over each super-occurrence in
6-hour windows and every distinct value seen is reported with its creation
time.
"""

import logging
from datetime import datetime
from typing import List, Optional, Set, Tuple

from databricks.labs.genealogy_connector.sources.genealogy.engine.aggregator import (
    settle,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.boundary import (
    BoundaryResolver,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.intervals import (
    split_range,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.locator import (
    LocateResult,
    OccurrenceLocator,
    ScanTally,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.scheduler import (
    map_bounded,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_config import (
    GenealogySettings,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_constants import (
    ASCENDANT_SCAN_WINDOW,
    HARVEST_TIMEOUT,
    HARVEST_WINDOW,
    SEQUENCED_RAW_TIMEOUT,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_http import (
    HistorianReader,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    AscendantStation,
    AscendantStationResult,
    AscendantStrategy,
    DataPoint,
    IdentifierRecord,
    Occurrence,
    SignalIdentity,
    StationOutcome,
    TimeRange,
    Window,
)

logger = logging.getLogger(__name__)


def _ordered(first: datetime, second: datetime, bounds: TimeRange) -> Tuple[datetime, datetime]:
    from_dt = bounds.clamp(first)
    to_dt = bounds.clamp(second)
    if to_dt < from_dt:
        to_dt = from_dt
    return from_dt, to_dt


class AscendantResolver:
    """Per-station ascendant resolution across the three scan strategies."""

    def __init__(
        self,
        settings: GenealogySettings,
        historian: HistorianReader,
        boundary: BoundaryResolver,
        locator: OccurrenceLocator,
        raw_timeout: float = SEQUENCED_RAW_TIMEOUT,
    ) -> None:
        self.settings = settings
        self.historian = historian
        self.boundary = boundary
        self.locator = locator
        self.raw_timeout = raw_timeout

    def resolve_station(
        self,
        station: AscendantStation,
        bounds: TimeRange,
        lookup_value: str,
        strategy: AscendantStrategy = AscendantStrategy.PART_NUMBER,
    ) -> StationOutcome:
        bounds = bounds.normalized()
        trigger = SignalIdentity.for_channel(self.settings, station.trigger_channel)
        identifier = SignalIdentity.for_channel(self.settings, station.identifier_channel)
        tags = [SignalIdentity.for_channel(self.settings, t) for t in station.tag_addresses]

        per_tag: List[LocateResult] = map_bounded(
            lambda tag: self.scan_tag(tag, trigger, bounds, lookup_value, strategy),
            tags,
            self.settings.tag_workers,
        )

        tally = ScanTally()
        result = AscendantStationResult(
            machine=station.machine,
            station=station.station,
            identifier_channel=station.identifier_channel,
            trigger_channel=station.trigger_channel,
        )
        seen: Set[Tuple[datetime, datetime, SignalIdentity]] = set()
        for located in per_tag:
            tally.merge(located)
            for occurrence in located.occurrences:
                if occurrence.key not in seen:
                    seen.add(occurrence.key)
                    result.occurrences.append(occurrence)

        tally.merge(self._harvest_identifiers(identifier, result))

        if result.identifiers:
            created = [r.created_at for r in result.identifiers]
            result.from_dt, result.to_dt = min(created), max(created)

        logger.debug(
            "Station %s/%s: %d super-occurrence(s), %d identifier(s)",
            station.machine,
            station.station,
            len(result.occurrences),
            len(result.identifiers),
        )
        outcome = StationOutcome(station.machine, station.station, records=[result])
        return settle(outcome, tally, found=bool(result.identifiers))

    # =========================================================================
    # Tag scans
    # =========================================================================

    def scan_tag(  # pylint: disable=too-many-arguments
        self,
        tag: SignalIdentity,
        trigger: SignalIdentity,
        bounds: TimeRange,
        value: str,
        strategy: AscendantStrategy,
    ) -> LocateResult:
        """Find the super-occurrences of `value` on one tag address."""
        result = LocateResult()
        seen: Set[Tuple[datetime, datetime, SignalIdentity]] = set()

        def keep(occurrence: Optional[Occurrence]) -> None:
            if occurrence is not None and occurrence.key not in seen:
                seen.add(occurrence.key)
                result.occurrences.append(occurrence)

        windows = split_range(bounds, ASCENDANT_SCAN_WINDOW)
        if strategy == AscendantStrategy.GALIA:
            windows.reverse()

        for window in windows:
            raw = self.historian.read_raw(tag, window.start, window.end, self.raw_timeout)
            result.record(raw.failed)
            if raw.failed:
                logger.warning(
                    "Sequenced read of %s over [%s, %s] absorbed: %s",
                    tag,
                    window.start,
                    window.end,
                    raw.error or raw.status.value,
                )
                continue

            matches = [p for p in raw.points if p.text == value] if raw.has_points else []
            if matches:
                for point in matches:
                    keep(self._raw_occurrence(tag, trigger, point, window, bounds, strategy))
                continue

            if strategy == AscendantStrategy.SERIAL:
                continue
            keep(self._probe_occurrence(tag, trigger, value, window, bounds, strategy))

        return result

    def _raw_occurrence(  # pylint: disable=too-many-arguments
        self,
        tag: SignalIdentity,
        trigger: SignalIdentity,
        point: DataPoint,
        window: Window,
        bounds: TimeRange,
        strategy: AscendantStrategy,
    ) -> Optional[Occurrence]:
        t = point.timestamp
        if strategy == AscendantStrategy.SERIAL:
            before = self.boundary.last_trigger_before(trigger, t)
            after = self.boundary.next_trigger_after(trigger, t)
            if before is None or after is None:
                return None
            from_dt, to_dt = _ordered(before, after, bounds)
            return Occurrence(tag, point.text, t, from_dt, to_dt)

        # The value holds until the tag next changes; the window closes at
        # the last trigger before that change.
        tag_change = self.boundary.next_trigger_after(tag, t)
        closing = self.boundary.last_trigger_before(trigger, tag_change or window.end)
        opening = self.boundary.last_trigger_before(trigger, t)
        from_dt, to_dt = _ordered(opening or t, closing or bounds.end, bounds)
        return Occurrence(tag, point.text, t, from_dt, to_dt)

    def _probe_occurrence(  # pylint: disable=too-many-arguments
        self,
        tag: SignalIdentity,
        trigger: SignalIdentity,
        value: str,
        window: Window,
        bounds: TimeRange,
        strategy: AscendantStrategy,
    ) -> Optional[Occurrence]:
        probe = self.historian.read_at_times(tag, [window.start, window.end], self.raw_timeout)
        if probe.failed:
            logger.warning(
                "Point-in-time probe of %s at [%s, %s] absorbed: %s",
                tag,
                window.start,
                window.end,
                probe.error or probe.status.value,
            )
            return None
        hits = [p for p in probe.points if p.text == value] if probe.has_points else []
        if not hits:
            return None

        if strategy == AscendantStrategy.GALIA:
            instants = [p.timestamp for p in hits]
            from_dt, to_dt = _ordered(min(instants), max(instants), bounds)
        else:
            before = self.boundary.last_trigger_before(trigger, window.start)
            after = self.boundary.next_trigger_after(trigger, window.end)
            if before is None or after is None:
                return None
            from_dt, to_dt = _ordered(before, after, bounds)
        return Occurrence(tag, value, hits[0].timestamp, from_dt, to_dt)

    # =========================================================================
    # Identifier harvest
    # =========================================================================

    def _harvest_identifiers(
        self, identifier: SignalIdentity, result: AscendantStationResult
    ) -> ScanTally:
        tally = ScanTally()
        seen_values: Set[str] = set()
        for occurrence in result.occurrences:
            harvested = self.locator.harvest(
                identifier,
                TimeRange(occurrence.from_dt, occurrence.to_dt),
                HARVEST_WINDOW,
                timeout=HARVEST_TIMEOUT,
            )
            tally.merge(harvested)
            for point in sorted(harvested.points, key=lambda p: p.timestamp):
                text = point.text
                if text is None or text in seen_values:
                    continue
                seen_values.add(text)
                result.identifiers.append(IdentifierRecord(value=text, created_at=point.timestamp))
        return tally
