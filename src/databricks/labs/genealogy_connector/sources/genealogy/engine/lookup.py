"""Point lookups over identifier channels.

- `SnapshotResolver`: which identifiers a station held over a range, each
  with the span it stayed current.
- `IdentifierLookup`: the most downstream line on which an identifier was
  last seen.
- `ReliabilityChecker`: which of a set of tags recorded an identifier.

The last two share the locator's backward shifting search.
"""

import logging
from datetime import datetime
from http import HTTPStatus
from typing import List, Set

from databricks.labs.genealogy_connector.sources.genealogy.engine.aggregator import (
    settle,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.boundary import (
    BoundaryResolver,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.descendant import (
    AuxiliaryReader,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.locator import (
    OccurrenceLocator,
    ScanTally,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_config import (
    GenealogySettings,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_constants import (
    LOOKUP_STEP,
    LOOKUP_TIMEOUT,
    SNAPSHOT_TIMEOUT,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    HistorianError,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_http import (
    HistorianReader,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    DataPoint,
    LookupRequest,
    LookupResult,
    ReliabilityRequest,
    ReliabilityResult,
    SignalIdentity,
    SnapshotEntry,
    SnapshotStation,
    SnapshotStationResult,
    StationOutcome,
    TimeRange,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_utils import (
    utcnow,
)

logger = logging.getLogger(__name__)


class SnapshotResolver:
    def __init__(
        self,
        settings: GenealogySettings,
        historian: HistorianReader,
        boundary: BoundaryResolver,
        auxiliary: AuxiliaryReader,
        timeout: float = SNAPSHOT_TIMEOUT,
    ) -> None:
        self.settings = settings
        self.historian = historian
        self.boundary = boundary
        self.auxiliary = auxiliary
        self.timeout = timeout

    def resolve_station(self, station: SnapshotStation, bounds: TimeRange) -> StationOutcome:
        """List each distinct identifier seen on the station inside `bounds`.

        An identifier stays current until the next recorded sample; the last
        one until the next trigger, or now when there is none yet.
        """
        bounds = bounds.normalized()
        identifier = SignalIdentity.for_channel(self.settings, station.identifier_channel)
        trigger = SignalIdentity.for_channel(self.settings, station.trigger_channel)

        tally = ScanTally()
        raw = self.historian.read_raw(identifier, bounds.start, bounds.end, self.timeout)
        tally.record(raw.failed)
        if raw.failed:
            logger.warning(
                "Snapshot read of %s over [%s, %s] absorbed: %s",
                identifier,
                bounds.start,
                bounds.end,
                raw.error or raw.status.value,
            )

        points = sorted(raw.points, key=lambda p: p.timestamp) if raw.has_points else []
        entries: List[SnapshotEntry] = []
        seen: Set[str] = set()
        for i, point in enumerate(points):
            text = point.text
            if text is None or text in seen:
                continue
            seen.add(text)
            end = self._current_until(trigger, point, points[i + 1:])
            entries.append(
                SnapshotEntry(
                    value=text,
                    from_dt=point.timestamp,
                    to_dt=end,
                    auxiliary_values=self.auxiliary.read_all(station.auxiliary_channels, end),
                )
            )

        record = SnapshotStationResult(
            machine=station.machine,
            station=station.station,
            from_dt=min((e.from_dt for e in entries), default=bounds.start),
            to_dt=max((e.to_dt for e in entries), default=bounds.end),
            entries=entries,
        )
        outcome = StationOutcome(station.machine, station.station, records=[record])
        return settle(outcome, tally, found=bool(entries))

    def _current_until(
        self, trigger: SignalIdentity, point: DataPoint, later: List[DataPoint]
    ) -> datetime:
        for candidate in later:
            if candidate.timestamp > point.timestamp:
                return candidate.timestamp
        return self.boundary.next_trigger_after(trigger, point.timestamp) or utcnow()


class IdentifierLookup:
    def __init__(
        self,
        settings: GenealogySettings,
        locator: OccurrenceLocator,
        timeout: float = LOOKUP_TIMEOUT,
    ) -> None:
        self.settings = settings
        self.locator = locator
        self.timeout = timeout

    def lookup(self, request: LookupRequest, bounds: TimeRange) -> LookupResult:
        """Walk lines from the most downstream one, stopping at the first hit."""
        result = LookupResult(
            identifier=request.identifier,
            from_dt=bounds.start,
            to_dt=bounds.end,
            status=HTTPStatus.NOT_FOUND,
            lines=sorted(
                request.lines, key=lambda l: (l.line_group_seq, l.line_seq), reverse=True
            ),
        )
        errors: List[str] = []
        for line in result.lines:
            signal = SignalIdentity.for_channel(self.settings, line.channel)
            try:
                search = self.locator.find_latest(
                    signal, request.identifier, bounds, LOOKUP_STEP, timeout=self.timeout
                )
            except HistorianError as e:
                logger.error("Lookup of %s on %s failed: %s", request.identifier, signal, e)
                errors.append(str(e))
                continue
            if search.point is not None:
                line.is_found = True
                result.first_dt = search.point.timestamp
                result.status = HTTPStatus.OK
                logger.info(
                    "Identifier %s last seen on line %s/%s at %s",
                    request.identifier,
                    line.line_group_seq,
                    line.line_seq,
                    result.first_dt,
                )
                return result

        if errors:
            result.status = HTTPStatus.INTERNAL_SERVER_ERROR
            result.error = "; ".join(errors)
        return result


class ReliabilityChecker:
    def __init__(
        self,
        settings: GenealogySettings,
        locator: OccurrenceLocator,
        timeout: float = LOOKUP_TIMEOUT,
    ) -> None:
        self.settings = settings
        self.locator = locator
        self.timeout = timeout

    def check(self, request: ReliabilityRequest, bounds: TimeRange) -> ReliabilityResult:
        result = ReliabilityResult(
            identifier=request.identifier,
            start=bounds.start,
            end=bounds.end,
            status=HTTPStatus.NOT_FOUND,
            tags=sorted(request.tags, key=lambda t: t.sequence, reverse=True),
        )
        errors: List[str] = []
        for tag in result.tags:
            signal = SignalIdentity.for_channel(self.settings, tag.tag_address)
            try:
                search = self.locator.find_latest(
                    signal, request.identifier, bounds, LOOKUP_STEP, timeout=self.timeout
                )
            except HistorianError as e:
                logger.error("Reliability check of %s on %s failed: %s", request.identifier, signal, e)
                errors.append(str(e))
                continue
            tag.is_retrieved = search.point is not None

        if any(t.is_retrieved for t in result.tags):
            result.status = HTTPStatus.OK
        elif errors:
            result.status = HTTPStatus.INTERNAL_SERVER_ERROR
        result.error = "; ".join(errors) or None
        return result

