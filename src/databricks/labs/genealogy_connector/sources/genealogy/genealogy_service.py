"""Request-level entry points of the genealogy engine.

`GenealogyService` wires the engine components around one historian client
and one settings object, validates and clamps incoming requests, fans
station work out through the scheduler and aggregates the outcomes.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from databricks.labs.genealogy_connector.sources.genealogy.engine import (
    AscendantResolver,
    AuxiliaryReader,
    BoundaryResolver,
    DescendantResolver,
    IdentifierLookup,
    OccurrenceLocator,
    ReliabilityChecker,
    SnapshotResolver,
    StationScheduler,
    aggregate,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_config import (
    GenealogySettings,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    GenealogyValidationError,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_http import (
    HistorianReader,
    PiWebApiHistorian,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    AscendantRequest,
    DescendantRequest,
    GenealogyResult,
    LookupRequest,
    LookupResult,
    ReliabilityRequest,
    ReliabilityResult,
    SnapshotStation,
    TimeRange,
    parse_snapshot_request,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_utils import (
    utcnow,
)

logger = logging.getLogger(__name__)


class GenealogyService:  # pylint: disable=too-many-instance-attributes
    """Descendant/ascendant genealogy and identifier lookups over one historian."""

    def __init__(
        self,
        settings: GenealogySettings,
        historian: Optional[HistorianReader] = None,
        options: Optional[Dict[str, str]] = None,
    ) -> None:
        self.settings = settings
        self.historian = historian or PiWebApiHistorian(settings, options or {})

        self.boundary = BoundaryResolver(self.historian)
        self.locator = OccurrenceLocator(self.historian, self.boundary)
        self.auxiliary = AuxiliaryReader(settings, self.historian)
        self.scheduler = StationScheduler(settings.max_workers, settings.station_deadline_seconds)

        self.descendant = DescendantResolver(settings, self.locator, self.auxiliary)
        self.ascendant = AscendantResolver(settings, self.historian, self.boundary, self.locator)
        self.snapshot = SnapshotResolver(settings, self.historian, self.boundary, self.auxiliary)
        self.lookup = IdentifierLookup(settings, self.locator)
        self.reliability = ReliabilityChecker(settings, self.locator)

    def clamp_range(self, from_dt: datetime, to_dt: datetime) -> TimeRange:
        """Normalise a requested range and clamp it to [floor, now].

        A range lying entirely outside [floor, now] collapses to an empty one.
        """
        rng = TimeRange(from_dt, to_dt)
        if not rng.is_valid():
            raise GenealogyValidationError(f"Invalid time range [{from_dt}, {to_dt}]")
        rng = rng.normalized()
        start = max(rng.start, self.settings.limit_dt)
        end = min(rng.end, utcnow())
        if end < start:
            end = start
        return TimeRange(start, end)

    # =========================================================================
    # Genealogy traversals
    # =========================================================================

    def resolve_descendant(
        self, request: Union[DescendantRequest, Dict[str, Any]]
    ) -> GenealogyResult:
        if isinstance(request, dict):
            request = DescendantRequest.from_dict(request)
        bounds = self.clamp_range(request.from_dt, request.to_dt)
        logger.info(
            "Descendant genealogy of %s over [%s, %s] across %d station(s)",
            request.target_identifier,
            bounds.start,
            bounds.end,
            len(request.stations),
        )

        outcomes = self.scheduler.run(
            request.stations,
            lambda s: self.descendant.resolve_station(
                s, bounds, request.target_identifier, request.include_rework
            ),
            lambda s: (s.machine, s.station),
        )
        result = aggregate(bounds, outcomes, lambda r: (r.from_dt, r.to_dt))
        self._log_result("Descendant", result)
        return result

    def resolve_ascendant(
        self, request: Union[AscendantRequest, Dict[str, Any]]
    ) -> GenealogyResult:
        if isinstance(request, dict):
            request = AscendantRequest.from_dict(request)
        bounds = self.clamp_range(request.from_dt, request.to_dt)
        logger.info(
            "Ascendant genealogy of %s (%s) over [%s, %s] across %d station(s)",
            request.lookup_value,
            request.strategy.value,
            bounds.start,
            bounds.end,
            len(request.stations),
        )

        outcomes = self.scheduler.run(
            request.stations,
            lambda s: self.ascendant.resolve_station(
                s, bounds, request.lookup_value, request.strategy
            ),
            lambda s: (s.machine, s.station),
        )
        result = aggregate(
            bounds,
            outcomes,
            lambda r: (r.from_dt, r.to_dt) if r.identifiers else None,
        )
        self._log_result("Ascendant", result)
        return result

    # =========================================================================
    # Identifier lookups
    # =========================================================================

    def snapshot_identifiers(self, request: Union[List[SnapshotStation], Any]) -> GenealogyResult:
        if isinstance(request, list) and request and all(
            isinstance(s, SnapshotStation) for s in request
        ):
            stations = request
        else:
            stations = parse_snapshot_request(request)

        ranges = {id(s): self.clamp_range(s.from_dt, s.to_dt) for s in stations}
        overall = TimeRange(
            min(r.start for r in ranges.values()), max(r.end for r in ranges.values())
        )
        logger.info("Identifiers at time across %d station(s)", len(stations))

        outcomes = self.scheduler.run(
            stations,
            lambda s: self.snapshot.resolve_station(s, ranges[id(s)]),
            lambda s: (s.machine, s.station),
        )
        result = aggregate(
            overall,
            outcomes,
            lambda r: (r.from_dt, r.to_dt) if r.entries else None,
        )
        self._log_result("Identifiers at time", result)
        return result

    def lookup_identifier(self, request: Union[LookupRequest, Dict[str, Any]]) -> LookupResult:
        if isinstance(request, dict):
            request = LookupRequest.from_dict(request)
        bounds = self.clamp_range(request.from_dt, request.to_dt)
        result = self.lookup.lookup(request, bounds)
        logger.info("Identifier lookup of %s: %s", request.identifier, result.status.phrase)
        return result

    def check_reliability(
        self, request: Union[ReliabilityRequest, Dict[str, Any]]
    ) -> ReliabilityResult:
        if isinstance(request, dict):
            request = ReliabilityRequest.from_dict(request)
        bounds = self.clamp_range(request.start, request.end)
        result = self.reliability.check(request, bounds)
        logger.info(
            "Reliability of %s: %d/%d tag(s) retrieved",
            request.identifier,
            sum(1 for t in result.tags if t.is_retrieved),
            len(result.tags),
        )
        return result

    @staticmethod
    def _log_result(kind: str, result: GenealogyResult) -> None:
        logger.info(
            "%s result: %s, %d record(s), %d failed station(s), range [%s, %s]",
            kind,
            result.status.phrase,
            len(result.stations),
            len(result.failures),
            result.from_dt,
            result.to_dt,
        )
