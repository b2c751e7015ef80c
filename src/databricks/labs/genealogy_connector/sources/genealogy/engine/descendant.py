"""Descendant genealogy: follow a known identifier through a chain of stations."""

import logging
from datetime import datetime
from typing import Dict, Optional

from databricks.labs.genealogy_connector.sources.genealogy.engine.aggregator import (
    settle,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.locator import (
    OccurrenceLocator,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_config import (
    GenealogySettings,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_constants import (
    AUXILIARY_TIMEOUT,
    DESCENDANT_WINDOW,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    HistorianError,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_http import (
    HistorianReader,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    DescendantRecord,
    DescendantStation,
    Direction,
    SignalIdentity,
    StationOutcome,
    TimeRange,
)

logger = logging.getLogger(__name__)

_UNRESOLVED = object()


class AuxiliaryReader:
    """Resolves auxiliary channel values at an instant.

    The value is the last sample at or before the instant; when the channel
    has none, the first sample after it. A channel with no sample either way
    resolves to None. A failed read leaves the caller's placeholder in place.
    """

    def __init__(
        self,
        settings: GenealogySettings,
        historian: HistorianReader,
        timeout: float = AUXILIARY_TIMEOUT,
    ) -> None:
        self.settings = settings
        self.historian = historian
        self.timeout = timeout

    def read_all(self, channels: Dict[str, Optional[str]], at: datetime) -> Dict[str, Optional[str]]:
        values = dict(channels)
        for name in channels:
            value = self._value_at(SignalIdentity.for_channel(self.settings, name), at)
            if value is not _UNRESOLVED:
                values[name] = value
        return values

    def _value_at(self, signal: SignalIdentity, at: datetime):
        for direction in (Direction.BACKWARD, Direction.FORWARD):
            try:
                result = self.historian.read_directional(signal, at, direction, 1, self.timeout)
            except HistorianError as e:
                logger.warning("Auxiliary read of %s at %s absorbed: %s", signal, at, e)
                return _UNRESOLVED
            if result.failed:
                logger.warning(
                    "Auxiliary read of %s at %s absorbed: %s",
                    signal,
                    at,
                    result.error or result.status.value,
                )
                return _UNRESOLVED
            if result.has_points:
                return result.points[0].text
        return None


class DescendantResolver:
    """Per-station descendant resolution.

    Each station is replaced in the output by one record per occurrence of
    the target identifier (zero records when it never appeared). Records are
    returned on the station outcome; nothing is shared across stations.
    """

    def __init__(
        self,
        settings: GenealogySettings,
        locator: OccurrenceLocator,
        auxiliary: AuxiliaryReader,
    ) -> None:
        self.settings = settings
        self.locator = locator
        self.auxiliary = auxiliary

    def resolve_station(
        self,
        station: DescendantStation,
        bounds: TimeRange,
        target_identifier: str,
        include_rework: bool,
    ) -> StationOutcome:
        identifier = SignalIdentity.for_channel(self.settings, station.identifier_channel)
        trigger = SignalIdentity.for_channel(self.settings, station.trigger_channel)

        located = self.locator.find_occurrences(
            identifier,
            target_identifier,
            trigger,
            bounds,
            DESCENDANT_WINDOW,
            include_rework=include_rework,
        )

        outcome = StationOutcome(station.machine, station.station)
        for occurrence in located.occurrences:
            outcome.records.append(
                DescendantRecord(
                    machine=station.machine,
                    station=station.station,
                    identifier_channel=station.identifier_channel,
                    trigger_channel=station.trigger_channel,
                    occurrence_dt=occurrence.timestamp,
                    from_dt=occurrence.from_dt,
                    to_dt=occurrence.to_dt,
                    auxiliary_values=self.auxiliary.read_all(
                        station.auxiliary_channels, occurrence.to_dt
                    ),
                )
            )

        logger.debug(
            "Station %s/%s: %d occurrence(s) of %s",
            station.machine,
            station.station,
            len(outcome.records),
            target_identifier,
        )
        return settle(outcome, located, found=bool(outcome.records))
