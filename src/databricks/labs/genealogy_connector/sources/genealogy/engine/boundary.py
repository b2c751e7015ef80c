"""Trigger-boundary resolution around an observed instant.

Boundaries are always single nearest-neighbour lookups, never range scans:
the nearest trigger sample after `t` closes an occurrence window and the
nearest one before `t` opens it.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from databricks.labs.genealogy_connector.sources.genealogy.genealogy_constants import (
    BOUNDARY_TIMEOUT,
    TRIGGER_OFFSET,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    HistorianError,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_http import (
    HistorianReader,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    Direction,
    ReadResult,
    SignalIdentity,
    TimeRange,
)

logger = logging.getLogger(__name__)


class BoundaryResolver:
    """Directional trigger lookups bounded by a per-call deadline."""

    def __init__(self, historian: HistorianReader, timeout: float = BOUNDARY_TIMEOUT) -> None:
        self.historian = historian
        self.timeout = timeout

    def _nearest(self, trigger: SignalIdentity, start: datetime, direction: Direction) -> Optional[datetime]:
        try:
            result: ReadResult = self.historian.read_directional(
                trigger, start, direction, 1, self.timeout
            )
        except HistorianError as e:
            logger.warning(
                "%s trigger lookup on %s at %s absorbed: %s", direction.value, trigger, start, e
            )
            return None
        if result.failed:
            logger.warning(
                "%s trigger lookup on %s at %s absorbed: %s",
                direction.value,
                trigger,
                start,
                result.error or result.status.value,
            )
            return None
        if not result.has_points:
            return None
        return result.points[0].timestamp

    def next_trigger_after(self, trigger: SignalIdentity, t: datetime) -> Optional[datetime]:
        """Nearest trigger sample at or after t + 1s; never returns an instant <= t."""
        found = self._nearest(trigger, t + TRIGGER_OFFSET, Direction.FORWARD)
        if found is None or found <= t:
            return None
        return found

    def last_trigger_before(self, trigger: SignalIdentity, t: datetime) -> Optional[datetime]:
        """Nearest trigger sample at or before t - 1s; never returns an instant >= t."""
        found = self._nearest(trigger, t - TRIGGER_OFFSET, Direction.BACKWARD)
        if found is None or found >= t:
            return None
        return found

    def resolve_window(
        self, trigger: SignalIdentity, t: datetime, bounds: TimeRange
    ) -> Tuple[datetime, datetime]:
        """Bounding window of an occurrence observed at `t`, clamped into `bounds`.

        The window closes at the next trigger after `t`, falling back to the
        last trigger before it, then to the end of `bounds`. It opens at the
        last trigger before `t`, defaulting to `t` itself.
        """
        before = self.last_trigger_before(trigger, t)
        after = self.next_trigger_after(trigger, t)

        from_dt = before if before is not None else t
        if after is not None:
            to_dt = after
        elif before is not None:
            to_dt = before
        else:
            to_dt = bounds.normalized().end

        from_dt = bounds.clamp(from_dt)
        to_dt = bounds.clamp(to_dt)
        if to_dt < from_dt:
            to_dt = from_dt
        return from_dt, to_dt
