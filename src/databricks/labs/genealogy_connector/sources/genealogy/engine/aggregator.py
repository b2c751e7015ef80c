"""Merging station outcomes into one request result."""

from datetime import datetime
from http import HTTPStatus
from typing import Callable, List, Optional, Sequence, Tuple

from databricks.labs.genealogy_connector.sources.genealogy.engine.locator import (
    ScanTally,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    GenealogyResult,
    StationOutcome,
    StationStatus,
    TimeRange,
)

RecordBounds = Callable[[object], Optional[Tuple[datetime, datetime]]]


def settle(outcome: StationOutcome, tally: ScanTally, found: bool) -> StationOutcome:
    """Set a station's status from what it found and how its reads went.

    A station that found nothing and whose every read attempt failed is
    FAILED rather than NOT_FOUND.
    """
    outcome.attempts = tally.attempts
    outcome.failed_attempts = tally.failed_attempts
    if found:
        outcome.status = StationStatus.RESOLVED
    elif outcome.all_attempts_failed:
        outcome.status = StationStatus.FAILED
        outcome.error = f"All {tally.attempts} historian reads failed or timed out"
    else:
        outcome.status = StationStatus.NOT_FOUND
    return outcome


def overall_status(outcomes: Sequence[StationOutcome]) -> HTTPStatus:
    """FAILED anywhere wins, then nothing resolved, else OK."""
    if any(o.status == StationStatus.FAILED for o in outcomes):
        return HTTPStatus.INTERNAL_SERVER_ERROR
    if not any(o.status == StationStatus.RESOLVED for o in outcomes):
        return HTTPStatus.NOT_FOUND
    return HTTPStatus.OK


def aggregate(
    request_range: TimeRange,
    outcomes: List[StationOutcome],
    record_bounds: RecordBounds,
) -> GenealogyResult:
    """Build the request result from station outcomes.

    The result range is the min `from` / max `to` over every record that
    reports bounds; with none it stays at `request_range`.
    """
    records = [record for outcome in outcomes for record in outcome.records]

    starts: List[datetime] = []
    ends: List[datetime] = []
    for record in records:
        bounds = record_bounds(record)
        if bounds is None:
            continue
        starts.append(bounds[0])
        ends.append(bounds[1])

    return GenealogyResult(
        from_dt=min(starts) if starts else request_range.start,
        to_dt=max(ends) if ends else request_range.end,
        status=overall_status(outcomes),
        stations=records,
        outcomes=outcomes,
    )
