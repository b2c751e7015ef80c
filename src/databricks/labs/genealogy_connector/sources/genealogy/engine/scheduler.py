"""Bounded parallel execution of station tasks."""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    StationOutcome,
    StationStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class StationScheduler:
    """Runs one task per station on a bounded thread pool.

    Outcomes come back in station input order regardless of completion
    order. A task that raises becomes a FAILED outcome carrying the
    exception message; the other stations are unaffected. With a station
    deadline, tasks still running once it has elapsed (measured from
    dispatch) are reported as FAILED.
    """

    def __init__(self, max_workers: int, station_deadline: Optional[float] = None) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {max_workers}")
        self.max_workers = max_workers
        self.station_deadline = station_deadline

    def run(
        self,
        stations: Sequence[T],
        work: Callable[[T], StationOutcome],
        label: Callable[[T], Tuple[str, str]],
    ) -> List[StationOutcome]:
        if not stations:
            return []

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(stations)),
            thread_name_prefix="genealogy-station",
        )
        futures = [executor.submit(work, station) for station in stations]
        _, pending = wait(futures, timeout=self.station_deadline)

        outcomes: List[StationOutcome] = []
        for station, future in zip(stations, futures):
            machine, name = label(station)
            if future in pending:
                future.cancel()
                logger.error(
                    "Station %s/%s exceeded its %ss deadline", machine, name, self.station_deadline
                )
                outcomes.append(
                    StationOutcome(
                        machine,
                        name,
                        StationStatus.FAILED,
                        error=f"Station deadline of {self.station_deadline}s exceeded",
                    )
                )
                continue
            try:
                outcomes.append(future.result())
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Station %s/%s failed: %s", machine, name, e)
                outcomes.append(StationOutcome(machine, name, StationStatus.FAILED, error=str(e)))

        # Stragglers past the deadline finish in the background
        executor.shutdown(wait=not pending, cancel_futures=True)
        return outcomes


def map_bounded(fn: Callable[[T], R], items: Sequence[T], max_workers: int) -> List[R]:
    """Apply `fn` to every item on a small pool, preserving order.

    The first exception raised by `fn` propagates to the caller.
    """
    if len(items) <= 1 or max_workers <= 1:
        return [fn(item) for item in items]
    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as executor:
        return list(executor.map(fn, items))
