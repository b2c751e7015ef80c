"""
Temporal genealogy resolution engine.

Leaf-first: interval splitting, trigger-boundary resolution, occurrence
location, the descendant/ascendant traversals and point lookups, then the
station scheduler and result aggregation.
"""

from databricks.labs.genealogy_connector.sources.genealogy.engine.intervals import (
    split_intervals,
    split_range,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.boundary import BoundaryResolver
from databricks.labs.genealogy_connector.sources.genealogy.engine.locator import (
    OccurrenceLocator,
    ScanTally,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.aggregator import (
    aggregate,
    overall_status,
    settle,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.scheduler import (
    StationScheduler,
    map_bounded,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.descendant import (
    AuxiliaryReader,
    DescendantResolver,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.ascendant import (
    AscendantResolver,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.lookup import (
    IdentifierLookup,
    ReliabilityChecker,
    SnapshotResolver,
)

__all__ = [
    "split_intervals",
    "split_range",
    "BoundaryResolver",
    "OccurrenceLocator",
    "ScanTally",
    "aggregate",
    "overall_status",
    "settle",
    "StationScheduler",
    "map_bounded",
    "AuxiliaryReader",
    "DescendantResolver",
    "AscendantResolver",
    "IdentifierLookup",
    "ReliabilityChecker",
    "SnapshotResolver",
]
