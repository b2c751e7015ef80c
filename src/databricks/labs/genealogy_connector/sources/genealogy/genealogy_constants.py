"""Constants for the genealogy connector: table names, window sizes, deadlines."""

from datetime import timedelta

# =============================================================================
# Tables
# =============================================================================

TABLE_DESCENDANT = "descendant_genealogy"
TABLE_ASCENDANT = "ascendant_genealogy"
TABLE_IDENTIFIERS_AT_TIME = "identifiers_at_time"
TABLE_IDENTIFIER_LOOKUP = "identifier_lookup"
TABLE_RELIABILITY = "identifier_reliability"

SUPPORTED_TABLES = [
    TABLE_DESCENDANT,
    TABLE_ASCENDANT,
    TABLE_IDENTIFIERS_AT_TIME,
    TABLE_IDENTIFIER_LOOKUP,
    TABLE_RELIABILITY,
]

# =============================================================================
# Window sizes
# =============================================================================

DESCENDANT_WINDOW = timedelta(hours=6)
ASCENDANT_SCAN_WINDOW = timedelta(hours=12)
HARVEST_WINDOW = timedelta(hours=6)
LOOKUP_STEP = timedelta(hours=6)

# Offset applied around an instant before a directional trigger lookup
TRIGGER_OFFSET = timedelta(seconds=1)

# =============================================================================
# Per-call deadlines (seconds)
# =============================================================================

BOUNDARY_TIMEOUT = 5.0
AUXILIARY_TIMEOUT = 10.0
WINDOW_RAW_TIMEOUT = 10.0
WINDOW_AT_TIME_TIMEOUT = 10.0
SEQUENCED_RAW_TIMEOUT = 15.0
HARVEST_TIMEOUT = 5.0
LOOKUP_TIMEOUT = 5.0
SNAPSHOT_TIMEOUT = 15.0

# =============================================================================
# Historian
# =============================================================================

MAX_RAW_POINTS = 100000
DEFAULT_INTERFACE_GROUP = "Simulation"
DEFAULT_INTERFACE = "Simulation"
