"""Static schema definitions for genealogy connector tables.

Every table answers one request. Rows carry the request-level outcome
(`status`, `status_code`, `request_from_dt`, `request_to_dt`, `error`) next
to the per-station detail, so partial results stay usable on a non-OK status.
"""

from pyspark.sql.types import (
    ArrayType,
    BooleanType,
    LongType,
    MapType,
    StringType,
    StructField,
    StructType,
    TimestampType,
)

from databricks.labs.genealogy_connector.sources.genealogy.genealogy_constants import (
    TABLE_ASCENDANT,
    TABLE_DESCENDANT,
    TABLE_IDENTIFIER_LOOKUP,
    TABLE_IDENTIFIERS_AT_TIME,
    TABLE_RELIABILITY,
)


# =============================================================================
# Reusable field groups
# =============================================================================

REQUEST_FIELDS = [
    StructField("status", StringType(), False),
    StructField("status_code", LongType(), False),
    StructField("request_from_dt", TimestampType(), True),
    StructField("request_to_dt", TimestampType(), True),
    StructField("error", StringType(), True),
]
"""Request-level outcome repeated on every row."""

STATION_FIELDS = [
    StructField("machine", StringType(), False),
    StructField("station", StringType(), False),
    StructField("station_status", StringType(), False),
]

OCCURRENCE_STRUCT = StructType(
    [
        StructField("tag", StringType(), True),
        StructField("occurrence_dt", TimestampType(), True),
        StructField("from_dt", TimestampType(), True),
        StructField("to_dt", TimestampType(), True),
    ]
)
"""Super-occurrence struct for ascendant rows."""


# =============================================================================
# Table schemas
# =============================================================================

DESCENDANT_SCHEMA = StructType(
    REQUEST_FIELDS
    + STATION_FIELDS
    + [
        StructField("identifier_channel", StringType(), True),
        StructField("trigger_channel", StringType(), True),
        StructField("occurrence_dt", TimestampType(), True),
        StructField("from_dt", TimestampType(), True),
        StructField("to_dt", TimestampType(), True),
        StructField("auxiliary_values", MapType(StringType(), StringType(), True), True),
    ]
)

ASCENDANT_SCHEMA = StructType(
    REQUEST_FIELDS
    + STATION_FIELDS
    + [
        StructField("identifier_channel", StringType(), True),
        StructField("trigger_channel", StringType(), True),
        StructField("station_from_dt", TimestampType(), True),
        StructField("station_to_dt", TimestampType(), True),
        StructField("identifier", StringType(), True),
        StructField("created_at", TimestampType(), True),
        StructField("nameplate", StringType(), True),
        StructField("occurrences", ArrayType(OCCURRENCE_STRUCT, True), True),
    ]
)

IDENTIFIERS_AT_TIME_SCHEMA = StructType(
    REQUEST_FIELDS
    + STATION_FIELDS
    + [
        StructField("station_from_dt", TimestampType(), True),
        StructField("station_to_dt", TimestampType(), True),
        StructField("identifier", StringType(), True),
        StructField("from_dt", TimestampType(), True),
        StructField("to_dt", TimestampType(), True),
        StructField("auxiliary_values", MapType(StringType(), StringType(), True), True),
    ]
)

IDENTIFIER_LOOKUP_SCHEMA = StructType(
    REQUEST_FIELDS
    + [
        StructField("identifier", StringType(), False),
        StructField("line_group_seq", LongType(), False),
        StructField("line_seq", LongType(), False),
        StructField("machine_stage_id", LongType(), False),
        StructField("channel", StringType(), False),
        StructField("is_found", BooleanType(), False),
        StructField("first_dt", TimestampType(), True),
    ]
)

RELIABILITY_SCHEMA = StructType(
    REQUEST_FIELDS
    + [
        StructField("identifier", StringType(), False),
        StructField("sequence", LongType(), False),
        StructField("tag_address", StringType(), False),
        StructField("is_retrieved", BooleanType(), False),
    ]
)


# =============================================================================
# Table registry
# =============================================================================

TABLE_SCHEMAS: dict[str, StructType] = {
    TABLE_DESCENDANT: DESCENDANT_SCHEMA,
    TABLE_ASCENDANT: ASCENDANT_SCHEMA,
    TABLE_IDENTIFIERS_AT_TIME: IDENTIFIERS_AT_TIME_SCHEMA,
    TABLE_IDENTIFIER_LOOKUP: IDENTIFIER_LOOKUP_SCHEMA,
    TABLE_RELIABILITY: RELIABILITY_SCHEMA,
}

TABLE_METADATA: dict[str, dict] = {
    TABLE_DESCENDANT: {
        "primary_keys": ["machine", "station", "from_dt", "to_dt"],
        "ingestion_type": "snapshot",
    },
    TABLE_ASCENDANT: {
        "primary_keys": ["machine", "station", "identifier"],
        "ingestion_type": "snapshot",
    },
    TABLE_IDENTIFIERS_AT_TIME: {
        "primary_keys": ["machine", "station", "identifier"],
        "ingestion_type": "snapshot",
    },
    TABLE_IDENTIFIER_LOOKUP: {
        "primary_keys": ["identifier", "line_group_seq", "line_seq"],
        "ingestion_type": "snapshot",
    },
    TABLE_RELIABILITY: {
        "primary_keys": ["identifier", "sequence"],
        "ingestion_type": "snapshot",
    },
}
