# Genealogy Lakeflow Connector (Python Data Source)
#
# Implements the LakeflowConnect interface on top of the genealogy engine.
#
# Each table answers one traceability request passed as JSON in the
# `request` table option, reading a PI Web API-compatible historian.
#
# Authentication
# -------------
# Bearer token via `access_token`, basic auth via `username`/`password`, or
# `allow_anonymous=true` for unauthenticated test hosts.
#
# Options supported:
# - pi_base_url / pi_web_api_url (or host + port + base_path): historian URL
# - asset_server, asset_database: AF location of the channels
# - interface_group, interface (default "Simulation")
# - limit_dt or settings_path: time floor; nothing is searched before it
# - max_workers (default CPU count), tag_workers (default 4)
# - station_deadline_seconds (optional)
# - verify_ssl (default true)
#
# Tables (table option `request`, JSON):
# - descendant_genealogy:
#   {FromDT, ToDT, IncludeRework, TargetIdentifier,
#    Stations[{Machine, Station, IdentifierChannel, TriggerChannel, AuxiliaryChannels}]}
# - ascendant_genealogy:
#   {FromDT, ToDT, LookupValue, Strategy?,
#    Stations[{Machine, Station, TagAddresses[], IdentifierChannel, TriggerChannel}]}
# - identifiers_at_time:
#   [{Machine, Station, FromDT, ToDT, IdentifierChannel, TriggerChannel, AuxiliaryChannels}]
# - identifier_lookup:
#   {Identifier, FromDT, ToDT, Lines[{LineGroupSeq, LineSeq, MachineStageId, Channel}]}
# - identifier_reliability:
#   {Identifier, StartTime, EndTime, Tags[{Sequence, TagAddress}]}

import json
import logging
from datetime import datetime
from http import HTTPStatus
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pyspark.sql.types import StructType

from databricks.labs.genealogy_connector.interface import LakeflowConnect
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_config import (
    GenealogySettings,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_constants import (
    SUPPORTED_TABLES,
    TABLE_ASCENDANT,
    TABLE_DESCENDANT,
    TABLE_IDENTIFIER_LOOKUP,
    TABLE_IDENTIFIERS_AT_TIME,
    TABLE_RELIABILITY,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    GenealogyValidationError,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_http import (
    HistorianReader,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    AscendantStationResult,
    DescendantRecord,
    GenealogyResult,
    SnapshotStationResult,
    StationOutcome,
    StationStatus,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_schemas import (
    TABLE_METADATA,
    TABLE_SCHEMAS,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_service import (
    GenealogyService,
)

logger = logging.getLogger(__name__)


def _request_fields(
    status: HTTPStatus, from_dt: datetime, to_dt: datetime, error: Optional[str]
) -> Dict[str, Any]:
    return {
        "status": status.name,
        "status_code": int(status),
        "request_from_dt": from_dt,
        "request_to_dt": to_dt,
        "error": error,
    }


def _station_fields(outcome: StationOutcome) -> Dict[str, Any]:
    return {
        "machine": outcome.machine,
        "station": outcome.station,
        "station_status": outcome.status.value,
    }


class GenealogyLakeflowConnect(LakeflowConnect):
    """Manufacturing genealogy connector.

    Resolves descendant/ascendant genealogy and identifier lookups against a
    PI Web API historian and exposes each operation as a snapshot table.
    """

    TABLE_DESCENDANT = TABLE_DESCENDANT
    TABLE_ASCENDANT = TABLE_ASCENDANT
    TABLE_IDENTIFIERS_AT_TIME = TABLE_IDENTIFIERS_AT_TIME
    TABLE_IDENTIFIER_LOOKUP = TABLE_IDENTIFIER_LOOKUP
    TABLE_RELIABILITY = TABLE_RELIABILITY

    def __init__(
        self, options: Dict[str, str], historian: Optional[HistorianReader] = None
    ) -> None:
        """
        IMPORTANT: This connector runs inside Spark Python Data Source workers.

        Do NOT reference SparkSession/SparkContext here (or anywhere in the connector).
        All configuration must come from `options`.
        """
        super().__init__(options)
        logger.debug("Genealogy connector received option keys: %s", sorted(options.keys()))
        self.settings = GenealogySettings.from_options(options)
        self._service = GenealogyService(self.settings, historian, options)

    def list_tables(self) -> List[str]:
        """Return a list of all supported table names."""
        return list(SUPPORTED_TABLES)

    def get_table_schema(self, table_name: str, table_options: Dict[str, str]) -> StructType:
        """Return the schema for a given table."""
        schema = TABLE_SCHEMAS.get(table_name)
        if schema is None:
            raise GenealogyValidationError(f"Unknown table: {table_name}")
        return schema

    def read_table_metadata(self, table_name: str, table_options: Dict[str, str]) -> Dict:
        """Return metadata for a given table."""
        meta = TABLE_METADATA.get(table_name)
        if meta is None:
            raise GenealogyValidationError(f"Unknown table: {table_name}")
        return dict(meta)

    def read_table(
        self, table_name: str, start_offset: dict, table_options: Dict[str, str]
    ) -> Tuple[Iterator[dict], dict]:
        """Answer the table's request in one batch."""
        self.read_table_metadata(table_name, table_options)

        # Snapshot offset semantics: once "done" has been returned, a read
        # from that offset yields no rows.
        if isinstance(start_offset, dict) and start_offset.get("offset") == "done":
            return iter(()), dict(start_offset)

        request = self._parse_request(table_options)
        dispatch = {
            TABLE_DESCENDANT: lambda: self._read_descendant(request),
            TABLE_ASCENDANT: lambda: self._read_ascendant(request),
            TABLE_IDENTIFIERS_AT_TIME: lambda: self._read_identifiers_at_time(request),
            TABLE_IDENTIFIER_LOOKUP: lambda: self._read_identifier_lookup(request),
            TABLE_RELIABILITY: lambda: self._read_reliability(request),
        }
        rows = dispatch[table_name]()
        return iter(rows), {"offset": "done"}

    @staticmethod
    def _parse_request(table_options: Dict[str, str]) -> Any:
        raw = (table_options or {}).get("request")
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            raise GenealogyValidationError("Table option 'request' is required")
        if not isinstance(raw, str):
            return raw
        try:
            return json.loads(raw)
        except ValueError as e:
            raise GenealogyValidationError(f"Table option 'request' is not valid JSON: {e}") from e

    # =========================================================================
    # Genealogy tables
    # =========================================================================

    def _read_descendant(self, request: Any) -> List[dict]:
        result = self._service.resolve_descendant(request)
        base = self._result_fields(result)
        rows: List[dict] = []
        for outcome in result.outcomes:
            for record in outcome.records:
                rec: DescendantRecord = record
                rows.append(
                    {
                        **base,
                        **_station_fields(outcome),
                        "identifier_channel": rec.identifier_channel,
                        "trigger_channel": rec.trigger_channel,
                        "occurrence_dt": rec.occurrence_dt,
                        "from_dt": rec.from_dt,
                        "to_dt": rec.to_dt,
                        "auxiliary_values": dict(rec.auxiliary_values),
                    }
                )
            if not outcome.records and outcome.status == StationStatus.FAILED:
                rows.append({**base, **_station_fields(outcome)})
        return rows

    def _read_ascendant(self, request: Any) -> List[dict]:
        result = self._service.resolve_ascendant(request)
        base = self._result_fields(result)
        rows: List[dict] = []
        for outcome in result.outcomes:
            if not outcome.records:
                rows.append({**base, **_station_fields(outcome)})
                continue
            for record in outcome.records:
                rec: AscendantStationResult = record
                station_row = {
                    **base,
                    **_station_fields(outcome),
                    "identifier_channel": rec.identifier_channel,
                    "trigger_channel": rec.trigger_channel,
                    "station_from_dt": rec.from_dt,
                    "station_to_dt": rec.to_dt,
                    "occurrences": [
                        {
                            "tag": o.signal.channel,
                            "occurrence_dt": o.timestamp,
                            "from_dt": o.from_dt,
                            "to_dt": o.to_dt,
                        }
                        for o in rec.occurrences
                    ],
                }
                if not rec.identifiers:
                    rows.append(station_row)
                for ident in rec.identifiers:
                    rows.append(
                        {
                            **station_row,
                            "identifier": ident.value,
                            "created_at": ident.created_at,
                            "nameplate": ident.nameplate,
                        }
                    )
        return rows

    # =========================================================================
    # Lookup tables
    # =========================================================================

    def _read_identifiers_at_time(self, request: Any) -> List[dict]:
        result = self._service.snapshot_identifiers(request)
        base = self._result_fields(result)
        rows: List[dict] = []
        for outcome in result.outcomes:
            if not outcome.records:
                rows.append({**base, **_station_fields(outcome)})
                continue
            for record in outcome.records:
                rec: SnapshotStationResult = record
                station_row = {
                    **base,
                    **_station_fields(outcome),
                    "station_from_dt": rec.from_dt,
                    "station_to_dt": rec.to_dt,
                }
                if not rec.entries:
                    rows.append(station_row)
                for entry in rec.entries:
                    rows.append(
                        {
                            **station_row,
                            "identifier": entry.value,
                            "from_dt": entry.from_dt,
                            "to_dt": entry.to_dt,
                            "auxiliary_values": dict(entry.auxiliary_values),
                        }
                    )
        return rows

    def _read_identifier_lookup(self, request: Any) -> List[dict]:
        result = self._service.lookup_identifier(request)
        base = _request_fields(result.status, result.from_dt, result.to_dt, result.error)
        return [
            {
                **base,
                "identifier": result.identifier,
                "line_group_seq": line.line_group_seq,
                "line_seq": line.line_seq,
                "machine_stage_id": line.machine_stage_id,
                "channel": line.channel,
                "is_found": line.is_found,
                "first_dt": result.first_dt if line.is_found else None,
            }
            for line in result.lines
        ]

    def _read_reliability(self, request: Any) -> List[dict]:
        result = self._service.check_reliability(request)
        base = _request_fields(result.status, result.start, result.end, result.error)
        return [
            {
                **base,
                "identifier": result.identifier,
                "sequence": tag.sequence,
                "tag_address": tag.tag_address,
                "is_retrieved": tag.is_retrieved,
            }
            for tag in result.tags
        ]

    @staticmethod
    def _result_fields(result: GenealogyResult) -> Dict[str, Any]:
        return _request_fields(result.status, result.from_dt, result.to_dt, result.error)
