"""
Tests for the genealogy Lakeflow connector surface.

The historian is replaced by the in-memory fake; no PI Web API host is needed.

Run with: pytest tests/unit/sources/genealogy -v
"""

import json

import pytest
from pyspark.sql.types import StructType

from databricks.labs.genealogy_connector import GenealogyLakeflowConnect
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    GenealogyValidationError,
    HistorianError,
)
from tests.unit.sources.genealogy.fakes import h

OPTIONS = {"pi_base_url": "https://pi.example.com", "asset_server": "AF01", "asset_database": "Plant"}


@pytest.fixture
def connector(historian):
    historian.add("DM", (h(10), "UNIT-1"), (h(11), "UNIT-2"))
    historian.add("TRG", (h(9), 1), (h(11), 1))
    historian.add("PN", (h(10), "PART-A"), (h(14), "PART-B"))
    historian.add("TORQUE", (h(10.5), 42))
    return GenealogyLakeflowConnect(OPTIONS, historian=historian)


def descendant_options(*stations):
    return {
        "request": json.dumps(
            {
                "FromDT": h(0).isoformat(),
                "ToDT": h(24).isoformat(),
                "IncludeRework": True,
                "TargetIdentifier": "UNIT-1",
                "Stations": [
                    {
                        "Machine": "M1",
                        "Station": name,
                        "IdentifierChannel": channel,
                        "TriggerChannel": "TRG",
                        "AuxiliaryChannels": {"TORQUE": None},
                    }
                    for name, channel in stations
                ],
            }
        )
    }


class TestTableDiscovery:
    def test_list_tables(self, connector):
        assert connector.list_tables() == [
            "descendant_genealogy",
            "ascendant_genealogy",
            "identifiers_at_time",
            "identifier_lookup",
            "identifier_reliability",
        ]

    def test_every_table_has_schema_and_snapshot_metadata(self, connector):
        for table in connector.list_tables():
            schema = connector.get_table_schema(table, {})
            metadata = connector.read_table_metadata(table, {})

            assert isinstance(schema, StructType)
            assert metadata["ingestion_type"] == "snapshot"
            field_names = {f.name for f in schema.fields}
            assert set(metadata["primary_keys"]) <= field_names
            assert {"status", "status_code", "error"} <= field_names

    def test_unknown_table(self, connector):
        with pytest.raises(GenealogyValidationError, match="Unknown table"):
            connector.get_table_schema("nope", {})
        with pytest.raises(ValueError):
            connector.read_table("nope", None, {})

    def test_lazy_package_export(self):
        import databricks.labs.genealogy_connector as package

        assert package.GenealogyLakeflowConnect is GenealogyLakeflowConnect
        with pytest.raises(AttributeError):
            getattr(package, "missing")


class TestReadTable:
    def test_descendant_rows(self, connector):
        records, offset = connector.read_table(
            "descendant_genealogy", None, descendant_options(("S1", "DM"))
        )
        rows = list(records)

        assert offset == {"offset": "done"}
        assert len(rows) == 1
        row = rows[0]
        assert (row["status"], row["status_code"]) == ("OK", 200)
        assert (row["machine"], row["station"], row["station_status"]) == ("M1", "S1", "Resolved")
        assert (row["from_dt"], row["to_dt"]) == (h(9), h(11))
        assert row["auxiliary_values"] == {"TORQUE": "42"}
        assert row["error"] is None

    def test_failed_station_is_reported_next_to_partial_results(self, connector, historian):
        historian.raise_on("BROKEN", HistorianError("PI Web API returned 503"))

        records, _ = connector.read_table(
            "descendant_genealogy", None, descendant_options(("S1", "DM"), ("S2", "BROKEN"))
        )
        rows = list(records)

        assert [(r["station"], r["station_status"]) for r in rows] == [
            ("S1", "Resolved"),
            ("S2", "Failed"),
        ]
        assert {r["status"] for r in rows} == {"INTERNAL_SERVER_ERROR"}
        assert "503" in rows[0]["error"]

    def test_read_after_done_returns_nothing(self, connector, historian):
        records, offset = connector.read_table(
            "descendant_genealogy", {"offset": "done"}, descendant_options(("S1", "DM"))
        )

        assert list(records) == []
        assert offset == {"offset": "done"}
        assert historian.calls == []

    def test_ascendant_rows(self, connector):
        request = {
            "FromDT": h(0).isoformat(),
            "ToDT": h(24).isoformat(),
            "LookupValue": "PART-A",
            "Stations": [
                {
                    "Machine": "M1",
                    "Station": "S1",
                    "TagAddresses": ["PN"],
                    "IdentifierChannel": "DM",
                    "TriggerChannel": "TRG",
                }
            ],
        }
        records, _ = connector.read_table("ascendant_genealogy", None, {"request": json.dumps(request)})
        rows = list(records)

        assert [(r["identifier"], r["created_at"]) for r in rows] == [
            ("UNIT-1", h(10)),
            ("UNIT-2", h(11)),
        ]
        assert rows[0]["occurrences"] == [
            {"tag": "PN", "occurrence_dt": h(10), "from_dt": h(9), "to_dt": h(11)}
        ]

    def test_identifiers_at_time_rows(self, connector):
        request = [
            {
                "Machine": "M1",
                "Station": "S1",
                "FromDT": h(0).isoformat(),
                "ToDT": h(24).isoformat(),
                "IdentifierChannel": "DM",
                "TriggerChannel": "TRG",
            }
        ]
        records, _ = connector.read_table("identifiers_at_time", None, {"request": json.dumps(request)})
        rows = list(records)

        assert [(r["identifier"], r["from_dt"]) for r in rows] == [
            ("UNIT-1", h(10)),
            ("UNIT-2", h(11)),
        ]
        assert rows[0]["to_dt"] == h(11)

    def test_identifier_lookup_rows(self, connector):
        request = {
            "Identifier": "UNIT-1",
            "FromDT": h(0).isoformat(),
            "ToDT": h(24).isoformat(),
            "Lines": [
                {"LineGroupSeq": 1, "LineSeq": 1, "MachineStageId": 10, "Channel": "DM"},
                {"LineGroupSeq": 1, "LineSeq": 2, "MachineStageId": 11, "Channel": "PN"},
            ],
        }
        records, _ = connector.read_table("identifier_lookup", None, {"request": json.dumps(request)})
        rows = list(records)

        assert [(r["machine_stage_id"], r["is_found"], r["first_dt"]) for r in rows] == [
            (11, False, None),
            (10, True, h(10)),
        ]
        assert rows[0]["status"] == "OK"

    def test_reliability_rows(self, connector):
        request = {
            "Identifier": "PART-A",
            "StartTime": h(0).isoformat(),
            "EndTime": h(24).isoformat(),
            "Tags": [{"Sequence": 1, "TagAddress": "PN"}, {"Sequence": 2, "TagAddress": "DM"}],
        }
        records, _ = connector.read_table(
            "identifier_reliability", None, {"request": json.dumps(request)}
        )

        assert [(r["tag_address"], r["is_retrieved"]) for r in records] == [
            ("DM", False),
            ("PN", True),
        ]


class TestRequestOption:
    def test_missing_request(self, connector):
        with pytest.raises(GenealogyValidationError, match="request"):
            connector.read_table("descendant_genealogy", None, {})

    def test_invalid_json(self, connector):
        with pytest.raises(GenealogyValidationError, match="JSON"):
            connector.read_table("descendant_genealogy", None, {"request": "{not json"})

    def test_connector_requires_historian_url(self):
        with pytest.raises(ValueError, match="pi_base_url"):
            GenealogyLakeflowConnect({"access_token": "tok"})
