import pytest

from databricks.labs.genealogy_connector.sources.genealogy.engine.ascendant import (
    AscendantResolver,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.boundary import (
    BoundaryResolver,
)
from databricks.labs.genealogy_connector.sources.genealogy.engine.locator import (
    OccurrenceLocator,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    AscendantStation,
    AscendantStrategy,
    ReadStatus,
    SignalIdentity,
    StationStatus,
    TimeRange,
)
from tests.unit.sources.genealogy.fakes import h

DAY = TimeRange(h(0), h(24))
PN = SignalIdentity("Simulation", "Simulation", "PN")
TRIGGER = SignalIdentity("Simulation", "Simulation", "TRG")


@pytest.fixture
def resolver(settings, historian):
    boundary = BoundaryResolver(historian)
    return AscendantResolver(settings, historian, boundary, OccurrenceLocator(historian, boundary))


@pytest.fixture
def station():
    return AscendantStation("M1", "S1", ["PN"], "DM", "TRG")


@pytest.fixture
def long_run(historian):
    """PART-A loaded at hour 2 and never changed afterwards."""
    historian.add("PN", (h(2), "PART-A"))
    historian.add("TRG", (h(1), 1), (h(3), 1), (h(20), 1))
    historian.add("DM", (h(2.5), "U1"), (h(13), "U2"), (h(13.5), "U2"), (h(19), "U3"))
    return historian


class TestPartNumber:
    def test_raw_match_closes_at_last_trigger_in_scan_window(self, long_run, resolver):
        located = resolver.scan_tag(PN, TRIGGER, DAY, "PART-A", AscendantStrategy.PART_NUMBER)

        # Raw match at hour 2; the tag never changes again, so the window
        # closes at the last trigger before the scan window end.
        assert (h(1), h(3)) in [(o.from_dt, o.to_dt) for o in located.occurrences]

    def test_raw_match_closes_at_last_trigger_before_tag_change(self, historian, resolver):
        historian.add("PN", (h(2), "PART-A"), (h(8), "PART-B"))
        historian.add("TRG", (h(1), 1), (h(3), 1), (h(7), 1), (h(9), 1))

        located = resolver.scan_tag(PN, TRIGGER, DAY, "PART-A", AscendantStrategy.PART_NUMBER)

        assert [(o.from_dt, o.to_dt) for o in located.occurrences] == [(h(1), h(7))]

    def test_probe_fallback_needs_both_triggers(self, long_run, resolver):
        located = resolver.scan_tag(PN, TRIGGER, DAY, "PART-A", AscendantStrategy.PART_NUMBER)

        # Window [12, 24] has no raw sample and its endpoints still read
        # PART-A, but no trigger follows hour 24
        assert (h(3), h(24)) not in [(o.from_dt, o.to_dt) for o in located.occurrences]
        assert len(located.occurrences) == 1

    def test_probe_fallback_when_triggers_surround_window(self, historian, resolver):
        historian.add("PN", (h(2), "PART-A"))
        historian.add("TRG", (h(11), 1), (h(25), 1))

        located = resolver.scan_tag(
            PN, TRIGGER, TimeRange(h(12), h(24)), "PART-A", AscendantStrategy.PART_NUMBER
        )

        assert [(o.from_dt, o.to_dt) for o in located.occurrences] == [(h(12), h(24))]

    def test_identifiers_are_harvested_once_per_value(self, long_run, resolver, station):
        outcome = resolver.resolve_station(station, DAY, "PART-A")

        result = outcome.records[0]
        assert outcome.status == StationStatus.RESOLVED
        assert [(i.value, i.created_at) for i in result.identifiers] == [("U1", h(2.5))]
        assert (result.from_dt, result.to_dt) == (h(2.5), h(2.5))

    def test_nothing_found(self, long_run, resolver, station):
        outcome = resolver.resolve_station(station, DAY, "PART-Z")

        assert outcome.status == StationStatus.NOT_FOUND
        assert outcome.records[0].identifiers == []
        assert outcome.records[0].from_dt is None

    def test_all_scans_timing_out_fails_station(self, long_run, resolver, station):
        long_run.fail("PN")
        outcome = resolver.resolve_station(station, DAY, "PART-A")

        assert outcome.status == StationStatus.FAILED


class TestSerial:
    def test_requires_both_triggers(self, historian, resolver):
        historian.add("PN", (h(2), "SN-1"), (h(22), "SN-1"))
        historian.add("TRG", (h(1), 1), (h(3), 1))

        located = resolver.scan_tag(PN, TRIGGER, DAY, "SN-1", AscendantStrategy.SERIAL)

        # Hour 22 has no trigger after it
        assert [(o.from_dt, o.to_dt) for o in located.occurrences] == [(h(1), h(3))]

    def test_never_probes(self, historian, resolver):
        historian.add("PN", (h(2), "SN-1"))
        resolver.scan_tag(PN, TRIGGER, TimeRange(h(12), h(24)), "SN-1", AscendantStrategy.SERIAL)

        assert historian.calls_for("PN", "at_times") == 0


class TestGalia:
    def test_probe_window_bounded_by_matching_instants(self, historian, resolver):
        historian.add("PN", (h(2), "G-1"))

        located = resolver.scan_tag(PN, TRIGGER, TimeRange(h(12), h(36)), "G-1", AscendantStrategy.GALIA)

        assert sorted((o.from_dt, o.to_dt) for o in located.occurrences) == [
            (h(12), h(24)),
            (h(24), h(36)),
        ]

    def test_fallback_runs_when_raw_read_holds_only_other_values(self, historian, resolver):
        historian.add("PN", (h(2), "OTHER"))
        located = resolver.scan_tag(PN, TRIGGER, DAY, "G-1", AscendantStrategy.GALIA)

        assert located.occurrences == []
        assert historian.calls_for("PN", "at_times") == 2

    def test_value_held_at_window_start_is_found_at_window_edge(self, historian, resolver):
        historian.add("PN", (h(2), "G-1"), (h(13), "G-2"))

        located = resolver.scan_tag(PN, TRIGGER, DAY, "G-1", AscendantStrategy.GALIA)

        # [12, 24] only records G-2, but G-1 was still current at hour 12
        assert located.occurrences[0].timestamp == h(12)
        assert (located.occurrences[0].from_dt, located.occurrences[0].to_dt) == (h(12), h(12))
        assert [o.timestamp for o in located.occurrences] == [h(12), h(2)]
        assert historian.calls_for("PN", "at_times") == 1

    def test_failed_read_is_skipped(self, historian, resolver):
        historian.fail("PN", status=ReadStatus.ERROR)
        located = resolver.scan_tag(PN, TRIGGER, DAY, "G-1", AscendantStrategy.GALIA)

        assert historian.calls_for("PN", "at_times") == 0
        assert located.failed_attempts == located.attempts == 2

    def test_windows_walked_newest_first(self, historian, resolver):
        historian.add("PN", (h(2), "G-1"), (h(14), "G-1"))
        historian.add("TRG", (h(1), 1), (h(3), 1), (h(13), 1), (h(15), 1))

        located = resolver.scan_tag(PN, TRIGGER, DAY, "G-1", AscendantStrategy.GALIA)

        assert [o.timestamp for o in located.occurrences] == [h(14), h(2)]
