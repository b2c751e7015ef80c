from datetime import timedelta

import pytest

from databricks.labs.genealogy_connector.sources.genealogy.engine.boundary import (
    BoundaryResolver,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_errors import (
    HistorianError,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import (
    SignalIdentity,
    TimeRange,
)
from tests.unit.sources.genealogy.fakes import FakeHistorian, h

TRIGGER = SignalIdentity("Simulation", "Simulation", "TRG")


@pytest.fixture
def resolver(historian):
    historian.add("TRG", (h(9), 1), (h(11), 1), (h(15), 1))
    return BoundaryResolver(historian)


@pytest.mark.parametrize("t", [h(8), h(9), h(9) + timedelta(milliseconds=500), h(10), h(11), h(14)])
def test_next_trigger_after_is_strictly_later(resolver, t):
    found = resolver.next_trigger_after(TRIGGER, t)
    assert found is None or found > t


@pytest.mark.parametrize("t", [h(9), h(10), h(11), h(11) + timedelta(milliseconds=500), h(16)])
def test_last_trigger_before_is_strictly_earlier(resolver, t):
    found = resolver.last_trigger_before(TRIGGER, t)
    assert found is None or found < t


def test_nearest_neighbours(resolver):
    assert resolver.next_trigger_after(TRIGGER, h(10)) == h(11)
    assert resolver.last_trigger_before(TRIGGER, h(10)) == h(9)
    assert resolver.next_trigger_after(TRIGGER, h(15)) is None
    assert resolver.last_trigger_before(TRIGGER, h(9)) is None


def test_trigger_within_one_second_is_skipped(resolver):
    assert resolver.next_trigger_after(TRIGGER, h(11) - timedelta(milliseconds=200)) == h(15)


def test_resolve_window_uses_surrounding_triggers(resolver):
    assert resolver.resolve_window(TRIGGER, h(10), TimeRange(h(0), h(24))) == (h(9), h(11))


def test_resolve_window_falls_back_to_last_trigger(resolver):
    # Nothing after hour 15: the window collapses onto the last trigger
    assert resolver.resolve_window(TRIGGER, h(20), TimeRange(h(0), h(24))) == (h(15), h(15))


def test_resolve_window_without_triggers_uses_t_and_range_end():
    resolver = BoundaryResolver(FakeHistorian())
    assert resolver.resolve_window(TRIGGER, h(10), TimeRange(h(0), h(24))) == (h(10), h(24))


def test_resolve_window_is_clamped_into_bounds(resolver):
    from_dt, to_dt = resolver.resolve_window(TRIGGER, h(10), TimeRange(h(9.5), h(10.5)))

    assert (from_dt, to_dt) == (h(9.5), h(10.5))


def test_failed_lookup_is_absorbed(historian, resolver):
    historian.fail("TRG", kind="directional")

    assert resolver.next_trigger_after(TRIGGER, h(10)) is None
    assert resolver.last_trigger_before(TRIGGER, h(10)) is None


def test_historian_fault_is_absorbed(historian, resolver):
    historian.raise_on("TRG", HistorianError("PI Web API returned 503"), kind="directional")

    assert resolver.next_trigger_after(TRIGGER, h(10)) is None
    assert resolver.last_trigger_before(TRIGGER, h(10)) is None
    assert resolver.resolve_window(TRIGGER, h(10), TimeRange(h(0), h(24))) == (h(10), h(24))
