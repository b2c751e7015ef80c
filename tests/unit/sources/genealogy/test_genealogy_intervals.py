from datetime import timedelta

import pytest

from databricks.labs.genealogy_connector.sources.genealogy.engine.intervals import (
    split_intervals,
    split_range,
)
from databricks.labs.genealogy_connector.sources.genealogy.genealogy_models import TimeRange
from tests.unit.sources.genealogy.fakes import T0, h


RANGES = [
    (h(0), h(24), timedelta(hours=6)),
    (h(0), h(25), timedelta(hours=6)),
    (h(0), h(1), timedelta(hours=12)),
    (h(3.5), h(40.25), timedelta(hours=12)),
    (h(0), h(0) + timedelta(seconds=7), timedelta(seconds=2)),
]


@pytest.mark.parametrize("start,end,size", RANGES)
def test_windows_are_contiguous_and_cover_the_range(start, end, size):
    windows = split_intervals(start, end, size)

    assert windows[0].start == start
    assert windows[-1].end == end
    for prev, nxt in zip(windows, windows[1:]):
        assert prev.end == nxt.start
    for window in windows:
        assert window.start < window.end
        assert window.end - window.start <= size
    for window in windows[:-1]:
        assert window.end - window.start == size


@pytest.mark.parametrize("start,end,size", RANGES)
def test_reversed_range_matches_normalized_range(start, end, size):
    assert split_intervals(end, start, size) == split_intervals(start, end, size)


def test_final_window_is_truncated():
    windows = split_intervals(h(0), h(14), timedelta(hours=6))

    assert [(w.start, w.end) for w in windows] == [
        (h(0), h(6)),
        (h(6), h(12)),
        (h(12), h(14)),
    ]


def test_empty_range_yields_no_windows():
    assert split_intervals(T0, T0, timedelta(hours=6)) == []


@pytest.mark.parametrize("size", [timedelta(0), timedelta(hours=-1)])
def test_non_positive_window_is_rejected(size):
    with pytest.raises(ValueError, match="positive"):
        split_intervals(h(0), h(1), size)


def test_split_range_uses_time_range_bounds():
    assert split_range(TimeRange(h(0), h(12)), timedelta(hours=6)) == split_intervals(
        h(0), h(12), timedelta(hours=6)
    )
