from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from traffic_app.core.errors import ContiguityError, OutOfRangeError
from traffic_app.core.types import TimeSeries
from traffic_app.services.splitting import split, window


def _series(start: str = "2019-01-01", periods: int = 60) -> TimeSeries:
    return TimeSeries.from_values(start, np.arange(periods, dtype=float) + 10)


def test_window_is_inclusive():
    s = _series()
    w = window(s, "2019-01-05", "2019-01-09")
    assert len(w) == 5
    assert w.start == pd.Timestamp("2019-01-05")
    assert w.end == pd.Timestamp("2019-01-09")


@pytest.mark.parametrize(
    "start,end",
    [
        ("2018-12-31", "2019-01-10"),
        ("2019-01-10", "2019-03-15"),
        ("2019-01-10", "2019-01-05"),
    ],
)
def test_window_out_of_range(start, end):
    with pytest.raises(OutOfRangeError):
        window(_series(), start, end)


def test_operations_return_new_series():
    s = _series()
    values = s.values
    values[0] = -1
    s.window(s.start, s.end)
    assert s.values[0] == 10
    assert s.truncate_before("2019-01-10").start == pd.Timestamp("2019-01-10")
    assert len(s) == 60


def test_rejects_duplicate_or_negative_values():
    dates = pd.to_datetime(["2020-01-01", "2020-01-01"])
    with pytest.raises(ValueError):
        TimeSeries(pd.Series([1.0, 2.0], index=dates))
    with pytest.raises(ValueError):
        TimeSeries.from_values("2020-01-01", [1.0, -2.0])


def test_concat_appends_and_rejects_overlap():
    a = TimeSeries.from_values("2020-01-01", [1, 2, 3])
    b = TimeSeries.from_values("2020-01-04", [4, 5])
    joined = a.concat(b)
    assert joined.values.tolist() == [1, 2, 3, 4, 5]
    assert joined.is_contiguous()
    with pytest.raises(ContiguityError):
        joined.concat(b)


def test_split_is_a_partition():
    s = _series(periods=90)
    train, holdout = split(s, "2019-02-28", "2019-03-01", "2019-03-31")
    assert train.start == s.start
    assert train.end + pd.Timedelta(days=1) == holdout.start
    combined = train.concat(holdout)
    expected = pd.date_range(s.start, "2019-03-31", freq="D")
    assert combined.dates.equals(expected)
    assert len(train) + len(holdout) == len(expected)


def test_split_requires_holdout_the_day_after_training():
    s = _series(periods=90)
    with pytest.raises(ContiguityError):
        split(s, "2019-02-28", "2019-03-02", "2019-03-31")
    with pytest.raises(ContiguityError):
        split(s, "2019-02-28", "2019-02-28", "2019-03-31")


def test_split_rejects_windows_with_gaps():
    dates = pd.date_range("2019-01-01", periods=60, freq="D").delete(10)
    s = TimeSeries(pd.Series(np.ones(59), index=dates))
    with pytest.raises(ContiguityError):
        split(s, "2019-01-31", "2019-02-01", "2019-02-20")


def test_split_outside_series_span():
    s = _series(periods=30)
    with pytest.raises(OutOfRangeError):
        split(s, "2019-01-20", "2019-01-21", "2019-03-01")


def test_cutover_then_split():
    s = _series(periods=90).truncate_before("2019-01-15")
    train, _ = split(s, "2019-02-28", "2019-03-01", "2019-03-31")
    assert train.start == pd.Timestamp("2019-01-15")
