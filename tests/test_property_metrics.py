"""
Property-based tests for the error metrics and forecast shape.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from hypothesis import given, settings, strategies as st

from traffic_app.core.config import ModelConfig
from traffic_app.core.types import TimeSeries
from traffic_app.services.metrics import mae, mape, rmse
from traffic_app.services.models import fit_model, forecast_model
from traffic_app.services.splitting import split


@st.composite
def paired_counts(draw, min_size=1, max_size=60):
    """Equal-length actual/predicted daily counts with no zero predictions."""
    n = draw(st.integers(min_value=min_size, max_value=max_size))
    actual = draw(st.lists(st.integers(min_value=0, max_value=10**6), min_size=n, max_size=n))
    predicted = draw(st.lists(st.integers(min_value=1, max_value=10**6), min_size=n, max_size=n))
    return np.array(actual, dtype=float), np.array(predicted, dtype=float)


@given(paired_counts())
def test_metrics_are_non_negative(pair):
    actual, predicted = pair
    assert mape(actual, predicted) >= 0
    assert mae(actual, predicted) >= 0
    assert rmse(actual, predicted) >= 0


@given(paired_counts())
def test_metrics_are_zero_only_for_exact_forecasts(pair):
    actual, predicted = pair
    exact = np.array_equal(actual, predicted)
    assert (mape(actual, predicted) == 0) == exact
    assert (mae(actual, predicted) == 0) == exact
    assert (rmse(actual, predicted) == 0) == exact


@given(paired_counts())
def test_metrics_of_identical_sequences_are_zero(pair):
    _, predicted = pair
    assert mape(predicted, predicted) == 0
    assert mae(predicted, predicted) == 0
    assert rmse(predicted, predicted) == 0


@settings(deadline=None)
@given(
    total=st.integers(min_value=20, max_value=120),
    cut=st.integers(min_value=1, max_value=19),
    holdout_len=st.integers(min_value=1, max_value=30),
)
def test_split_partitions_without_gap_or_overlap(total, cut, holdout_len):
    series = TimeSeries.from_values("2020-01-01", np.arange(total, dtype=float))
    train_end = series.start + pd.Timedelta(days=cut - 1)
    holdout_end = min(train_end + pd.Timedelta(days=holdout_len), series.end)
    train, holdout = split(series, train_end, train_end + pd.Timedelta(days=1), holdout_end)
    dates = train.dates.append(holdout.dates)
    assert not dates.has_duplicates
    assert dates.equals(pd.date_range(series.start, holdout_end, freq="D"))


@settings(max_examples=30, deadline=None)
@given(horizon=st.integers(min_value=1, max_value=400))
def test_forecast_length_matches_horizon(horizon):
    train = TimeSeries.from_values("2021-03-01", np.tile([5.0, 6.0, 7.0, 8.0, 9.0, 3.0, 2.0], 4))
    result = forecast_model(fit_model(train, ModelConfig(model_id="snaive", kind="seasonal_naive")), horizon)
    assert len(result) == horizon
    assert result.dates.equals(pd.date_range(train.end + pd.Timedelta(days=1), periods=horizon, freq="D"))
