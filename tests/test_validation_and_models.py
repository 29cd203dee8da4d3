from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from traffic_app.core.config import ModelConfig
from traffic_app.core.errors import ContiguityError, FitFailure
from traffic_app.core.types import TimeSeries
from traffic_app.services.data_loader import build_template, infer_columns
from traffic_app.services.models import available_forecasters, fit_model, forecast_model, get_forecaster
from traffic_app.services.validation import validate_daily_series


def _sample_df(n: int = 140) -> pd.DataFrame:
    dates = pd.date_range("2021-01-04", periods=n, freq="D")
    rng = np.random.default_rng(0)
    weekly = np.where(dates.dayofweek < 5, 1.0, 0.6)
    y = (500 + np.arange(n) * 0.5) * weekly + rng.normal(0, 5, n)
    return pd.DataFrame({"day": dates, "visits": y})


def test_validation_produces_clean_daily_series():
    df = _sample_df()
    report = validate_daily_series(df, "day", "visits")
    assert report.summary["history_days"] == 140
    assert report.cleaned_df["y"].isna().sum() == 0
    assert report.series.is_contiguous()
    assert not report.has_errors


def test_validation_flags_gaps_and_leaves_them():
    df = _sample_df().drop(index=[10, 11, 12])
    report = validate_daily_series(df, "day", "visits", gap_action="flag")
    checks = {i.check: i for i in report.issues}
    assert checks["missing_days"].level == "error"
    assert checks["missing_days"].details["missing_days"] == 3
    assert len(report.series.missing_dates()) == 3


def test_validation_truncates_to_trailing_contiguous_run():
    df = _sample_df().drop(index=[10, 11, 50])
    report = validate_daily_series(df, "day", "visits", gap_action="truncate")
    assert report.series.is_contiguous()
    assert report.series.start == pd.Timestamp("2021-01-04") + pd.Timedelta(days=51)
    assert report.series.end == pd.Timestamp("2021-01-04") + pd.Timedelta(days=139)


def test_validation_interpolates_gaps():
    df = _sample_df().drop(index=[20])
    report = validate_daily_series(df, "day", "visits", gap_action="interpolate")
    assert report.series.is_contiguous()
    assert len(report.series) == 140


def test_validation_sums_duplicate_days():
    df = pd.DataFrame({"date": ["2022-01-01", "2022-01-01", "2022-01-02"], "traffic": [10, 5, 7]})
    report = validate_daily_series(df, "date", "traffic")
    assert report.series.values.tolist() == [15.0, 7.0]
    assert any(i.check == "duplicates" for i in report.issues)


def test_validation_reports_unparseable_rows():
    df = pd.DataFrame({"date": ["2022-01-01", "not a date", "2022-01-02"], "traffic": [10, 5, "x"]})
    report = validate_daily_series(df, "date", "traffic")
    checks = {i.check for i in report.issues}
    assert {"date_parse", "target_numeric"} <= checks
    assert len(report.series) == 1


def test_template_is_detected_and_valid():
    df = build_template()
    mapping = infer_columns(df)
    assert (mapping.date_col, mapping.target_col) == ("date", "traffic")
    report = validate_daily_series(df, mapping.date_col, mapping.target_col)
    assert report.series.is_contiguous()


def test_models_generate_horizon():
    train = TimeSeries.from_frame(_sample_df(), "day", "visits")
    horizon = 21
    for kind, forecaster in available_forecasters().items():
        config = ModelConfig(model_id=kind, kind=kind, seed=3)
        fitted = forecaster.fit(train, config)
        out = forecaster.forecast(fitted, horizon)
        assert len(out) == horizon, f"{kind} failed horizon length"
        assert out.start == train.end + pd.Timedelta(days=1)
        assert (out.dates == pd.date_range(out.start, periods=horizon, freq="D")).all()
        lower, upper = out.interval(0.95)
        assert np.all(lower <= upper)
        assert {"forecast", "lower_80", "upper_80", "lower_95", "upper_95"}.issubset(out.frame.columns)


def test_learned_nonlinear_is_reproducible_with_seed():
    train = TimeSeries.from_frame(_sample_df(), "day", "visits")
    config = ModelConfig(model_id="nnar", kind="learned_nonlinear", seed=11, params={"n_networks": 3})
    first = forecast_model(fit_model(train, config), 14).values
    second = forecast_model(fit_model(train, config), 14).values
    np.testing.assert_allclose(first, second)


def test_seasonal_naive_repeats_last_week():
    train = TimeSeries.from_values("2022-01-03", np.tile([1, 2, 3, 4, 5, 6, 7], 3))
    config = ModelConfig(model_id="snaive", kind="seasonal_naive")
    out = forecast_model(fit_model(train, config), 10)
    assert out.values.tolist() == [1, 2, 3, 4, 5, 6, 7, 1, 2, 3]


def test_forecast_rejects_non_positive_horizon():
    train = TimeSeries.from_values("2022-01-03", np.arange(1, 30))
    forecaster = get_forecaster("seasonal_naive")
    fitted = forecaster.fit(train, ModelConfig(model_id="snaive", kind="seasonal_naive"))
    for bad in (0, -3, 2.5):
        with pytest.raises(ValueError):
            forecaster.forecast(fitted, bad)


def test_fit_rejects_series_with_gaps():
    dates = pd.date_range("2022-01-01", periods=30, freq="D").delete(5)
    gappy = TimeSeries(pd.Series(np.arange(29.0) + 1, index=dates))
    with pytest.raises(ContiguityError):
        fit_model(gappy, ModelConfig(model_id="snaive", kind="seasonal_naive"))


def test_learned_nonlinear_needs_enough_history():
    short = TimeSeries.from_values("2022-01-01", np.arange(1.0, 12.0))
    with pytest.raises(FitFailure) as exc_info:
        fit_model(short, ModelConfig(model_id="nnar", kind="learned_nonlinear"))
    assert exc_info.value.model_id == "nnar"


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError, match="Unknown model kind"):
        get_forecaster("tbats")
