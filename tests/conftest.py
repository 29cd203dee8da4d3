from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from traffic_app.core.types import TimeSeries
from traffic_app.services.models import Forecaster, register_forecaster, unregister_forecaster

WEEKLY_PATTERN = np.array([120.0, 130.0, 125.0, 128.0, 140.0, 80.0, 70.0])


@pytest.fixture
def weekly_pattern() -> np.ndarray:
    """Daily counts for Monday..Sunday."""
    return WEEKLY_PATTERN.copy()


@pytest.fixture
def weekly_series(weekly_pattern):
    """Builds an exact weekly cycle keyed on weekday, so a seasonal naive forecast is perfect."""

    def _build(start: str, end: str) -> TimeSeries:
        dates = pd.date_range(start, end, freq="D")
        return TimeSeries(pd.Series(weekly_pattern[dates.dayofweek], index=dates))

    return _build


class ConstantForecaster(Forecaster):
    """Predicts ``params["level"]`` for every day."""

    kind = "constant"

    def _fit(self, values, config):
        return float(config.param("level", 100.0)), np.array([-1.0, 1.0]), {}

    def _predict(self, model, horizon):
        return np.full(horizon, model.estimator)


class BrokenForecaster(Forecaster):
    kind = "broken"

    def _fit(self, values, config):
        raise RuntimeError("did not converge")

    def _predict(self, model, horizon):
        return np.zeros(horizon)


@pytest.fixture
def stub_forecasters():
    register_forecaster("constant", ConstantForecaster(), replace=True)
    register_forecaster("broken", BrokenForecaster(), replace=True)
    yield
    unregister_forecaster("constant")
    unregister_forecaster("broken")
