from __future__ import annotations

import pytest

from traffic_app.core.errors import DivisionDegenerateError, LengthMismatchError
from traffic_app.services.metrics import evaluate_predictions, interval_coverage, mae, mape, rmse


def test_perfect_forecast_scores_zero():
    actual = [100, 200, 100, 200]
    assert evaluate_predictions(actual, list(actual)) == {"mape": 0.0, "mae": 0.0, "rmse": 0.0}


def test_known_errors():
    actual, predicted = [100, 100], [110, 90]
    assert mae(actual, predicted) == pytest.approx(10.0)
    assert rmse(actual, predicted) == pytest.approx(10.0)
    assert mape(actual, predicted) == pytest.approx((10 / 110 + 10 / 90) / 2 * 100)
    assert mape(actual, predicted) == pytest.approx(10.1, abs=0.01)


def test_mape_divides_by_forecast():
    actual, predicted = [100, 100], [110, 90]
    assert mape(predicted, actual) == pytest.approx(10.0)
    assert mape(actual, predicted) != mape(predicted, actual)


def test_mape_zero_forecast_is_degenerate():
    with pytest.raises(DivisionDegenerateError):
        mape([1, 2, 3], [1, 0, 3])


@pytest.mark.parametrize("fn", [mape, mae, rmse])
def test_length_checks(fn):
    with pytest.raises(LengthMismatchError):
        fn([1, 2, 3], [1, 2])
    with pytest.raises(LengthMismatchError):
        fn([], [])


def test_interval_coverage():
    assert interval_coverage([1, 5, 10], [0, 0, 0], [2, 4, 10]) == pytest.approx(2 / 3)
