from __future__ import annotations

import numpy as np

from traffic_app.core.errors import DivisionDegenerateError, LengthMismatchError


def _aligned(actual, predicted) -> tuple[np.ndarray, np.ndarray]:
    a = np.asarray(actual, dtype=float).ravel()
    p = np.asarray(predicted, dtype=float).ravel()
    if len(a) != len(p):
        raise LengthMismatchError(f"actual has {len(a)} values but predicted has {len(p)}.")
    if len(a) == 0:
        raise LengthMismatchError("Metrics need at least one value.")
    return a, p


def mape(actual, predicted) -> float:
    """Mean absolute percentage error, relative to the *forecast*.

    ``mean(|actual / predicted - 1|) * 100``. Dividing by the forecast rather
    than the actual value is intentional and makes the metric asymmetric.
    A zero forecast raises ``DivisionDegenerateError``.
    """
    a, p = _aligned(actual, predicted)
    zeros = np.flatnonzero(p == 0)
    if len(zeros):
        raise DivisionDegenerateError(f"MAPE is undefined: {len(zeros)} predicted value(s) are zero (first at {zeros[0]}).")
    return float(np.mean(np.abs(a / p - 1)) * 100)


def mae(actual, predicted) -> float:
    a, p = _aligned(actual, predicted)
    return float(np.mean(np.abs(a - p)))


def rmse(actual, predicted) -> float:
    a, p = _aligned(actual, predicted)
    return float(np.sqrt(np.mean((a - p) ** 2)))


def interval_coverage(actual, lower, upper) -> float:
    a, lo = _aligned(actual, lower)
    _, hi = _aligned(actual, upper)
    return float(np.mean((a >= lo) & (a <= hi)))


def evaluate_predictions(actual, predicted) -> dict[str, float]:
    return {
        "mape": mape(actual, predicted),
        "mae": mae(actual, predicted),
        "rmse": rmse(actual, predicted),
    }
