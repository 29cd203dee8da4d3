from __future__ import annotations

import numpy as np
import pandas as pd


def autoregressive_lags(p: int, seasonal_p: int = 1, period: int = 7) -> tuple[int, ...]:
    """Lags used by the neural autoregression: ``1..p`` plus ``period * 1..seasonal_p``."""
    lags = set(range(1, p + 1))
    lags.update(period * k for k in range(1, seasonal_p + 1))
    return tuple(sorted(lags))


def make_lagged_features(df: pd.DataFrame, lags: tuple[int, ...]) -> pd.DataFrame:
    work = df[["date", "y"]].copy()
    for lag in lags:
        work[f"lag_{lag}"] = work["y"].shift(lag)
    return work


def make_lag_matrix(values: np.ndarray, lags: tuple[int, ...]) -> tuple[np.ndarray, np.ndarray]:
    """Supervised ``(X, y)`` pairs where each row holds the lagged values of its target."""
    frame = make_lagged_features(
        pd.DataFrame({"date": np.arange(len(values)), "y": np.asarray(values, dtype=float)}),
        lags,
    ).dropna()
    feature_cols = [f"lag_{lag}" for lag in lags]
    return frame[feature_cols].to_numpy(dtype=float), frame["y"].to_numpy(dtype=float)


def lag_row(history: np.ndarray, lags: tuple[int, ...]) -> np.ndarray:
    """Feature row for the step right after ``history``."""
    return np.array([[history[-lag] for lag in lags]], dtype=float)
