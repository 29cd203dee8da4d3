from __future__ import annotations

import numpy as np
import pandas as pd

from traffic_app.core.config import SELECTION_METRICS
from traffic_app.core.errors import NoViableModelError
from traffic_app.core.types import ErrorReport, ModelFailure


def _check_metric(metric: str) -> None:
    if metric not in SELECTION_METRICS:
        raise ValueError(f"selection metric must be one of {SELECTION_METRICS}, got {metric!r}.")


def select_winner(report: ErrorReport, metric: str = "mape") -> str:
    """Model id with the lowest ``metric``; ties go to the earliest entry."""
    _check_metric(metric)
    if not report:
        raise NoViableModelError("No scored models to select from.")
    winner, best = None, np.inf
    for model_id, scores in report.items():
        if scores[metric] < best:
            winner, best = model_id, scores[metric]
    return winner if winner is not None else next(iter(report))


def rank_models(report: ErrorReport, metric: str = "mape") -> pd.DataFrame:
    _check_metric(metric)
    rank_df = report.to_frame()
    if rank_df.empty:
        return rank_df
    rank_df["config_order"] = np.arange(len(rank_df))
    rank_df = rank_df.sort_values([metric, "config_order"], kind="mergesort").reset_index(drop=True)
    rank_df["rank"] = np.arange(1, len(rank_df) + 1)
    return rank_df.drop(columns=["config_order"])


def build_explanation(rank_df: pd.DataFrame, metric: str, failures: tuple[ModelFailure, ...] = ()) -> str:
    if rank_df.empty:
        return "No model produced a usable hold-out forecast."
    best = rank_df.iloc[0]
    text = [
        f"Selected model: {best['model_id']}.",
        f"On the hold-out period it scored MAPE {best['mape']:.2f}%, MAE {best['mae']:.1f} and RMSE {best['rmse']:.1f}.",
    ]
    if len(rank_df) > 1:
        runner_up = rank_df.iloc[1]
        gap = runner_up[metric] - best[metric]
        text.append(f"The runner-up, {runner_up['model_id']}, trailed by {gap:.2f} on {metric.upper()}.")
    if failures:
        text.append("Excluded after failing: " + "; ".join(f"{f.model_id} ({f.stage})" for f in failures) + ".")
    text.append("The selected model was refit on the full history before producing the forward forecast.")
    return " ".join(text)
