from __future__ import annotations

import logging
from typing import Sequence

from traffic_app.core.config import FAILURE_POLICIES, INTERVAL_LEVELS, ModelConfig
from traffic_app.core.errors import DivisionDegenerateError, FitFailure, NoViableModelError
from traffic_app.core.types import BacktestResult, ErrorReport, ForecastResult, ModelFailure, TimeSeries
from traffic_app.services.metrics import evaluate_predictions, interval_coverage
from traffic_app.services.models import get_forecaster

logger = logging.getLogger("traffic_forecast")


def _check_configs(configs: Sequence[ModelConfig]) -> None:
    if not configs:
        raise ValueError("At least one model config is required.")
    seen: set[str] = set()
    for config in configs:
        if config.model_id in seen:
            raise ValueError(f"Duplicate model_id {config.model_id!r} in configs.")
        seen.add(config.model_id)
        # Unknown kinds are caller errors, not model failures.
        get_forecaster(config.kind)


def _coverage(actual, result: ForecastResult) -> dict[str, float]:
    out = {}
    for level in INTERVAL_LEVELS:
        bounds = result.interval(level)
        if bounds is not None:
            out[f"coverage_{int(round(level * 100))}"] = interval_coverage(actual, *bounds)
    return out


def run_backtest(
    train: TimeSeries,
    holdout: TimeSeries,
    configs: Sequence[ModelConfig],
    failure_policy: str = "record",
) -> BacktestResult:
    """Fit every config on ``train`` and score its forecast over ``holdout``.

    Each model forecasts ``len(holdout)`` days and is scored with MAPE, MAE and
    RMSE; the share of hold-out days inside its 80%/95% bounds is kept in
    ``coverage``. With ``failure_policy="record"`` a model that fails to fit, forecast
    or be scored is logged, kept in ``failures`` and left out of the report;
    ``NoViableModelError`` is raised only if every model fails. With
    ``"abort"`` the first failure propagates.
    """
    if failure_policy not in FAILURE_POLICIES:
        raise ValueError(f"failure_policy must be one of {FAILURE_POLICIES}, got {failure_policy!r}.")
    _check_configs(configs)

    horizon = len(holdout)
    actual = holdout.values
    scores: dict[str, dict[str, float]] = {}
    forecasts: dict[str, ForecastResult] = {}
    fit_seconds: dict[str, float] = {}
    coverage: dict[str, dict[str, float]] = {}
    failures: list[ModelFailure] = []

    for config in configs:
        forecaster = get_forecaster(config.kind)
        stage = "fit"
        try:
            fitted = forecaster.fit(train, config)
            fit_seconds[config.model_id] = fitted.fit_seconds
            stage = "forecast"
            result = forecaster.forecast(fitted, horizon)
            stage = "score"
            try:
                metrics = evaluate_predictions(actual, result.values)
            except DivisionDegenerateError as ex:
                raise FitFailure(config.model_id, str(ex)) from ex
        except FitFailure as ex:
            if failure_policy == "abort":
                raise
            logger.warning("Model %s failed at %s stage: %s", config.model_id, stage, ex.reason)
            failures.append(ModelFailure(model_id=config.model_id, kind=config.kind, stage=stage, message=ex.reason))
            continue

        scores[config.model_id] = metrics
        forecasts[config.model_id] = result
        coverage[config.model_id] = _coverage(actual, result)
        logger.info(
            "Backtest %s: MAPE=%.2f%% MAE=%.1f RMSE=%.1f",
            config.model_id, metrics["mape"], metrics["mae"], metrics["rmse"],
        )

    if not scores:
        raise NoViableModelError(
            "All models failed during backtest: " + "; ".join(f"{f.model_id}: {f.message}" for f in failures)
        )

    return BacktestResult(
        train_start=train.start,
        train_end=train.end,
        holdout_start=holdout.start,
        holdout_end=holdout.end,
        report=ErrorReport(scores),
        holdout=holdout,
        forecasts=forecasts,
        failures=tuple(failures),
        fit_seconds=fit_seconds,
        coverage=coverage,
    )
