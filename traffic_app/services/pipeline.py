from __future__ import annotations

import logging
from typing import Any

import pandas as pd

from traffic_app.core.config import DAILY_FREQ, PipelineConfig
from traffic_app.core.errors import ContiguityError, DivisionDegenerateError, OutOfRangeError
from traffic_app.core.types import ONE_DAY, ForecastResult, PipelineResult, TimeSeries, YoYSummary
from traffic_app.services.backtesting import run_backtest
from traffic_app.services.models import get_forecaster
from traffic_app.services.selection import rank_models, select_winner
from traffic_app.services.splitting import split

logger = logging.getLogger("traffic_forecast")


def _gap_free_window(history: TimeSeries, start: Any, end: Any, label: str) -> TimeSeries:
    part = history.window(start, end)
    # The window bounds may fall on missing days too.
    missing = pd.date_range(start, end, freq=DAILY_FREQ).difference(part.dates)
    if len(missing):
        raise ContiguityError(
            f"The {label} window {pd.Timestamp(start).date()}..{pd.Timestamp(end).date()} "
            f"has {len(missing)} missing day(s), first {missing[0].date()}."
        )
    return part


def summarize_year_over_year(
    history: TimeSeries,
    forecast: ForecastResult,
    comparison_start: Any,
    comparison_end: Any,
    prior_period_total: float | None = None,
) -> YoYSummary:
    """Compare a period's total against the prior period's total.

    Days of the comparison window up to the last observed date are summed
    from ``history``; the rest come from ``forecast``, which must reach
    ``comparison_end``. Without ``prior_period_total`` the prior total is
    summed from ``history`` over the same window one year earlier. Missing
    days in either window, or a forecast that does not start the day after
    the history, raise ``ContiguityError``.
    """
    start = pd.Timestamp(comparison_start).normalize()
    end = pd.Timestamp(comparison_end).normalize()
    if start > end:
        raise OutOfRangeError(f"Comparison start {start.date()} is after end {end.date()}.")
    if start < history.start:
        raise OutOfRangeError(f"Comparison window starts {start.date()}, before the history ({history.start.date()}).")
    if end > history.end and forecast.end < end:
        raise OutOfRangeError(
            f"Comparison window ends {end.date()} but the forecast stops at {forecast.end.date()}."
        )
    if end > history.end and forecast.start != history.end + ONE_DAY:
        raise ContiguityError(
            f"Forecast starts {forecast.start.date()} but the history ends {history.end.date()}; "
            "the days in between would be missing from the comparison total."
        )

    observed_end = min(end, history.end)
    if start <= history.end:
        observed = _gap_free_window(history, start, observed_end, "comparison")
        observed_total, observed_days = float(observed.values.sum()), len(observed)
    else:
        observed_total, observed_days = 0.0, 0

    if end > history.end:
        remainder = forecast.to_series().loc[max(start, history.end + ONE_DAY):end]
        forecast_total, forecast_days = float(remainder.sum()), len(remainder)
    else:
        forecast_total, forecast_days = 0.0, 0

    if prior_period_total is None:
        prior_start = start - pd.DateOffset(years=1)
        prior_end = end - pd.DateOffset(years=1)
        prior_period_total = float(_gap_free_window(history, prior_start, prior_end, "prior").values.sum())
    prior_period_total = float(prior_period_total)
    if prior_period_total == 0:
        raise DivisionDegenerateError("Prior-period total is zero; year-over-year change is undefined.")

    current = observed_total + forecast_total
    pct_change = (current / prior_period_total - 1) * 100
    return YoYSummary(
        comparison_start=start,
        comparison_end=end,
        observed_total=observed_total,
        forecast_total=forecast_total,
        prior_total=prior_period_total,
        pct_change=pct_change,
        observed_days=observed_days,
        forecast_days=forecast_days,
    )


def run_pipeline(series: TimeSeries, config: PipelineConfig) -> PipelineResult:
    """Backtest every configured model, refit the winner on all history and forecast ahead."""
    if config.usable_start is not None:
        series = series.truncate_before(config.usable_start)
        logger.info("Using history from %s (%d days)", series.start.date(), len(series))
    if not series.is_contiguous():
        missing = series.missing_dates()
        raise ContiguityError(
            f"History has {len(missing)} missing day(s), first {missing[0].date()}; "
            "fill them or move the cutover past them."
        )

    train, holdout = split(series, config.train_end, config.holdout_start, config.holdout_end)
    backtest = run_backtest(train, holdout, config.configs, failure_policy=config.failure_policy)

    ranking = rank_models(backtest.report, config.selection_metric)
    winner_id = select_winner(backtest.report, config.selection_metric)
    winner_config = next(c for c in config.configs if c.model_id == winner_id)
    logger.info(
        "Selected %s by %s=%.3f",
        winner_id, config.selection_metric, backtest.report[winner_id][config.selection_metric],
    )

    # Evaluation withheld the hold-out; the production fit uses every observed day
    # up to the end of the series.
    forecaster = get_forecaster(winner_config.kind)
    final_model = forecaster.fit(series, winner_config)
    forecast = forecaster.forecast(final_model, config.forward_horizon)
    logger.info("Forecast %s..%s with %s", forecast.start.date(), forecast.end.date(), winner_id)

    yoy = None
    if config.comparison_start is not None:
        yoy = summarize_year_over_year(
            series, forecast, config.comparison_start, config.comparison_end, config.prior_period_total,
        )
        logger.info(
            "YoY %s..%s: %.0f vs %.0f (%+.2f%%)",
            yoy.comparison_start.date(), yoy.comparison_end.date(), yoy.current_total, yoy.prior_total, yoy.pct_change,
        )

    return PipelineResult(
        winner_id=winner_id,
        selection_metric=config.selection_metric,
        backtest=backtest,
        ranking=ranking,
        final_model=final_model,
        forecast=forecast,
        yoy=yoy,
    )
