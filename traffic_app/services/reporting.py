from __future__ import annotations

import io
from datetime import datetime, timezone

import pandas as pd

from traffic_app.core.types import BacktestResult, ForecastResult, PipelineResult, TimeSeries
from traffic_app.services.selection import build_explanation


def build_comparison_table(backtest: BacktestResult) -> pd.DataFrame:
    table = backtest.report.to_frame()
    table["status"] = "ok"
    table["fit_seconds"] = table["model_id"].map(backtest.fit_seconds)
    for column in ("coverage_80", "coverage_95"):
        table[column] = table["model_id"].map(lambda m: backtest.coverage.get(m, {}).get(column))
    failed = pd.DataFrame(
        [
            {"model_id": f.model_id, "status": f"failed ({f.stage}): {f.message}", "fit_seconds": backtest.fit_seconds.get(f.model_id)}
            for f in backtest.failures
        ]
    )
    if not failed.empty:
        table = pd.concat([table, failed], ignore_index=True, sort=False)
    return table


def build_holdout_table(backtest: BacktestResult) -> pd.DataFrame:
    out = pd.DataFrame({"date": backtest.holdout.dates, "actual": backtest.holdout.values})
    for model_id, result in backtest.forecasts.items():
        out[model_id] = result.values
    return out


def build_forecast_table(history: TimeSeries, forecast: ForecastResult) -> pd.DataFrame:
    hist = history.to_frame().rename(columns={"y": "actual"})
    hist["model_id"] = "actual"
    fc = forecast.frame.copy()
    fc["model_id"] = forecast.model_id
    combined = pd.concat([hist, fc], ignore_index=True, sort=False)
    columns = ["date", "actual", "forecast", "lower_80", "upper_80", "lower_95", "upper_95", "model_id"]
    return combined.reindex(columns=columns).sort_values("date").reset_index(drop=True)


def build_summary(result: PipelineResult) -> pd.DataFrame:
    best = result.backtest.report[result.winner_id]
    data = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "selected_model": result.winner_id,
        "selection_metric": result.selection_metric,
        "holdout_start": result.backtest.holdout_start.date(),
        "holdout_end": result.backtest.holdout_end.date(),
        "holdout_mape": best["mape"],
        "holdout_mae": best["mae"],
        "holdout_rmse": best["rmse"],
        "forecast_start": result.forecast.start.date(),
        "forecast_end": result.forecast.end.date(),
        "explanation": build_explanation(result.ranking, result.selection_metric, result.backtest.failures),
    }
    if result.yoy is not None:
        data.update(
            {
                "comparison_start": result.yoy.comparison_start.date(),
                "comparison_end": result.yoy.comparison_end.date(),
                "observed_total": result.yoy.observed_total,
                "forecast_total": result.yoy.forecast_total,
                "current_total": result.yoy.current_total,
                "prior_total": result.yoy.prior_total,
                "yoy_pct_change": result.yoy.pct_change,
            }
        )
    return pd.DataFrame([data])


def export_to_excel(
    forecast_table: pd.DataFrame,
    comparison_table: pd.DataFrame,
    summary_table: pd.DataFrame,
    holdout_table: pd.DataFrame | None = None,
    validation_issues: pd.DataFrame | None = None,
) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="xlsxwriter") as writer:
        forecast_table.to_excel(writer, index=False, sheet_name="forecast")
        comparison_table.to_excel(writer, index=False, sheet_name="model_comparison")
        summary_table.to_excel(writer, index=False, sheet_name="summary")
        if holdout_table is not None and not holdout_table.empty:
            holdout_table.to_excel(writer, index=False, sheet_name="holdout")
        if validation_issues is not None and not validation_issues.empty:
            validation_issues.to_excel(writer, index=False, sheet_name="data_quality")
    buffer.seek(0)
    return buffer.read()
