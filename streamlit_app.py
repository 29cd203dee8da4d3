from __future__ import annotations

import logging

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from traffic_app.core.config import DEFAULT_FORWARD_HORIZON, RANDOM_SEED, SELECTION_METRICS, PipelineConfig
from traffic_app.core.errors import ForecastingError
from traffic_app.services.data_loader import build_template, infer_columns, read_tabular
from traffic_app.services.models import available_forecasters
from traffic_app.services.pipeline import run_pipeline
from traffic_app.services.reporting import (
    build_comparison_table,
    build_forecast_table,
    build_holdout_table,
    build_summary,
    export_to_excel,
)
from traffic_app.services.selection import build_explanation
from traffic_app.services.validation import GAP_ACTIONS, validate_daily_series

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger("traffic_forecast")

st.set_page_config(page_title="Traffic Forecast Studio", layout="wide")
st.title("Traffic Forecast Studio")
st.caption("Daily traffic backtest, model selection, forward forecast and year-over-year outlook.")


def _render_validation_report(report):
    sev_color = {"error": "red", "warning": "orange", "info": "blue"}
    if not report.issues:
        st.success("No data quality issues detected.")
        return
    for issue in report.issues:
        color = sev_color.get(issue.level, "gray")
        st.markdown(
            f"- :{color}[**{issue.level.upper()}**] `{issue.check}`: {issue.message} | Details: `{issue.details}`"
        )


def _plot_holdout(holdout_df: pd.DataFrame, winner_id: str):
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=holdout_df["date"], y=holdout_df["actual"], mode="lines", name="Actual", line=dict(color="#1f2937")))
    for model_id in [c for c in holdout_df.columns if c not in ("date", "actual")]:
        fig.add_trace(
            go.Scatter(
                x=holdout_df["date"],
                y=holdout_df[model_id],
                mode="lines",
                name=model_id,
                line=dict(width=3 if model_id == winner_id else 1, dash="solid" if model_id == winner_id else "dot"),
            )
        )
    fig.update_layout(title="Hold-out: Predicted vs Actual", xaxis_title="Date", yaxis_title="Traffic", template="plotly_white")
    st.plotly_chart(fig, use_container_width=True)


def _plot_forecast(table: pd.DataFrame, winner_id: str):
    hist = table[table["model_id"] == "actual"]
    fc = table[table["model_id"] != "actual"]
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=hist["date"], y=hist["actual"], mode="lines", name="Actuals", line=dict(color="#1f2937")))
    fig.add_trace(go.Scatter(x=fc["date"], y=fc["forecast"], mode="lines", name=f"{winner_id} forecast", line=dict(color="#0ea5e9")))
    fig.add_trace(go.Scatter(x=fc["date"], y=fc["upper_95"], line=dict(width=0), showlegend=False, hoverinfo="skip"))
    fig.add_trace(
        go.Scatter(
            x=fc["date"],
            y=fc["lower_95"],
            fill="tonexty",
            fillcolor="rgba(59,130,246,0.15)",
            line=dict(width=0),
            name="95% interval",
            hoverinfo="skip",
        )
    )
    fig.update_layout(title="Actuals and Forward Forecast", xaxis_title="Date", yaxis_title="Traffic", template="plotly_white")
    st.plotly_chart(fig, use_container_width=True)


if "raw_df" not in st.session_state:
    st.session_state.raw_df = None
if "report" not in st.session_state:
    st.session_state.report = None
if "result" not in st.session_state:
    st.session_state.result = None

tabs = st.tabs(["1) Data", "2) Backtest & Forecast", "3) Export"])

with tabs[0]:
    st.subheader("Upload Daily Traffic")
    use_template = st.checkbox("Use synthetic sample data", value=st.session_state.raw_df is None)
    uploaded = st.file_uploader("Upload file (CSV or Excel)", type=["csv", "xlsx", "xls"])
    if uploaded:
        try:
            st.session_state.raw_df = read_tabular(uploaded.name, uploaded.read())
        except ValueError as ex:
            st.error(f"Could not read file: {ex}")
    elif use_template:
        st.session_state.raw_df = build_template()

    raw = st.session_state.raw_df
    if raw is not None:
        st.dataframe(raw.head(20), use_container_width=True)
        mapping = infer_columns(raw)
        cols = list(raw.columns)
        date_col = st.selectbox("Date column", cols, index=cols.index(mapping.date_col) if mapping else 0)
        target_col = st.selectbox("Traffic column", cols, index=cols.index(mapping.target_col) if mapping else min(1, len(cols) - 1))
        gap_action = st.selectbox("Missing days", GAP_ACTIONS, index=0)
        if st.button("Validate", type="primary"):
            report = validate_daily_series(raw, date_col, target_col, gap_action=gap_action)
            st.session_state.report = report
            st.session_state.result = None
            logger.info("Validation completed. Summary=%s", report.summary)

    report = st.session_state.report
    if report is not None:
        _render_validation_report(report)
        if report.series is not None:
            st.plotly_chart(px.line(report.cleaned_df, x="date", y="y", title="Daily traffic"), use_container_width=True)

with tabs[1]:
    st.subheader("Backtest, Select and Forecast")
    report = st.session_state.report
    if report is None or report.series is None:
        st.info("Upload and validate data first.")
    else:
        series = report.series
        last = series.end
        default_holdout_start = (last - pd.DateOffset(years=1) + pd.Timedelta(days=1)).normalize()
        c1, c2, c3 = st.columns(3)
        usable_start = c1.date_input("Use history from (cutover)", value=series.start.date(), min_value=series.start.date(), max_value=last.date())
        holdout_start = c2.date_input("Hold-out start", value=default_holdout_start.date())
        holdout_end = c3.date_input("Hold-out end", value=last.date())
        c4, c5, c6 = st.columns(3)
        forward_horizon = c4.number_input("Forward horizon (days)", min_value=1, max_value=3 * 365, value=DEFAULT_FORWARD_HORIZON)
        selection_metric = c5.selectbox("Selection metric", SELECTION_METRICS, index=0)
        seed = c6.number_input("Random seed", min_value=0, value=RANDOM_SEED)
        kinds = st.multiselect("Models", options=list(available_forecasters()), default=["trend_seasonal", "autoregressive", "learned_nonlinear"])

        compare = st.checkbox("Year-over-year comparison", value=True)
        comparison = {}
        if compare:
            year = int(st.number_input("Comparison year", value=int(last.year), step=1))
            comparison = {"comparison_start": f"{year}-01-01", "comparison_end": f"{year}-12-31"}
            prior = st.text_input("Prior-period total (blank = sum from history)", value="")
            comparison["prior_period_total"] = prior.strip() or None

        if st.button("Run Pipeline", type="primary"):
            try:
                config = PipelineConfig.from_mapping(
                    {
                        "train_end": pd.Timestamp(holdout_start) - pd.Timedelta(days=1),
                        "holdout_start": holdout_start,
                        "holdout_end": holdout_end,
                        "forward_horizon": int(forward_horizon),
                        "selection_metric": selection_metric,
                        "usable_start": usable_start,
                        "seed": int(seed),
                        "configs": [{"model_id": k, "kind": k} for k in kinds],
                        **comparison,
                    }
                )
                with st.spinner("Fitting models…"):
                    st.session_state.result = run_pipeline(series, config)
            except (ForecastingError, ValueError) as ex:
                st.error(f"Pipeline failed: {ex}")

        result = st.session_state.result
        if result is not None:
            st.success(f"Selected model: {result.winner_id}")
            comparison_table = build_comparison_table(result.backtest)
            st.dataframe(comparison_table, use_container_width=True)
            scored = result.ranking
            st.plotly_chart(
                px.bar(scored, x="model_id", y=result.selection_metric, title=f"Hold-out {result.selection_metric.upper()} by model"),
                use_container_width=True,
            )
            _plot_holdout(build_holdout_table(result.backtest), result.winner_id)
            _plot_forecast(build_forecast_table(series, result.forecast), result.winner_id)
            if result.yoy is not None:
                m1, m2, m3 = st.columns(3)
                m1.metric("Current period total", f"{result.yoy.current_total:,.0f}", f"{result.yoy.pct_change:+.2f}%")
                m2.metric("Observed / forecast days", f"{result.yoy.observed_days} / {result.yoy.forecast_days}")
                m3.metric("Prior period total", f"{result.yoy.prior_total:,.0f}")
            st.write(build_explanation(result.ranking, result.selection_metric, result.backtest.failures))

with tabs[2]:
    st.subheader("Export")
    result = st.session_state.result
    report = st.session_state.report
    if result is None:
        st.info("Run the pipeline first.")
    else:
        issues_df = pd.DataFrame([vars(i) for i in report.issues]) if report and report.issues else pd.DataFrame()
        payload = export_to_excel(
            forecast_table=build_forecast_table(report.series, result.forecast),
            comparison_table=build_comparison_table(result.backtest),
            summary_table=build_summary(result),
            holdout_table=build_holdout_table(result.backtest),
            validation_issues=issues_df,
        )
        st.download_button(
            "Download Excel report",
            data=payload,
            file_name="traffic_forecast_report.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
