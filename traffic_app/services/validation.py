from __future__ import annotations

import logging
from dataclasses import asdict

import numpy as np
import pandas as pd

from traffic_app.core.config import DAILY_FREQ, ValidationThresholds
from traffic_app.core.types import TimeSeries, ValidationIssue, ValidationReport

logger = logging.getLogger("traffic_forecast")

GAP_ACTIONS = ("flag", "truncate", "interpolate")


def _longest_trailing_run(daily: pd.Series) -> pd.Series:
    """The contiguous stretch of observed days that ends at the last observation."""
    observed = daily.notna().to_numpy()
    last_gap = np.flatnonzero(~observed)
    if len(last_gap) == 0:
        return daily
    return daily.iloc[last_gap[-1] + 1:]


def validate_daily_series(
    df: pd.DataFrame,
    date_col: str,
    target_col: str,
    thresholds: ValidationThresholds | None = None,
    gap_action: str = "flag",
) -> ValidationReport:
    """Validate and prepare a daily traffic table.

    Parameters
    ----------
    gap_action:
        How to resolve missing days. ``"flag"`` (default) reports them as an
        error and leaves them in place, so a later split refuses the series;
        ``"truncate"`` keeps only the contiguous run that ends at the latest
        observation; ``"interpolate"`` fills them linearly.
    """
    if gap_action not in GAP_ACTIONS:
        raise ValueError(f"gap_action must be one of {GAP_ACTIONS}, got {gap_action!r}.")
    thresholds = thresholds or ValidationThresholds()
    issues: list[ValidationIssue] = []

    work = df[[date_col, target_col]].copy()
    work[date_col] = pd.to_datetime(work[date_col], errors="coerce")
    if work[date_col].isna().any():
        issues.append(
            ValidationIssue(
                level="error",
                check="date_parse",
                message="Some date values could not be parsed and were removed.",
                details={"rows_removed": int(work[date_col].isna().sum())},
            )
        )
        work = work.dropna(subset=[date_col])
    work[date_col] = work[date_col].dt.normalize()

    work[target_col] = pd.to_numeric(work[target_col], errors="coerce")
    if work[target_col].isna().any():
        issues.append(
            ValidationIssue(
                level="error",
                check="target_numeric",
                message="Non-numeric traffic values found; affected rows were removed.",
                details={"rows_removed": int(work[target_col].isna().sum())},
            )
        )
        work = work.dropna(subset=[target_col])

    if work.empty:
        issues.append(ValidationIssue(level="error", check="empty", message="No usable rows remain."))
        return ValidationReport(issues=issues, summary={"rows_input": int(len(df)), "rows_cleaned": 0}, cleaned_df=pd.DataFrame(columns=["date", "y"]))

    duplicate_mask = work.duplicated(subset=[date_col], keep=False)
    if duplicate_mask.any():
        issues.append(
            ValidationIssue(
                level="warning",
                check="duplicates",
                message="Several rows share a date; their counts were summed.",
                details={"duplicate_rows": int(duplicate_mask.sum())},
            )
        )
    daily = work.groupby(date_col)[target_col].sum().sort_index()
    daily = daily.reindex(pd.date_range(daily.index.min(), daily.index.max(), freq=DAILY_FREQ))

    missing_days = int(daily.isna().sum())
    missing_ratio = missing_days / max(len(daily), 1)
    if missing_days > 0:
        details = {"missing_days": missing_days, "missing_ratio": float(missing_ratio), "gap_action": gap_action}
        if gap_action == "interpolate":
            lvl = "warning" if missing_ratio <= thresholds.max_missing_ratio else "error"
            issues.append(ValidationIssue(level=lvl, check="missing_days", message="Missing days were filled by linear interpolation.", details=details))
            daily = daily.interpolate(method="linear")
        elif gap_action == "truncate":
            kept = _longest_trailing_run(daily)
            details["days_dropped"] = int(len(daily) - len(kept))
            issues.append(
                ValidationIssue(
                    level="warning",
                    check="missing_days",
                    message=f"History truncated to the contiguous run starting {kept.index.min().date()}.",
                    details=details,
                )
            )
            daily = kept
        else:
            issues.append(ValidationIssue(level="error", check="missing_days", message="Missing days detected; the series cannot be modelled until they are resolved.", details=details))

    negatives = int((daily < 0).sum())
    if negatives > 0:
        negative_ratio = negatives / max(len(daily), 1)
        issues.append(
            ValidationIssue(
                level="error",
                check="negative_values",
                message="Negative traffic counts detected; they were set to zero.",
                details={"negative_rows": negatives, "negative_ratio": float(negative_ratio)},
            )
        )
        daily = daily.clip(lower=0)

    history_days = int(daily.notna().sum())
    if history_days < thresholds.min_history_days:
        issues.append(
            ValidationIssue(
                level="warning",
                check="short_history",
                message="Less than two years of history; a one-year hold-out leaves little to train on.",
                details={"history_days": history_days, "minimum_recommended": thresholds.min_history_days},
            )
        )

    cleaned = daily.rename("y").rename_axis("date").reset_index()
    observed = cleaned.dropna(subset=["y"])
    series = TimeSeries.from_frame(observed) if not observed.empty else None

    for issue in issues:
        logger.log(logging.ERROR if issue.level == "error" else logging.WARNING, "%s: %s", issue.check, issue.message)

    summary = {
        "rows_input": int(len(df)),
        "rows_cleaned": int(len(observed)),
        "history_days": history_days,
        "start": observed["date"].min() if not observed.empty else None,
        "end": observed["date"].max() if not observed.empty else None,
        "missing_days": missing_days,
        "negative_count": negatives,
        "thresholds": asdict(thresholds),
    }
    return ValidationReport(issues=issues, summary=summary, cleaned_df=cleaned, series=series)
