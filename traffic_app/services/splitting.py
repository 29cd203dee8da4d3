from __future__ import annotations

import logging
from typing import Any

import pandas as pd

from traffic_app.core.errors import ContiguityError, OutOfRangeError
from traffic_app.core.types import ONE_DAY, TimeSeries

logger = logging.getLogger("traffic_forecast")


def window(series: TimeSeries, start: Any, end: Any) -> TimeSeries:
    """Inclusive ``[start, end]`` slice of ``series``."""
    return series.window(start, end)


def _require_contiguous(part: TimeSeries, label: str) -> None:
    missing = part.missing_dates()
    if len(missing):
        raise ContiguityError(
            f"{label} window {part.start.date()}..{part.end.date()} has {len(missing)} missing day(s), "
            f"first {missing[0].date()}. Resolve gaps before fitting."
        )


def split(
    series: TimeSeries,
    train_end: Any,
    holdout_start: Any,
    holdout_end: Any,
) -> tuple[TimeSeries, TimeSeries]:
    """Partition ``series`` into a training window and the hold-out that follows it.

    Training runs from the first observation through ``train_end``. The
    hold-out must start on the day after ``train_end``; anything else would
    leave a gap or an overlap between the windows and is rejected.
    """
    train_end = pd.Timestamp(train_end).normalize()
    holdout_start = pd.Timestamp(holdout_start).normalize()
    holdout_end = pd.Timestamp(holdout_end).normalize()

    if holdout_start != train_end + ONE_DAY:
        raise ContiguityError(
            f"Hold-out must start the day after training ends: train_end={train_end.date()}, "
            f"holdout_start={holdout_start.date()}."
        )
    if train_end < series.start:
        raise OutOfRangeError(f"train_end {train_end.date()} is before the series starts ({series.start.date()}).")

    train = series.window(series.start, train_end)
    holdout = series.window(holdout_start, holdout_end)
    _require_contiguous(train, "Training")
    _require_contiguous(holdout, "Hold-out")
    if train.end != train_end or holdout.start != holdout_start or holdout.end != holdout_end:
        raise ContiguityError("Split boundaries must fall on observed days.")

    logger.info(
        "Split: train %s..%s (%d days), hold-out %s..%s (%d days)",
        train.start.date(), train.end.date(), len(train),
        holdout.start.date(), holdout.end.date(), len(holdout),
    )
    return train, holdout
