from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator

import numpy as np
import pandas as pd

from traffic_app.core.config import DAILY_FREQ, INTERVAL_LEVELS, SELECTION_METRICS, ModelConfig
from traffic_app.core.errors import ContiguityError, OutOfRangeError

ONE_DAY = pd.Timedelta(days=1)


def _day(value: Any) -> pd.Timestamp:
    return pd.Timestamp(value).normalize()


@dataclass(frozen=True, eq=False)
class TimeSeries:
    """Daily, date-indexed series of non-negative counts.

    Dates are unique and sorted. Gaps are allowed in a loaded series but every
    window handed to a model must be contiguous (see ``is_contiguous``).
    Operations return new instances; the wrapped data is never mutated.
    """

    data: pd.Series
    name: str = "y"

    def __post_init__(self) -> None:
        raw = self.data
        if raw is None or len(raw) == 0:
            raise ValueError("TimeSeries requires at least one observation.")
        index = pd.DatetimeIndex(pd.to_datetime(raw.index)).normalize()
        if index.has_duplicates:
            dupes = index[index.duplicated()].unique()
            raise ValueError(f"Duplicate dates in series: {[d.date().isoformat() for d in dupes[:5]]}")
        values = pd.to_numeric(pd.Series(np.asarray(raw), index=index), errors="coerce").astype(float)
        if not np.isfinite(values.to_numpy()).all():
            raise ValueError("TimeSeries values must be finite numbers.")
        if (values < 0).any():
            raise ValueError("TimeSeries values are counts and must be non-negative.")
        series = values.sort_index().rename(self.name)
        series.index.name = "date"
        object.__setattr__(self, "data", series)

    @classmethod
    def from_frame(cls, df: pd.DataFrame, date_col: str = "date", value_col: str = "y") -> "TimeSeries":
        return cls(pd.Series(df[value_col].to_numpy(), index=pd.to_datetime(df[date_col])), name="y")

    @classmethod
    def from_values(cls, start: Any, values: Any, name: str = "y") -> "TimeSeries":
        values = np.asarray(values, dtype=float)
        dates = pd.date_range(_day(start), periods=len(values), freq=DAILY_FREQ)
        return cls(pd.Series(values, index=dates), name=name)

    def __len__(self) -> int:
        return len(self.data)

    def __iter__(self) -> Iterator[tuple[pd.Timestamp, float]]:
        return iter(self.data.items())

    @property
    def start(self) -> pd.Timestamp:
        return self.data.index[0]

    @property
    def end(self) -> pd.Timestamp:
        return self.data.index[-1]

    @property
    def dates(self) -> pd.DatetimeIndex:
        return self.data.index.copy()

    @property
    def values(self) -> np.ndarray:
        return self.data.to_numpy(copy=True)

    def to_series(self) -> pd.Series:
        return self.data.copy()

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"date": self.data.index, "y": self.data.to_numpy()})

    def missing_dates(self) -> pd.DatetimeIndex:
        full = pd.date_range(self.start, self.end, freq=DAILY_FREQ)
        return full.difference(self.data.index)

    def is_contiguous(self) -> bool:
        return len(self.missing_dates()) == 0

    def window(self, start: Any, end: Any) -> "TimeSeries":
        start, end = _day(start), _day(end)
        if start > end:
            raise OutOfRangeError(f"Window start {start.date()} is after end {end.date()}.")
        if start < self.start or end > self.end:
            raise OutOfRangeError(
                f"Window {start.date()}..{end.date()} is outside the series span "
                f"{self.start.date()}..{self.end.date()}."
            )
        sliced = self.data.loc[start:end]
        if sliced.empty:
            raise OutOfRangeError(f"Window {start.date()}..{end.date()} holds no observations.")
        return TimeSeries(sliced, name=self.name)

    def truncate_before(self, cutover: Any) -> "TimeSeries":
        """Drop everything before ``cutover``, e.g. data from before a logging incident."""
        return self.window(cutover, self.end)

    def concat(self, other: "TimeSeries") -> "TimeSeries":
        if other.start <= self.end:
            raise ContiguityError(
                f"Cannot append series starting {other.start.date()} to one ending {self.end.date()}."
            )
        return TimeSeries(pd.concat([self.data, other.data]), name=self.name)

    def total(self, start: Any, end: Any) -> float:
        return float(self.window(start, end).data.sum())


FORECAST_COLUMNS = ["date", "forecast", "lower_80", "upper_80", "lower_95", "upper_95"]


@dataclass(frozen=True, eq=False)
class FittedModel:
    config: ModelConfig
    train_start: pd.Timestamp
    train_end: pd.Timestamp
    estimator: Any
    residuals: np.ndarray
    fit_seconds: float = 0.0
    fit_summary: dict[str, Any] = field(default_factory=dict)

    @property
    def model_id(self) -> str:
        return self.config.model_id

    @property
    def kind(self) -> str:
        return self.config.kind


@dataclass(frozen=True, eq=False)
class ForecastResult:
    """Point forecast for ``horizon`` consecutive days, with 80%/95% bounds."""

    model_id: str
    frame: pd.DataFrame

    def __post_init__(self) -> None:
        missing = [c for c in ("date", "forecast") if c not in self.frame.columns]
        if missing:
            raise ValueError(f"Forecast frame is missing columns: {missing}")
        frame = self.frame.reset_index(drop=True).copy()
        frame["date"] = pd.to_datetime(frame["date"]).dt.normalize()
        if frame.empty:
            raise ValueError("A forecast covers at least one day.")
        steps = frame["date"].diff().dropna()
        if not (steps == ONE_DAY).all():
            raise ContiguityError(f"Forecast dates for {self.model_id} are not consecutive days.")
        object.__setattr__(self, "frame", frame[[c for c in FORECAST_COLUMNS if c in frame.columns]])

    @property
    def horizon(self) -> int:
        return len(self.frame)

    def __len__(self) -> int:
        return self.horizon

    @property
    def start(self) -> pd.Timestamp:
        return self.frame["date"].iloc[0]

    @property
    def end(self) -> pd.Timestamp:
        return self.frame["date"].iloc[-1]

    @property
    def dates(self) -> pd.DatetimeIndex:
        return pd.DatetimeIndex(self.frame["date"])

    @property
    def values(self) -> np.ndarray:
        return self.frame["forecast"].to_numpy(dtype=float, copy=True)

    def interval(self, level: float = 0.95) -> tuple[np.ndarray, np.ndarray] | None:
        if level not in INTERVAL_LEVELS:
            raise ValueError(f"Interval level must be one of {INTERVAL_LEVELS}.")
        pct = int(round(level * 100))
        lower, upper = f"lower_{pct}", f"upper_{pct}"
        if lower not in self.frame.columns or upper not in self.frame.columns:
            return None
        return self.frame[lower].to_numpy(dtype=float), self.frame[upper].to_numpy(dtype=float)

    def to_series(self) -> pd.Series:
        return pd.Series(self.values, index=self.dates, name=self.model_id)


class ErrorReport(Mapping):
    """Read-only ``model_id -> {"mape", "mae", "rmse"}`` table.

    Iteration follows the order entries were recorded in, which is the order
    of the configs that produced them.
    """

    def __init__(self, entries: Mapping[str, Mapping[str, float]] | None = None) -> None:
        frozen: dict[str, Mapping[str, float]] = {}
        for model_id, scores in (entries or {}).items():
            missing = [m for m in SELECTION_METRICS if m not in scores]
            if missing:
                raise ValueError(f"Scores for {model_id} are missing metrics: {missing}")
            frozen[model_id] = MappingProxyType({m: float(scores[m]) for m in SELECTION_METRICS})
        self._entries = MappingProxyType(frozen)

    def __getitem__(self, model_id: str) -> Mapping[str, float]:
        return self._entries[model_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ErrorReport({dict((k, dict(v)) for k, v in self._entries.items())})"

    @property
    def model_ids(self) -> list[str]:
        return list(self._entries)

    def to_frame(self) -> pd.DataFrame:
        rows = [{"model_id": model_id, **scores} for model_id, scores in self._entries.items()]
        return pd.DataFrame(rows, columns=["model_id", *SELECTION_METRICS])


@dataclass(frozen=True)
class ModelFailure:
    model_id: str
    kind: str
    stage: str
    message: str


@dataclass(frozen=True, eq=False)
class BacktestResult:
    train_start: pd.Timestamp
    train_end: pd.Timestamp
    holdout_start: pd.Timestamp
    holdout_end: pd.Timestamp
    report: ErrorReport
    holdout: TimeSeries
    forecasts: dict[str, ForecastResult] = field(default_factory=dict)
    failures: tuple[ModelFailure, ...] = ()
    fit_seconds: dict[str, float] = field(default_factory=dict)
    # model_id -> {"coverage_80", "coverage_95"}: share of hold-out days inside each band
    coverage: dict[str, dict[str, float]] = field(default_factory=dict)


@dataclass(frozen=True)
class YoYSummary:
    comparison_start: pd.Timestamp
    comparison_end: pd.Timestamp
    observed_total: float
    forecast_total: float
    prior_total: float
    pct_change: float
    observed_days: int
    forecast_days: int

    @property
    def current_total(self) -> float:
        return self.observed_total + self.forecast_total


@dataclass(frozen=True, eq=False)
class PipelineResult:
    winner_id: str
    selection_metric: str
    backtest: BacktestResult
    ranking: pd.DataFrame
    final_model: FittedModel
    forecast: ForecastResult
    yoy: YoYSummary | None = None


@dataclass
class ValidationIssue:
    level: str
    check: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidationReport:
    issues: list[ValidationIssue]
    summary: dict[str, Any]
    cleaned_df: pd.DataFrame
    series: TimeSeries | None = None

    @property
    def has_errors(self) -> bool:
        return any(i.level == "error" for i in self.issues)
