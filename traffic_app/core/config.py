from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import pandas as pd


RANDOM_SEED = 42
DAILY_FREQ = "D"
WEEKLY_PERIOD = 7
DEFAULT_FORWARD_HORIZON = 365
SELECTION_METRICS = ("mape", "mae", "rmse")
INTERVAL_LEVELS = (0.80, 0.95)
FAILURE_POLICIES = ("record", "abort")


@dataclass(frozen=True)
class ValidationThresholds:
    max_missing_ratio: float = 0.02
    min_history_days: int = 730


@dataclass(frozen=True)
class ModelConfig:
    """One forecaster variant plus the parameters used to fit it.

    ``kind`` selects the registered forecaster; ``model_id`` is the label the
    variant is reported and selected under. ``seed`` is the only source of
    randomness a fit may use.
    """

    model_id: str
    kind: str
    seed: int = RANDOM_SEED
    params: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if not self.model_id:
            raise ValueError("model_id must be a non-empty string.")
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    def param(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)


def default_model_configs(seed: int = RANDOM_SEED) -> tuple[ModelConfig, ...]:
    return (
        ModelConfig(model_id="trend_seasonal", kind="trend_seasonal", seed=seed),
        ModelConfig(model_id="autoregressive", kind="autoregressive", seed=seed),
        ModelConfig(model_id="learned_nonlinear", kind="learned_nonlinear", seed=seed),
    )


def _to_timestamp(value: Any) -> pd.Timestamp | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return pd.Timestamp(value).normalize()


@dataclass(frozen=True)
class PipelineConfig:
    train_end: pd.Timestamp
    holdout_start: pd.Timestamp
    holdout_end: pd.Timestamp
    forward_horizon: int = DEFAULT_FORWARD_HORIZON
    selection_metric: str = "mape"
    configs: tuple[ModelConfig, ...] = field(default_factory=default_model_configs)

    # Caller-chosen cutover: history before this date is discarded.
    usable_start: pd.Timestamp | None = None

    # Year-over-year comparison window
    comparison_start: pd.Timestamp | None = None
    comparison_end: pd.Timestamp | None = None
    prior_period_total: float | None = None

    failure_policy: str = "record"

    def __post_init__(self) -> None:
        for name in ("train_end", "holdout_start", "holdout_end", "usable_start", "comparison_start", "comparison_end"):
            object.__setattr__(self, name, _to_timestamp(getattr(self, name)))
        object.__setattr__(self, "configs", tuple(self.configs))

        if self.train_end is None or self.holdout_start is None or self.holdout_end is None:
            raise ValueError("train_end, holdout_start and holdout_end are required.")
        if self.selection_metric not in SELECTION_METRICS:
            raise ValueError(
                f"selection_metric must be one of {SELECTION_METRICS}, got {self.selection_metric!r}."
            )
        if isinstance(self.forward_horizon, bool) or not isinstance(self.forward_horizon, int) or self.forward_horizon <= 0:
            raise ValueError(f"forward_horizon must be a positive integer, got {self.forward_horizon!r}.")
        if self.failure_policy not in FAILURE_POLICIES:
            raise ValueError(f"failure_policy must be one of {FAILURE_POLICIES}, got {self.failure_policy!r}.")
        if not self.configs:
            raise ValueError("At least one model config is required.")
        if (self.comparison_start is None) != (self.comparison_end is None):
            raise ValueError("comparison_start and comparison_end must be given together.")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "PipelineConfig":
        """Build a config from plain values, e.g. parsed widget or JSON input.

        ``configs`` entries may be ``ModelConfig`` instances or mappings with
        ``model_id``, ``kind`` and optional ``seed`` / ``params`` keys. When
        ``configs`` is omitted the three standard variants are used, seeded
        from ``seed`` if present.
        """
        values = dict(mapping)
        seed = int(values.pop("seed", RANDOM_SEED))
        raw_configs = values.pop("configs", None)
        if raw_configs is None:
            configs = default_model_configs(seed)
        else:
            configs = tuple(
                c if isinstance(c, ModelConfig) else ModelConfig(
                    model_id=c["model_id"],
                    kind=c.get("kind", c["model_id"]),
                    seed=int(c.get("seed", seed)),
                    params=c.get("params", {}),
                )
                for c in raw_configs
            )
        if "forward_horizon" in values:
            values["forward_horizon"] = int(values["forward_horizon"])
        if values.get("prior_period_total") is not None:
            values["prior_period_total"] = float(values["prior_period_total"])
        return cls(configs=configs, **values)
