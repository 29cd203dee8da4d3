from __future__ import annotations

import io
from dataclasses import dataclass

import numpy as np
import pandas as pd

from traffic_app.core.config import RANDOM_SEED


@dataclass
class ColumnMapping:
    date_col: str
    target_col: str


def read_tabular(file_name: str, file_bytes: bytes) -> pd.DataFrame:
    name = file_name.lower()
    if name.endswith(".csv"):
        df = pd.read_csv(io.BytesIO(file_bytes))
    elif name.endswith(".xlsx") or name.endswith(".xls"):
        df = pd.read_excel(io.BytesIO(file_bytes))
    else:
        raise ValueError("Unsupported file type. Please upload CSV or Excel.")
    df.columns = [str(c).strip() for c in df.columns]
    return df


def infer_columns(df: pd.DataFrame) -> ColumnMapping | None:
    if df.empty:
        return None

    lowered = {c.lower(): c for c in df.columns}
    date_candidates = [lowered.get(k) for k in ("date", "day", "ds", "timestamp")]
    date_col = next((c for c in date_candidates if c), None)

    traffic_candidates = [lowered.get(k) for k in ("traffic", "visits", "sessions", "pageviews", "users", "count", "y")]
    target_col = next((c for c in traffic_candidates if c), None)
    if not target_col:
        numeric_cols = [c for c in df.columns if c != date_col and pd.api.types.is_numeric_dtype(df[c])]
        target_col = numeric_cols[0] if numeric_cols else None

    if date_col and target_col:
        return ColumnMapping(date_col=date_col, target_col=target_col)
    return None


def build_template(
    start: str = "2017-01-01",
    end: str = "2020-06-30",
    seed: int = RANDOM_SEED,
) -> pd.DataFrame:
    """Synthetic daily traffic: slow growth, weekday/weekend cycle, yearly swell and noise."""
    dates = pd.date_range(start, end, freq="D")
    t = np.arange(len(dates))
    rng = np.random.default_rng(seed)
    weekly = np.where(dates.dayofweek < 5, 1.0, 0.7)
    yearly = 1 + 0.15 * np.sin(2 * np.pi * dates.dayofyear.to_numpy() / 365.25)
    level = 1000 + 0.4 * t
    traffic = level * weekly * yearly + rng.normal(0, 40, len(dates))
    return pd.DataFrame({"date": dates, "traffic": np.round(np.clip(traffic, 0, None))})
