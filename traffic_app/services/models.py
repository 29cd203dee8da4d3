from __future__ import annotations

import logging
import time
import warnings
from abc import ABC, abstractmethod
from typing import Any

import numpy as np
import pandas as pd
from scipy.stats import norm
from sklearn.neural_network import MLPRegressor
from statsmodels.tsa.holtwinters import ExponentialSmoothing
from statsmodels.tsa.statespace.sarimax import SARIMAX

from traffic_app.core.config import DAILY_FREQ, INTERVAL_LEVELS, WEEKLY_PERIOD, ModelConfig
from traffic_app.core.errors import ContiguityError, FitFailure
from traffic_app.core.types import ONE_DAY, FittedModel, ForecastResult, TimeSeries
from traffic_app.services.features import autoregressive_lags, lag_row, make_lag_matrix

logger = logging.getLogger("traffic_forecast")


def _interval_bounds(
    point_forecast: np.ndarray,
    residuals: np.ndarray,
    horizon: int,
    coverage: float,
) -> tuple[np.ndarray, np.ndarray]:
    alpha = 1 - coverage
    z = norm.ppf(1 - alpha / 2)
    sigma = np.std(residuals) if len(residuals) > 1 else np.std(point_forecast) * 0.15
    sigma = max(float(sigma), 1e-6)
    scale = sigma * np.sqrt(np.arange(1, horizon + 1))
    lower = point_forecast - z * scale
    upper = point_forecast + z * scale
    return lower, upper


def _build_output(dates: pd.DatetimeIndex, point_forecast: np.ndarray, residuals: np.ndarray) -> pd.DataFrame:
    f = np.asarray(point_forecast, dtype=float)
    out = pd.DataFrame({"date": dates, "forecast": f})
    for level in INTERVAL_LEVELS:
        pct = int(round(level * 100))
        lower, upper = _interval_bounds(f, residuals, len(f), level)
        out[f"lower_{pct}"] = lower
        out[f"upper_{pct}"] = upper
    return out


class Forecaster(ABC):
    """Uniform fit/forecast interface shared by every model variant.

    Subclasses implement ``_fit`` and ``_predict``; this class validates the
    inputs, turns library exceptions into ``FitFailure`` and shapes the output
    into a ``ForecastResult`` covering the days right after training.
    """

    kind: str = ""

    def fit(self, train: TimeSeries, config: ModelConfig) -> FittedModel:
        if not train.is_contiguous():
            raise ContiguityError(
                f"Training series for {config.model_id} has {len(train.missing_dates())} missing day(s)."
            )
        t0 = time.perf_counter()
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                estimator, residuals, summary = self._fit(train.values, config)
        except FitFailure:
            raise
        except Exception as ex:
            raise FitFailure(config.model_id, f"fit failed: {type(ex).__name__}: {ex}") from ex
        fit_s = time.perf_counter() - t0
        logger.debug("Fitted %s (%s) on %d days in %.2fs", config.model_id, self.kind, len(train), fit_s)
        return FittedModel(
            config=config,
            train_start=train.start,
            train_end=train.end,
            estimator=estimator,
            residuals=np.asarray(residuals, dtype=float),
            fit_seconds=fit_s,
            fit_summary=summary,
        )

    def forecast(self, model: FittedModel, horizon: int) -> ForecastResult:
        if isinstance(horizon, bool) or not isinstance(horizon, (int, np.integer)) or horizon <= 0:
            raise ValueError(f"horizon must be a positive integer, got {horizon!r}.")
        horizon = int(horizon)
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                point = np.asarray(self._predict(model, horizon), dtype=float).ravel()
        except Exception as ex:
            raise FitFailure(model.model_id, f"forecast failed: {type(ex).__name__}: {ex}") from ex
        if len(point) != horizon:
            raise FitFailure(model.model_id, f"expected {horizon} forecast values, got {len(point)}.")
        if not np.isfinite(point).all():
            raise FitFailure(model.model_id, "forecast contains non-finite values.")
        dates = pd.date_range(model.train_end + ONE_DAY, periods=horizon, freq=DAILY_FREQ)
        return ForecastResult(model_id=model.model_id, frame=_build_output(dates, point, model.residuals))

    @abstractmethod
    def _fit(self, values: np.ndarray, config: ModelConfig) -> tuple[Any, np.ndarray, dict[str, Any]]:
        """Return ``(estimator, in-sample residuals, summary)``."""

    @abstractmethod
    def _predict(self, model: FittedModel, horizon: int) -> np.ndarray:
        """Return ``horizon`` point forecasts."""


class SeasonalNaiveForecaster(Forecaster):
    """Repeats the last observed weekly cycle."""

    kind = "seasonal_naive"

    def _fit(self, values, config):
        period = int(config.param("period", WEEKLY_PERIOD))
        period = period if len(values) >= period else len(values)
        residuals = values[period:] - values[:-period] if len(values) > period else np.diff(values)
        return values[-period:].copy(), residuals, {"period": period}

    def _predict(self, model, horizon):
        return np.resize(model.estimator, horizon)


class TrendSeasonalForecaster(Forecaster):
    """Holt-Winters exponential smoothing: damped additive trend plus weekly seasonality."""

    kind = "trend_seasonal"

    def _fit(self, values, config):
        period = int(config.param("seasonal_periods", WEEKLY_PERIOD))
        seasonal = config.param("seasonal", "add") if len(values) >= 2 * period else None
        trend = config.param("trend", "add")
        model = ExponentialSmoothing(
            values,
            trend=trend,
            seasonal=seasonal,
            seasonal_periods=period if seasonal else None,
            damped_trend=bool(config.param("damped_trend", True)) if trend else False,
            initialization_method="estimated",
        )
        fit = model.fit(optimized=True)
        fitted = np.asarray(fit.fittedvalues, dtype=float)
        residuals = values[-len(fitted):] - fitted
        summary = {"seasonal": seasonal, "seasonal_periods": period if seasonal else None, "aic": float(fit.aic)}
        return fit, residuals, summary

    def _predict(self, model, horizon):
        return model.estimator.forecast(horizon)


class AutoRegressiveForecaster(Forecaster):
    """Seasonal ARIMA via statsmodels' state-space SARIMAX."""

    kind = "autoregressive"

    def _fit(self, values, config):
        order = tuple(config.param("order", (1, 1, 1)))
        seasonal_order = tuple(config.param("seasonal_order", (1, 0, 1, WEEKLY_PERIOD)))
        if len(values) < 3 * max(seasonal_order[3], 1):
            seasonal_order = (0, 0, 0, 0)
        model = SARIMAX(
            endog=values,
            order=order,
            seasonal_order=seasonal_order,
            enforce_stationarity=False,
            enforce_invertibility=False,
        )
        fit = model.fit(disp=False)
        resid = np.asarray(fit.resid, dtype=float)[fit.loglikelihood_burn:]
        summary = {"order": order, "seasonal_order": seasonal_order, "aic": float(fit.aic)}
        return fit, resid, summary

    def _predict(self, model, horizon):
        pred = model.estimator.get_forecast(steps=horizon)
        return np.asarray(pred.predicted_mean, dtype=float)


class LearnedNonlinearForecaster(Forecaster):
    """Neural network autoregression.

    A one-hidden-layer network is trained on the standardized series using
    the last ``p`` days plus ``P`` same-weekday lags as inputs. ``n_networks``
    networks seeded ``seed, seed + 1, ...`` are averaged, and multi-step
    forecasts are produced recursively by feeding predictions back as lags.
    """

    kind = "learned_nonlinear"

    def _fit(self, values, config):
        p = int(config.param("p", WEEKLY_PERIOD))
        seasonal_p = int(config.param("P", 1))
        period = int(config.param("period", WEEKLY_PERIOD))
        lags = autoregressive_lags(p, seasonal_p, period)
        size = int(config.param("size", (len(lags) + 1) // 2 + 1))
        n_networks = int(config.param("n_networks", 5))

        mu = float(np.mean(values))
        sd = float(np.std(values)) or 1.0
        scaled = (values - mu) / sd
        X, y = make_lag_matrix(scaled, lags)
        if len(y) < 2 * len(lags):
            raise FitFailure(
                config.model_id,
                f"need at least {2 * len(lags) + max(lags)} observations for lags {lags}, got {len(values)}.",
            )

        nets = []
        for i in range(n_networks):
            net = MLPRegressor(
                hidden_layer_sizes=(size,),
                activation="logistic",
                solver="lbfgs",
                alpha=float(config.param("decay", 1e-3)),
                max_iter=int(config.param("max_iter", 500)),
                random_state=config.seed + i,
            )
            net.fit(X, y)
            nets.append(net)

        fitted = np.mean([net.predict(X) for net in nets], axis=0)
        residuals = (y - fitted) * sd
        estimator = {"nets": nets, "lags": lags, "mu": mu, "sd": sd, "history": scaled[-max(lags):].copy()}
        summary = {"lags": lags, "size": size, "n_networks": n_networks}
        return estimator, residuals, summary

    def _predict(self, model, horizon):
        est = model.estimator
        history = list(est["history"])
        preds = []
        for _ in range(horizon):
            row = lag_row(np.asarray(history), est["lags"])
            step = float(np.mean([net.predict(row)[0] for net in est["nets"]]))
            history.append(step)
            preds.append(step)
        return np.asarray(preds) * est["sd"] + est["mu"]


_FORECASTERS: dict[str, Forecaster] = {
    f.kind: f
    for f in (
        TrendSeasonalForecaster(),
        AutoRegressiveForecaster(),
        LearnedNonlinearForecaster(),
        SeasonalNaiveForecaster(),
    )
}


def available_forecasters() -> dict[str, Forecaster]:
    return dict(_FORECASTERS)


def get_forecaster(kind: str) -> Forecaster:
    try:
        return _FORECASTERS[kind]
    except KeyError:
        raise ValueError(f"Unknown model kind {kind!r}; available: {sorted(_FORECASTERS)}") from None


def register_forecaster(kind: str, forecaster: Forecaster, replace: bool = False) -> None:
    if kind in _FORECASTERS and not replace:
        raise ValueError(f"Model kind {kind!r} is already registered.")
    _FORECASTERS[kind] = forecaster


def unregister_forecaster(kind: str) -> None:
    _FORECASTERS.pop(kind, None)


def fit_model(train: TimeSeries, config: ModelConfig) -> FittedModel:
    return get_forecaster(config.kind).fit(train, config)


def forecast_model(model: FittedModel, horizon: int) -> ForecastResult:
    return get_forecaster(model.kind).forecast(model, horizon)
