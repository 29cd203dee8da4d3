from __future__ import annotations


class ForecastingError(Exception):
    """Base class for errors raised by the forecasting core."""


class OutOfRangeError(ForecastingError, ValueError):
    """A requested date window falls outside the series it is applied to."""


class ContiguityError(ForecastingError, ValueError):
    """Windows that must be back-to-back are not, or a window has missing days."""


class LengthMismatchError(ForecastingError, ValueError):
    """Metric inputs are empty or of different lengths."""


class DivisionDegenerateError(ForecastingError, ZeroDivisionError):
    """A ratio would divide by zero."""


class FitFailure(ForecastingError):
    """A forecaster could not be fitted or could not produce a forecast."""

    def __init__(self, model_id: str, message: str) -> None:
        super().__init__(f"{model_id}: {message}")
        self.model_id = model_id
        self.reason = message


class NoViableModelError(ForecastingError):
    """Every configured model failed during a backtest."""
