from __future__ import annotations

from typing import Optional


class SlopecastError(Exception):
    """Base class for errors raised by slopecast."""


class ConfigurationError(SlopecastError):
    """Raised at start-up when required configuration is missing."""


class WeatherApiError(SlopecastError):
    """Raised when an Open-Meteo endpoint cannot be read."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResortNotFound(SlopecastError):
    pass


class MissingCoordinates(SlopecastError):
    pass
