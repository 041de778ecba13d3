"""tradebench.core.exceptions

Errors are part of the interface.

Every failure the backtest core can produce is one of these. The
orchestrator converts them into an error-carrying result; nothing here is
fatal to the host process.
"""

from __future__ import annotations


class TradebenchError(Exception):
    """Base exception for tradebench."""


class ConfigurationError(TradebenchError):
    """Strategy or run parameters are missing, invalid, or inconsistent."""


class SeriesError(TradebenchError):
    """Historical price data could not be turned into a usable series."""


class SchemaError(SeriesError):
    """CSV header or row layout does not match the expected columns."""


class NumericParseError(SeriesError):
    """A required cell is empty or not a number."""


class InsufficientDataError(SeriesError):
    """Too few bars to warm up the indicators and still trade."""
