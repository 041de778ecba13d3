"""tradebench: EMA crossover / ATR exit backtesting core.

The engine answers one question: what would the configured strategy have
done on this price history? Everything around it (exchange clients, the
configuration store, dashboards) talks to it through plain values.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "1.0.0"
