"""tradebench.backtest.io

Historical series loader.

CSV schema (header required, comma-delimited, case-insensitive, any order):
- required: timestamp, open, high, low, close
- optional: volume (carried along, unused by the engine)

Timestamps are Unix milliseconds and must be non-decreasing. Every required
cell must be numeric; a bad cell fails the whole load rather than leaking
NaN into indicator math.
"""

from __future__ import annotations

import csv
import io
import math
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from tradebench.core.exceptions import InsufficientDataError, NumericParseError, SchemaError

REQUIRED_COLUMNS = ("timestamp", "open", "high", "low", "close")


@dataclass(frozen=True, slots=True)
class PriceBar:
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float | None = None


@dataclass(frozen=True, slots=True)
class PriceSeries:
    timestamp: np.ndarray  # int64 ms, (T,)
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray | None = None

    def __len__(self) -> int:
        return int(self.close.shape[0])

    def bar(self, i: int) -> PriceBar:
        return PriceBar(
            timestamp=int(self.timestamp[i]),
            open=float(self.open[i]),
            high=float(self.high[i]),
            low=float(self.low[i]),
            close=float(self.close[i]),
            volume=float(self.volume[i]) if self.volume is not None else None,
        )


def _number(raw: str, *, row: int, column: str) -> float:
    v = raw.strip()
    if not v:
        raise NumericParseError(f"row {row}: missing value for {column}")
    try:
        out = float(v)
    except ValueError:
        raise NumericParseError(f"row {row}: {column} is not a number: {v!r}") from None
    if not math.isfinite(out):
        raise NumericParseError(f"row {row}: {column} is not finite: {v!r}")
    return out


_INT64_MIN = int(np.iinfo(np.int64).min)
_INT64_MAX = int(np.iinfo(np.int64).max)


def _timestamp(raw: str, *, row: int) -> int:
    v = raw.strip()
    if not v:
        raise NumericParseError(f"row {row}: missing value for timestamp")
    try:
        out = int(v)
    except ValueError:
        f = _number(v, row=row, column="timestamp")
        if not f.is_integer():
            raise NumericParseError(f"row {row}: timestamp must be whole milliseconds: {v!r}") from None
        out = int(f)
    if not _INT64_MIN <= out <= _INT64_MAX:
        raise NumericParseError(f"row {row}: timestamp out of range: {v!r}")
    return out


def parse_prices_csv(text: str, *, min_rows: int = 0) -> PriceSeries:
    """Parse CSV text into a PriceSeries.

    ``min_rows`` is the caller's warm-up requirement; fewer parsed rows raise
    InsufficientDataError.
    """

    reader = csv.reader(io.StringIO(text.strip()))
    header = next(reader, None)
    if not header:
        raise SchemaError("CSV is empty; expected a header row")

    names = [h.strip().lower() for h in header]
    missing = [c for c in REQUIRED_COLUMNS if c not in names]
    if missing:
        raise SchemaError(f"CSV header missing required columns: {', '.join(missing)}")

    idx = {c: names.index(c) for c in REQUIRED_COLUMNS}
    vol_idx = names.index("volume") if "volume" in names else None

    prices = ("open", "high", "low", "close")
    stamps: list[int] = []
    cols: dict[str, list[float]] = {c: [] for c in prices}
    volume: list[float] = []

    # Row numbers are 1-based and count the header, matching what an editor shows.
    for row_no, row in enumerate(reader, start=2):
        if not row or all(not cell.strip() for cell in row):
            continue
        for c in REQUIRED_COLUMNS:
            if idx[c] >= len(row):
                raise NumericParseError(f"row {row_no}: missing value for {c}")
        stamps.append(_timestamp(row[idx["timestamp"]], row=row_no))
        for c in prices:
            cols[c].append(_number(row[idx[c]], row=row_no, column=c))
        if vol_idx is not None:
            raw_vol = row[vol_idx] if vol_idx < len(row) else ""
            volume.append(_number(raw_vol, row=row_no, column="volume") if raw_vol.strip() else float("nan"))

        if len(stamps) > 1 and stamps[-1] < stamps[-2]:
            raise SchemaError(f"row {row_no}: timestamps must be non-decreasing")

    n = len(stamps)
    if n < min_rows:
        raise InsufficientDataError(f"Not enough historical data: {n} rows, need at least {min_rows}")

    return PriceSeries(
        timestamp=np.array(stamps, dtype=np.int64),
        open=np.array(cols["open"], dtype=np.float64),
        high=np.array(cols["high"], dtype=np.float64),
        low=np.array(cols["low"], dtype=np.float64),
        close=np.array(cols["close"], dtype=np.float64),
        volume=np.array(volume, dtype=np.float64) if vol_idx is not None else None,
    )


def load_prices_csv(path: str | Path, *, min_rows: int = 0) -> PriceSeries:
    p = Path(path)
    return parse_prices_csv(p.read_text(encoding="utf-8"), min_rows=min_rows)
