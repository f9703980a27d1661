# market_pipeline/market_compute.py
# Purpose: the numeric core. Average real-world change -> tiered manipulator
#          -> price move on the in-game stocks.

import logging
import math
import numbers
from typing import Iterable, Mapping

import pandas as pd

from market_pipeline.errors import InvalidManipulatorError, NoValidDataError
from market_pipeline.records import TICKER_FIELD, parse_decimal, parse_percentage

logger = logging.getLogger(__name__)

# (upper bound of |change|, tier name, output at lower bound, output at upper bound)
TIERS = [
    (2.0, "normal", 0.1, 1.5),
    (5.0, "high", 1.5, 3.0),
    (10.0, "extreme", 3.0, 5.0),
]
SATURATED = 5.0


def valid_changes(documents: Iterable[Mapping]) -> pd.Series:
    """Parsed change percentages of the usable documents, indexed by ticker.

    A document counts only when both price and change_percentage parse;
    the rest are logged and dropped (they never count as 0).
    """
    df = pd.DataFrame.from_records(list(documents))
    for col in (TICKER_FIELD, "price", "change_percentage"):
        if col not in df.columns:
            df[col] = None

    price = df["price"].map(parse_decimal)
    pct = df["change_percentage"].map(parse_percentage)
    valid = price.notna() & pct.notna()

    for ticker in df.loc[~valid, TICKER_FIELD]:
        label = ticker if isinstance(ticker, str) and ticker else "<no ticker>"
        logger.warning(f"Skipping {label}: price/change_percentage missing or not numeric")

    return pd.Series(pct[valid].astype(float).values,
                     index=df.loc[valid, TICKER_FIELD].values, name="change_percentage")


def mean_change(changes: pd.Series) -> float:
    if changes.empty:
        raise NoValidDataError("No valid change percentages in real-world data")
    return float(changes.mean())


def average_change(documents: Iterable[Mapping]) -> float:
    """Arithmetic mean of the valid change percentages (NoValidDataError if none)."""
    return mean_change(valid_changes(documents))


def manipulator_tier(change: float) -> str:
    """Tier name for an average change (bounds are inclusive on the right)."""
    magnitude = abs(change)
    for upper, name, _, _ in TIERS:
        if magnitude <= upper:
            return name
    return "saturate"


def calculate_manipulator(change: float) -> float:
    """Average change % -> signed manipulator in [0.1, 5.0] by magnitude.

    Piecewise-linear over |change|: 0-2 -> 0.1-1.5, 2-5 -> 1.5-3.0,
    5-10 -> 3.0-5.0, beyond 10 flat 5.0. The sign of change is kept
    (0 counts as positive) so the move follows the market direction.
    """
    if isinstance(change, bool) or not isinstance(change, numbers.Real) or math.isnan(change):
        raise InvalidManipulatorError(f"Average change must be a number, got {change!r}")

    magnitude = abs(change)
    value = SATURATED
    lower = 0.0
    for upper, _, out_lo, out_hi in TIERS:
        if magnitude <= upper:
            value = out_lo + ((magnitude - lower) / (upper - lower)) * (out_hi - out_lo)
            break
        lower = upper

    sign = -1.0 if change < 0 else 1.0
    return round(sign * value, 2)


def _price_or_nan(value) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return math.nan
    number = float(value)
    return number if math.isfinite(number) else math.nan


def apply_manipulator(stocks: pd.DataFrame, manipulator: float) -> pd.DataFrame:
    """Move every priced stock by manipulator percent.

    Adds new_price, last_change and skipped columns; the input price column
    is left as is. Rows without a numeric price get skipped=True and keep
    whatever last_change they came in with.
    """
    if isinstance(manipulator, bool) or not isinstance(manipulator, numbers.Real) \
            or not math.isfinite(manipulator):
        raise InvalidManipulatorError(f"Manipulator must be a number, got {manipulator!r}")

    out = stocks.copy()
    if "price" not in out.columns:
        out["price"] = None
    price = out["price"].map(_price_or_nan).astype(float)

    out["skipped"] = price.isna()
    delta = price * (manipulator / 100)
    out["new_price"] = (price + delta).round(2)
    if "last_change" not in out.columns:
        out["last_change"] = math.nan
    out["last_change"] = out["last_change"].astype(object)
    out.loc[~out["skipped"], "last_change"] = round(float(manipulator), 2)
    return out
