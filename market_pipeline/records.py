# market_pipeline/records.py
# Purpose: the one place where store strings become floats (and back).
#          Builds documents from quotes and reads typed values out of documents.

import datetime as dt
import math
import numbers
from dataclasses import dataclass, asdict
from typing import Any, Mapping, Optional

DOCUMENT_ID = "$id"          # key carrying the store identifier on read
TICKER_FIELD = "ticker_symbol"


@dataclass
class QuoteRecord:
    """One normalized quote, as strings the way the provider sent them."""
    ticker: str
    name: str
    category: str
    price: str
    change_amount: str
    change_percentage: str
    volume: str = ""
    latest_trading_day: str = ""
    raw_data: str = ""
    source: str = "alphavantage"


def now_iso() -> str:
    """UTC timestamp as stored in last_updated / update_time."""
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_decimal(value: Any) -> Optional[float]:
    """'12.50' / 12.5 -> 12.5; anything else (None, '', 'abc', nan, bool) -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def parse_percentage(value: Any) -> Optional[float]:
    """'-1.99%' or '3.5' -> float; a single trailing % is optional."""
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("%"):
            text = text[:-1]
        return parse_decimal(text)
    return parse_decimal(value)


def format_decimal(value: float) -> str:
    """Store encoding for numbers (prices, manipulator)."""
    return repr(round(float(value), 2))


def real_world_document(quote: QuoteRecord, now: str) -> dict:
    """Real-world collection document for a quote."""
    doc = asdict(quote)
    doc[TICKER_FIELD] = doc.pop("ticker")
    doc["last_updated"] = now
    return doc


def in_game_seed_document(ticker: str, name: str, category: str, price: float, now: str) -> dict:
    return {
        TICKER_FIELD: ticker,
        "name": name,
        "category": category,
        "price": format_decimal(price),
        "last_change": format_decimal(0),
        "last_updated": now,
    }


def in_game_row(doc: Mapping[str, Any]) -> dict:
    """Typed view of an in-game document (price -> float or None)."""
    return {
        "id": doc.get(DOCUMENT_ID),
        "ticker": doc.get(TICKER_FIELD),
        "name": doc.get("name"),
        "category": doc.get("category"),
        "price": parse_decimal(doc.get("price")),
        "last_change": parse_decimal(doc.get("last_change")),
    }


def in_game_update(price: float, last_change: float, now: str) -> dict:
    """Fields written back after a price move."""
    return {
        "price": format_decimal(price),
        "last_change": format_decimal(last_change),
        "last_updated": now,
    }


def manipulator_document(manipulator: float, average_change: float, tier: str,
                         documents_used: int, now: str) -> dict:
    return {
        "manipulator": format_decimal(manipulator),
        "average_change": round(float(average_change), 4),
        "tier": tier,
        "documents_used": documents_used,
        "update_time": now,
    }


def manipulator_value(doc: Optional[Mapping[str, Any]]) -> Optional[float]:
    """Manipulator stored as string or number -> float (None if absent/bad)."""
    if not doc:
        return None
    return parse_decimal(doc.get("manipulator"))
