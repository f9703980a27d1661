# market_pipeline/sources.py
# Purpose: quote sources (Alpha Vantage, Yahoo Finance, synthetic) behind one
#          fetch(ticker, name, category) call, plus the fetcher that falls back
#          to synthetic quotes after repeated upstream failures.

import datetime as dt
import json
import logging
import random
import time
from typing import Iterable, List, Optional, Tuple

import pandas as pd
import yfinance as yf

from market_pipeline.alphavantage_client import AlphaVantageClient
from market_pipeline.config import Settings
from market_pipeline.errors import ConfigurationError, UpstreamError
from market_pipeline.records import QuoteRecord

logger = logging.getLogger(__name__)


class AlphaVantageSource:
    name = "alphavantage"

    def __init__(self, client: AlphaVantageClient):
        self.client = client

    def fetch(self, ticker: str, name: str, category: str = "ETF") -> QuoteRecord:
        q = self.client.global_quote(ticker)
        return QuoteRecord(
            ticker=ticker,
            name=name,
            category=category,
            price=q.get("05. price", ""),
            change_amount=q.get("09. change", ""),
            change_percentage=q.get("10. change percent", ""),
            volume=q.get("06. volume", ""),
            latest_trading_day=q.get("07. latest trading day", ""),
            raw_data=json.dumps(q),
            source=self.name,
        )


class YahooSource:
    """Last two daily closes from Yahoo -> price, change, change percent."""
    name = "yahoo"

    def fetch(self, ticker: str, name: str, category: str = "ETF") -> QuoteRecord:
        try:
            df = yf.Ticker(ticker).history(period="5d", interval="1d", auto_adjust=False)
        except Exception as e:
            raise UpstreamError(f"Yahoo request for {ticker} failed: {e}") from e
        if df is None or df.empty or "Close" not in df.columns:
            raise UpstreamError(f"Yahoo returned no data for {ticker}")

        df = df.dropna(subset=["Close"])
        if len(df) < 2:
            raise UpstreamError(f"Yahoo returned fewer than two closes for {ticker}")
        prev_close, close = float(df["Close"].iloc[-2]), float(df["Close"].iloc[-1])
        change = close - prev_close
        pct = (change / prev_close * 100) if prev_close else 0.0
        volume = df["Volume"].iloc[-1] if "Volume" in df.columns else None
        volume = str(int(volume)) if volume is not None and pd.notna(volume) else ""
        day = df.index[-1]
        raw = {"close": close, "previous_close": prev_close, "volume": volume, "date": str(day)}
        return QuoteRecord(
            ticker=ticker,
            name=name,
            category=category,
            price=f"{close:.4f}",
            change_amount=f"{change:.4f}",
            change_percentage=f"{pct:.4f}%",
            volume=volume,
            latest_trading_day=day.strftime("%Y-%m-%d") if hasattr(day, "strftime") else str(day),
            raw_data=json.dumps(raw),
            source=self.name,
        )


class SyntheticSource:
    """Deterministic mock quotes: same ticker + same UTC day -> same quote."""
    name = "synthetic"

    def __init__(self, today: Optional[dt.date] = None):
        self.today = today

    def fetch(self, ticker: str, name: str, category: str = "ETF") -> QuoteRecord:
        day = (self.today or dt.datetime.now(dt.timezone.utc).date()).isoformat()
        base = 20 + random.Random(ticker).random() * 480          # stable per ticker
        rng = random.Random(f"{ticker}:{day}")
        pct = rng.uniform(-3.0, 3.0)
        price = base * (1 + pct / 100)
        change = price - base
        volume = rng.randint(100_000, 5_000_000)
        raw = {"synthetic": True, "base_price": round(base, 4), "day": day}
        return QuoteRecord(
            ticker=ticker,
            name=name,
            category=category,
            price=f"{price:.4f}",
            change_amount=f"{change:.4f}",
            change_percentage=f"{pct:.4f}%",
            volume=str(volume),
            latest_trading_day=day,
            raw_data=json.dumps(raw),
            source=self.name,
        )


class QuoteFetcher:
    """Sequential fetches with a fixed delay between upstream requests.

    After `fallback_after` consecutive upstream failures every remaining
    request (including the one that tripped it) is served by `fallback`.
    """

    def __init__(self, primary, fallback=None, fallback_after: int = 3,
                 delay: float = 0.0, sleep=time.sleep):
        self.primary = primary
        self.fallback = fallback
        self.fallback_after = fallback_after
        self.delay = delay
        self.sleep = sleep
        self.failures = 0
        self._requested = False

    @property
    def degraded(self) -> bool:
        return self.fallback is not None and self.fallback_after > 0 \
            and self.failures >= self.fallback_after

    def fetch(self, ticker: str, name: str, category: str = "ETF") -> QuoteRecord:
        if self.degraded:
            return self.fallback.fetch(ticker, name, category)

        if self._requested and self.delay > 0:
            logger.info("Waiting before next request to avoid rate limits...")
            self.sleep(self.delay)
        self._requested = True

        logger.info(f"Fetching data for {ticker}")
        try:
            quote = self.primary.fetch(ticker, name, category)
        except UpstreamError:
            self.failures += 1
            if not self.degraded:
                raise
            logger.warning(f"{self.failures} consecutive upstream failures; "
                           f"switching to {self.fallback.name} quotes")
            return self.fallback.fetch(ticker, name, category)
        self.failures = 0
        return quote

    def fetch_all(self, catalog: Iterable[Tuple[str, str]],
                  category: str = "ETF") -> Tuple[List[QuoteRecord], List[Tuple[str, UpstreamError]]]:
        """Fetch every (ticker, name); returns (quotes, [(ticker, error), ...])."""
        quotes, errors = [], []
        for ticker, name in catalog:
            try:
                quotes.append(self.fetch(ticker, name, category))
                logger.info(f"Successfully fetched data for {ticker}")
            except UpstreamError as e:
                logger.error(f"Failed to fetch data for {ticker}: {e}")
                errors.append((ticker, e))
        return quotes, errors


def most_active_quotes(client: AlphaVantageClient) -> List[QuoteRecord]:
    """One TOP_GAINERS_LOSERS call -> quotes for the most actively traded list."""
    data = client.top_gainers_losers()
    quotes = []
    for row in data["most_actively_traded"]:
        if not isinstance(row, dict) or not row.get("ticker"):
            continue
        quotes.append(QuoteRecord(
            ticker=row["ticker"],
            name=row.get("name") or row["ticker"],
            category=row.get("type") or "Stock",
            price=str(row.get("price", "")),
            change_amount=str(row.get("change_amount", "")),
            change_percentage=str(row.get("change_percentage", "")),
            volume=str(row.get("volume", "")),
            latest_trading_day=str(data.get("last_updated", "")),
            raw_data=json.dumps(row),
            source=AlphaVantageSource.name,
        ))
    return quotes


def build_client(settings: Settings, session=None) -> AlphaVantageClient:
    settings.require("quote_api_key")
    return AlphaVantageClient(settings.quote_api_key, settings.quote_base_url,
                              settings.quote_timeout, session=session)


def build_fetcher(settings: Settings, session=None, sleep=time.sleep) -> QuoteFetcher:
    """Pick the real source from QUOTE_PROVIDER and wire the synthetic fallback."""
    if settings.quote_provider == "yahoo":
        primary = YahooSource()
    elif settings.quote_provider == "alphavantage":
        primary = AlphaVantageSource(build_client(settings, session=session))
    else:
        raise ConfigurationError(f"Unknown QUOTE_PROVIDER {settings.quote_provider!r}")
    fallback = SyntheticSource() if settings.mock_fallback else None
    return QuoteFetcher(primary, fallback, settings.mock_fallback_after,
                        settings.request_delay, sleep=sleep)
