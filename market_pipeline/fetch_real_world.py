# market_pipeline/fetch_real_world.py
# Purpose: scrape real-world quotes and upsert them (one document per ticker)
#          into the real-world collection.

import logging
import time
from typing import List, Optional, Tuple

from market_pipeline.config import POPULAR_ETFS, REAL_WORLD_FIELDS, Settings
from market_pipeline.document_store import DocumentStore
from market_pipeline.errors import UpstreamError, UpstreamRateLimited
from market_pipeline.records import QuoteRecord, now_iso, real_world_document
from market_pipeline.sources import QuoteFetcher, build_client, build_fetcher, most_active_quotes
from market_pipeline.upsert import run_in_batches, tally, upsert_by_key

logger = logging.getLogger(__name__)


def fetch_quotes(settings: Settings, fetcher: Optional[QuoteFetcher] = None,
                 client=None) -> Tuple[List[QuoteRecord], List[Tuple[str, UpstreamError]], int]:
    """Quotes for the configured mode; returns (quotes, errors, attempted)."""
    if settings.fetch_mode == "most_active":
        client = client or build_client(settings)
        quotes = most_active_quotes(client)
        return quotes, [], len(quotes)

    fetcher = fetcher or build_fetcher(settings)
    logger.info(f"Starting to fetch data for {len(POPULAR_ETFS)} popular ETFs")
    quotes, errors = fetcher.fetch_all(POPULAR_ETFS, category="ETF")
    return quotes, errors, len(POPULAR_ETFS)


def _raise_total_failure(errors: List[Tuple[str, UpstreamError]]):
    if errors and all(isinstance(e, UpstreamRateLimited) for _, e in errors):
        raise UpstreamRateLimited(f"All {len(errors)} quote requests were rate limited: {errors[0][1]}")
    first = f": {errors[0][1]}" if errors else ""
    raise UpstreamError(f"No quotes fetched ({len(errors)} failed){first}")


def store_quotes(store: DocumentStore, settings: Settings, quotes: List[QuoteRecord],
                 sleep=time.sleep) -> Tuple[dict, list]:
    """Upsert in batches; returns (counts, [{ticker, error}] for failed writes)."""
    now = now_iso()
    ref = settings.real_world

    def _one(quote: QuoteRecord) -> str:
        result = upsert_by_key(store, ref, real_world_document(quote, now))
        logger.info(f"{result.capitalize()} {quote.ticker}")
        return result

    outcomes = run_in_batches(quotes, _one, settings.batch_size, settings.batch_delay, sleep=sleep)
    failures = []
    for quote, _, error in outcomes:
        if error is not None:
            logger.error(f"Failed to process {quote.ticker}: {error}")
            failures.append({"ticker": quote.ticker, "error": str(error)})
    return tally(outcomes), failures


def update_all(settings: Settings, store: DocumentStore, fetcher: Optional[QuoteFetcher] = None,
               client=None, sleep=time.sleep) -> Tuple[str, dict]:
    """Run once: fetch -> validate non-empty -> upsert. Returns (message, details)."""
    settings.require(*REAL_WORLD_FIELDS)
    if settings.quote_api_key:
        # masked tail helps confirm the function sees the secret
        logger.info(f"Quote API key (last 4): ****{settings.quote_api_key[-4:]}")

    quotes, errors, attempted = fetch_quotes(settings, fetcher=fetcher, client=client)
    logger.info(f"Found {len(quotes)} quotes to process ({len(errors)} failed to fetch)")
    if not quotes:
        _raise_total_failure(errors)

    counts, write_failures = store_quotes(store, settings, quotes, sleep=sleep)
    details = {
        "total_attempted": attempted,
        "total_fetched": len(quotes),
        "fetch_errors": len(errors),
        "synthetic": sum(1 for q in quotes if q.source == "synthetic"),
        "created": counts["created"],
        "updated": counts["updated"],
        "failed": counts["failed"],
        "fetch_error_list": [{"ticker": t, "error": str(e)} for t, e in errors],
        "write_error_list": write_failures,
    }
    return f"Successfully processed {len(quotes)} real-world quotes", details
