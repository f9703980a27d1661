# market_pipeline/in_game_market.py
# Purpose: seed the synthetic in-game stocks once, then move their prices
#          by the stored manipulator on every run.

import logging
import time
from typing import Tuple

import pandas as pd

from market_pipeline.config import (IN_GAME_CATALOG, IN_GAME_FIELDS, MANIPULATOR_FIELDS,
                                    REAL_WORLD_FIELDS, Settings)
from market_pipeline.document_store import DocumentStore
from market_pipeline.errors import DocumentExistsError
from market_pipeline.market_compute import apply_manipulator, valid_changes
from market_pipeline.records import (TICKER_FIELD, in_game_row, in_game_seed_document,
                                     in_game_update, now_iso)
from market_pipeline.update_manipulator import (compute_manipulator, publish_manipulator,
                                                read_manipulator)
from market_pipeline.upsert import document_id_for, run_in_batches, tally

logger = logging.getLogger(__name__)

SKIPPED = "skipped"


def seed_market(settings: Settings, store: DocumentStore, sleep=time.sleep) -> Tuple[str, dict]:
    """Create catalog tickers that are missing; existing ones stay as they are."""
    settings.require(*IN_GAME_FIELDS)
    ref = settings.in_game
    existing = {d.get(TICKER_FIELD) for d in store.list_documents(ref)}
    now = now_iso()

    def _one(entry) -> str:
        ticker, name, category, price = entry
        if ticker in existing:
            return SKIPPED
        try:
            store.create_document(ref, in_game_seed_document(ticker, name, category, price, now),
                                  document_id=document_id_for(ticker))
        except DocumentExistsError:
            return SKIPPED
        logger.info(f"Seeded {ticker} at {price}")
        return "created"

    outcomes = run_in_batches(IN_GAME_CATALOG, _one, settings.batch_size, settings.batch_delay, sleep=sleep)
    for (ticker, *_), _, error in outcomes:
        if error is not None:
            logger.error(f"Failed to seed {ticker}: {error}")
    counts = tally(outcomes)
    details = {
        "total": len(IN_GAME_CATALOG),
        "created": counts["created"],
        "skipped": counts.get(SKIPPED, 0),
        "failed": counts["failed"],
    }
    return f"Seeded {details['created']} in-game stocks", details


def load_stocks(store: DocumentStore, settings: Settings) -> pd.DataFrame:
    """In-game documents as a typed frame (id, ticker, name, category, price, last_change)."""
    rows = [in_game_row(d) for d in store.list_documents(settings.in_game)]
    return pd.DataFrame(rows, columns=["id", "ticker", "name", "category", "price", "last_change"])


def apply_to_market(settings: Settings, store: DocumentStore, manipulator: float,
                    sleep=time.sleep) -> dict:
    """Move every priced in-game stock by manipulator percent and write it back."""
    stocks = load_stocks(store, settings)
    moved = apply_manipulator(stocks, manipulator)
    to_write = moved[~moved["skipped"]].to_dict("records")
    now = now_iso()

    def _one(row) -> str:
        store.update_document(settings.in_game, row["id"],
                              in_game_update(row["new_price"], row["last_change"], now))
        return "updated"

    outcomes = run_in_batches(to_write, _one, settings.batch_size, settings.batch_delay, sleep=sleep)
    failures = []
    for row, _, error in outcomes:
        if error is not None:
            logger.error(f"Failed to update stock {row['id']}: {error}")
            failures.append({"id": row["id"], "error": str(error)})
    counts = tally(outcomes)
    for ticker in moved.loc[moved["skipped"], "ticker"]:
        logger.warning(f"Skipping {ticker}: price is missing or not numeric")
    logger.info(f"Updated {counts['updated']} of {len(moved)} stocks")
    return {
        "manipulator": manipulator,
        "total": len(moved),
        "updated": counts["updated"],
        "skipped": int(moved["skipped"].sum()),
        "failed": counts["failed"],
        "errors": failures,
    }


def update_market(settings: Settings, store: DocumentStore, sleep=time.sleep) -> Tuple[str, dict]:
    settings.require(*IN_GAME_FIELDS, *MANIPULATOR_FIELDS)
    manipulator = read_manipulator(store, settings)
    details = apply_to_market(settings, store, manipulator, sleep=sleep)
    return f"Applied manipulator {manipulator} to {details['updated']} in-game stocks", details


def run_market_cycle(settings: Settings, store: DocumentStore, sleep=time.sleep) -> Tuple[str, dict]:
    """Recompute the manipulator from real-world data, then move the market by it."""
    settings.require(*REAL_WORLD_FIELDS, *MANIPULATOR_FIELDS, *IN_GAME_FIELDS)
    result = compute_manipulator(store, settings)
    publish_manipulator(store, settings, result)
    market = apply_to_market(settings, store, result["manipulator"], sleep=sleep)
    return (f"Manipulator {result['manipulator']} applied to {market['updated']} in-game stocks",
            {"manipulator": result, "market": market})


def load_market_snapshot(store: DocumentStore, settings: Settings) -> dict:
    """What the dashboard shows: manipulator doc, real-world changes, in-game stocks."""
    manipulator = store.get_document(settings.manipulator, settings.manipulator_document_id)
    changes = valid_changes(store.list_documents(settings.real_world))
    return {
        "manipulator": manipulator,
        "changes": changes.sort_values(),
        "stocks": load_stocks(store, settings).sort_values("ticker").reset_index(drop=True),
    }
