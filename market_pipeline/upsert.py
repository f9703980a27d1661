# market_pipeline/upsert.py
# Purpose: update-or-create keyed on ticker, and batched concurrent writes
#          with a short pause between batches to go easy on the store.

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Sequence, Tuple
from urllib.parse import quote

from market_pipeline.config import CollectionRef
from market_pipeline.document_store import DocumentStore
from market_pipeline.errors import DocumentExistsError, DuplicateDocumentError
from market_pipeline.records import DOCUMENT_ID, TICKER_FIELD

logger = logging.getLogger(__name__)

CREATED, UPDATED = "created", "updated"


def document_id_for(key: str) -> str:
    """Store id for a ticker: the ticker itself, percent-encoded ('BRK/B' -> 'BRK%2FB').

    Distinct tickers always get distinct ids.
    """
    if not key:
        raise ValueError("Cannot derive a document id from an empty key")
    return quote(key, safe="")


def upsert_by_key(store: DocumentStore, ref: CollectionRef, data: dict,
                  key_field: str = TICKER_FIELD) -> str:
    """Update the one document whose key_field matches, else create it.

    Returns "created" or "updated". More than one match is a data-integrity
    error and nothing is written.
    """
    key = data[key_field]
    existing = store.list_documents(ref, {key_field: key})
    if len(existing) > 1:
        ids = ", ".join(sorted(d[DOCUMENT_ID] for d in existing))
        raise DuplicateDocumentError(f"{len(existing)} documents share {key_field}={key!r} ({ids})")
    if existing:
        store.update_document(ref, existing[0][DOCUMENT_ID], data)
        return UPDATED

    document_id = document_id_for(key)
    try:
        store.create_document(ref, data, document_id=document_id)
        return CREATED
    except DocumentExistsError:
        # another writer created it between our list and create
        current = store.get_document(ref, document_id)
        if current is None or current.get(key_field) != key:
            held_by = None if current is None else current.get(key_field)
            raise DuplicateDocumentError(
                f"Document {document_id!r} is held by {key_field}={held_by!r}, not {key!r}") from None
        store.update_document(ref, document_id, data)
        return UPDATED


def run_in_batches(items: Sequence, handle: Callable, batch_size: int = 5,
                   delay: float = 0.1, sleep=time.sleep) -> List[Tuple[object, object, Exception]]:
    """Run handle(item) concurrently within each batch, batches one after another.

    Returns (item, result, error) per item in input order; one item's error
    never stops the others.
    """
    outcomes = []
    with ThreadPoolExecutor(max_workers=max(1, batch_size)) as pool:
        for start in range(0, len(items), batch_size):
            batch = items[start:start + batch_size]
            futures = [pool.submit(handle, item) for item in batch]
            for item, future in zip(batch, futures):
                try:
                    outcomes.append((item, future.result(), None))
                except Exception as e:
                    outcomes.append((item, None, e))
            if start + batch_size < len(items) and delay > 0:
                sleep(delay)
    return outcomes


def tally(outcomes: Iterable[Tuple[object, object, Exception]]) -> dict:
    """Count results by value plus failures."""
    counts = {CREATED: 0, UPDATED: 0, "failed": 0}
    for _, result, error in outcomes:
        if error is not None:
            counts["failed"] += 1
        else:
            counts[result] = counts.get(result, 0) + 1
    return counts
