# market_pipeline/update_manipulator.py
# Purpose: read the real-world collection, average the change percentages,
#          turn that into the manipulator and write it to the singleton doc.

import logging
from typing import Tuple

from market_pipeline.config import MANIPULATOR_FIELDS, REAL_WORLD_FIELDS, Settings
from market_pipeline.document_store import DocumentStore
from market_pipeline.errors import NoValidDataError
from market_pipeline.market_compute import (calculate_manipulator, manipulator_tier,
                                            mean_change, valid_changes)
from market_pipeline.records import manipulator_document, manipulator_value, now_iso

logger = logging.getLogger(__name__)


def compute_manipulator(store: DocumentStore, settings: Settings) -> dict:
    """Real-world docs -> {average_change, manipulator, tier, documents_*}."""
    docs = store.list_documents(settings.real_world)
    if not docs:
        raise NoValidDataError("Real-world collection is empty")

    changes = valid_changes(docs)
    average = mean_change(changes)
    manipulator = calculate_manipulator(average)
    tier = manipulator_tier(average)
    logger.info(f"Average change {average:.4f}% over {len(changes)}/{len(docs)} documents "
                f"-> manipulator {manipulator} ({tier})")
    return {
        "average_change": round(average, 4),
        "manipulator": manipulator,
        "tier": tier,
        "documents_considered": len(docs),
        "documents_used": len(changes),
    }


def publish_manipulator(store: DocumentStore, settings: Settings, result: dict) -> str:
    """Single put on the fixed id, so concurrent runs cannot duplicate it."""
    doc_id = settings.manipulator_document_id
    store.put_document(settings.manipulator, doc_id, manipulator_document(
        result["manipulator"], result["average_change"], result["tier"],
        result["documents_used"], now_iso()))
    logger.info(f"Stored manipulator {result['manipulator']} at {settings.manipulator.path}/{doc_id}")
    return doc_id


def read_manipulator(store: DocumentStore, settings: Settings) -> float:
    """Current manipulator as a float; NoValidDataError if none is stored."""
    doc = store.get_document(settings.manipulator, settings.manipulator_document_id)
    value = manipulator_value(doc)
    if value is None:
        raise NoValidDataError(
            f"No manipulator value stored at {settings.manipulator.path}/{settings.manipulator_document_id}")
    return value


def update_manipulator(settings: Settings, store: DocumentStore) -> Tuple[str, dict]:
    settings.require(*REAL_WORLD_FIELDS, *MANIPULATOR_FIELDS)
    result = compute_manipulator(store, settings)
    publish_manipulator(store, settings, result)
    return f"Manipulator updated to {result['manipulator']}", result
