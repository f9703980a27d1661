"""Tests for the upsert writer and batching."""

from unittest.mock import Mock

import pytest

from market_pipeline.config import CollectionRef
from market_pipeline.errors import DocumentExistsError, DuplicateDocumentError
from market_pipeline.records import DOCUMENT_ID
from market_pipeline.upsert import document_id_for, run_in_batches, tally, upsert_by_key

REF = CollectionRef("markets", "real_world")


class TestUpsertByKey:
    def test_twice_gives_one_document(self, store):
        """Test that the same ticker upserted twice is updated, not duplicated."""
        data = {"ticker_symbol": "SPY", "price": "500"}
        assert upsert_by_key(store, REF, data) == "created"
        assert upsert_by_key(store, REF, dict(data, price="501")) == "updated"
        docs = store.list_documents(REF, {"ticker_symbol": "SPY"})
        assert len(docs) == 1
        assert docs[0]["price"] == "501"
        assert docs[0][DOCUMENT_ID] == "SPY"

    def test_updates_existing_document_under_its_own_id(self, store):
        store.create_document(REF, {"ticker_symbol": "QQQ", "price": "1"}, document_id="legacy-id")
        assert upsert_by_key(store, REF, {"ticker_symbol": "QQQ", "price": "2"}) == "updated"
        assert store.get_document(REF, "legacy-id")["price"] == "2"
        assert store.get_document(REF, "QQQ") is None

    def test_duplicates_are_rejected(self, store):
        store.create_document(REF, {"ticker_symbol": "SPY", "price": "1"}, document_id="a")
        store.create_document(REF, {"ticker_symbol": "SPY", "price": "1"}, document_id="b")
        with pytest.raises(DuplicateDocumentError):
            upsert_by_key(store, REF, {"ticker_symbol": "SPY", "price": "9"})
        assert {d["price"] for d in store.list_documents(REF)} == {"1"}

    def test_lost_create_race_becomes_update(self):
        store = Mock()
        store.list_documents.return_value = []
        store.create_document.side_effect = DocumentExistsError("taken")
        store.get_document.return_value = {"ticker_symbol": "SPY", DOCUMENT_ID: "SPY"}
        assert upsert_by_key(store, REF, {"ticker_symbol": "SPY"}) == "updated"
        store.update_document.assert_called_once_with(REF, "SPY", {"ticker_symbol": "SPY"})

    def test_taken_id_held_by_another_ticker_is_not_overwritten(self):
        store = Mock()
        store.list_documents.return_value = []
        store.create_document.side_effect = DocumentExistsError("taken")
        store.get_document.return_value = {"ticker_symbol": "OTHER", DOCUMENT_ID: "SPY"}
        with pytest.raises(DuplicateDocumentError):
            upsert_by_key(store, REF, {"ticker_symbol": "SPY"})
        store.update_document.assert_not_called()

    def test_similar_tickers_keep_separate_documents(self, store):
        """Test that tickers differing only in punctuation or case never share a document."""
        for ticker in ("BRK.B", "BRK-B", "brk.b"):
            assert upsert_by_key(store, REF, {"ticker_symbol": ticker, "price": ticker}) == "created"
        docs = store.list_documents(REF)
        assert sorted(d["ticker_symbol"] for d in docs) == ["BRK-B", "BRK.B", "brk.b"]
        assert all(d["price"] == d["ticker_symbol"] for d in docs)

    @pytest.mark.parametrize("key,expected", [
        ("SPY", "SPY"), ("BRK.B", "BRK.B"), ("BRK-B", "BRK-B"), ("^GSPC", "%5EGSPC"),
        ("A/B", "A%2FB"), ("50%", "50%25"),
    ])
    def test_document_id_for(self, key, expected):
        assert document_id_for(key) == expected

    def test_document_id_for_empty_key(self):
        with pytest.raises(ValueError):
            document_id_for("")


class TestRunInBatches:
    def test_failures_are_isolated(self):
        def handle(n):
            if n == 3:
                raise RuntimeError("bad record")
            return "updated"

        outcomes = run_in_batches(list(range(7)), handle, batch_size=3, delay=0)
        assert [item for item, _, _ in outcomes] == list(range(7))
        assert isinstance(outcomes[3][2], RuntimeError)
        assert tally(outcomes) == {"created": 0, "updated": 6, "failed": 1}

    def test_sleeps_between_batches_only(self):
        sleep = Mock()
        run_in_batches(list(range(7)), lambda n: "created", batch_size=3, delay=0.1, sleep=sleep)
        assert sleep.call_count == 2
        sleep.assert_called_with(0.1)

    def test_empty(self):
        sleep = Mock()
        assert run_in_batches([], lambda n: n, batch_size=5, delay=0.1, sleep=sleep) == []
        sleep.assert_not_called()
