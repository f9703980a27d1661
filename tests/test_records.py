"""Tests for the string/number boundary in records."""

import math

import pytest

from market_pipeline.records import (DOCUMENT_ID, QuoteRecord, format_decimal, in_game_row,
                                     in_game_update, manipulator_value, parse_decimal,
                                     parse_percentage, real_world_document)


class TestParsing:
    @pytest.mark.parametrize("raw,expected", [
        ("12.50", 12.5), (" 7 ", 7.0), (3, 3.0), (2.25, 2.25), ("-0.4", -0.4),
    ])
    def test_parse_decimal(self, raw, expected):
        assert parse_decimal(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "abc", "1.2%", True, float("nan"), "inf", [], {}])
    def test_parse_decimal_rejects(self, raw):
        assert parse_decimal(raw) is None

    @pytest.mark.parametrize("raw,expected", [
        ("-1.99%", -1.99), ("3.5", 3.5), (" 0.5123% ", 0.5123), (1.5, 1.5),
    ])
    def test_parse_percentage(self, raw, expected):
        assert parse_percentage(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["%", "abc%", "1%%", None, ""])
    def test_parse_percentage_rejects(self, raw):
        assert parse_percentage(raw) is None


class TestDocuments:
    def test_real_world_document_fields(self):
        quote = QuoteRecord(ticker="SPY", name="SPDR S&P 500 ETF Trust", category="ETF",
                            price="500.10", change_amount="1.2", change_percentage="0.24%",
                            volume="1000", latest_trading_day="2026-10-15", raw_data="{}")
        doc = real_world_document(quote, "2026-10-16T00:00:00.000Z")
        assert doc["ticker_symbol"] == "SPY"
        assert "ticker" not in doc
        assert doc["last_updated"] == "2026-10-16T00:00:00.000Z"
        assert doc["source"] == "alphavantage"

    def test_in_game_row_types(self):
        row = in_game_row({DOCUMENT_ID: "nova", "ticker_symbol": "NOVA", "name": "Nova",
                           "category": "Technology", "price": "142.5", "last_change": "bad"})
        assert row["id"] == "nova"
        assert row["price"] == pytest.approx(142.5)
        assert row["last_change"] is None

    def test_in_game_update_is_string_encoded(self):
        fields = in_game_update(102.5, 2.5, "now")
        assert fields == {"price": "102.5", "last_change": "2.5", "last_updated": "now"}

    def test_format_decimal_rounds(self):
        assert format_decimal(102.499) == "102.5"
        assert format_decimal(3) == "3.0"
        assert format_decimal(-0.126) == "-0.13"

    def test_manipulator_value(self):
        assert manipulator_value({"manipulator": "1.75"}) == pytest.approx(1.75)
        assert manipulator_value({"manipulator": -2}) == pytest.approx(-2.0)
        assert manipulator_value({"manipulator": "x"}) is None
        assert manipulator_value(None) is None
        assert not math.isnan(manipulator_value({"manipulator": 0}))
