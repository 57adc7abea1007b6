"""Tests for the source adapters and their shared helpers."""

from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest
import respx

from bullion_rates.core.exceptions import (
    AdapterInstrumentNotFound,
    AdapterMalformedPayload,
    AdapterTimeout,
    SourceError,
)
from bullion_rates.sources.base import (
    first_number,
    match_instrument,
    parse_rate,
    split_ambiguous,
)
from bullion_rates.sources.generic import GenericFeedAdapter
from bullion_rates.sources.stream import StreamFeedAdapter, extract_payload
from bullion_rates.sources.tabular import TabularFeedAdapter, parse_rows

TABULAR_URL = "https://feed.test/tabular"
STREAM_URL = "https://feed.test/stream"
GENERIC_URL = "https://feed.test/custom"


# --- Fixtures ---


@pytest.fixture
async def tabular(tabular_source):
    adapter = TabularFeedAdapter(tabular_source)
    yield adapter
    await adapter.close()


@pytest.fixture
async def stream(stream_source):
    adapter = StreamFeedAdapter(stream_source)
    yield adapter
    await adapter.close()


@pytest.fixture
async def generic(generic_source):
    adapter = GenericFeedAdapter(generic_source)
    yield adapter
    await adapter.close()


# --- Helpers ---


class TestParseRate:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("166685", Decimal("166685")),
            ("1,68,390.50", Decimal("168390.50")),
            (168.39, Decimal("168.39")),
            (" 75.5 ", Decimal("75.5")),
        ],
    )
    def test_accepts_positive_numbers(self, raw, expected):
        assert parse_rate(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "-", "0", "-5", "abc", True, "inf"])
    def test_rejects_unusable_values(self, raw):
        assert parse_rate(raw) is None


class TestAmbiguousUnits:
    def test_large_values_are_per_kg(self):
        assert split_ambiguous(Decimal("168390")) == (Decimal("168.39"), Decimal("168390"))

    def test_small_values_are_per_gram(self):
        per_gram, per_kg = split_ambiguous(Decimal("168.39"))
        assert per_gram == Decimal("168.39")
        assert per_kg == Decimal("168390")

    def test_first_number(self):
        assert first_number("Silver: Rs 1,68,390 /kg") == Decimal("168390")
        assert first_number("no digits here") is None


class TestMatchInstrument:
    rows = [
        {"id": "2965", "name": "Silver Mini"},
        {"id": "2966", "name": "Silver 999"},
        {"id": "3000", "name": "Silver 999 Spot"},
    ]

    def test_id_wins(self):
        assert match_instrument(self.rows, "2966", "something else")["id"] == "2966"

    def test_exact_name_before_substring(self):
        assert match_instrument(self.rows, None, "silver 999")["id"] == "2966"

    def test_substring_fallback(self):
        assert match_instrument(self.rows, None, "spot")["id"] == "3000"

    def test_mini_skipped_unless_requested(self):
        assert match_instrument(self.rows, "2965", None) is None
        assert match_instrument(self.rows, None, "Silver Mini")["id"] == "2965"

    def test_missing(self):
        assert match_instrument(self.rows, "9999", "Gold") is None


# --- Tabular ---


class TestTabularFeedAdapter:
    def test_parse_rows_skips_short_lines(self):
        rows = parse_rows("header only\n2966\tSilver 999\t-\t1\t2\t3\tInStock\n")
        assert len(rows) == 1
        assert rows[0]["ask"] == "1"

    def test_parse_rows_space_delimited(self):
        rows = parse_rows("2966   Silver 999   -   166685   168779   165330   InStock")
        assert rows[0]["name"] == "Silver 999"

    @respx.mock
    async def test_reads_ask_per_kg(self, tabular, tabular_body):
        respx.get(TABULAR_URL).mock(return_value=httpx.Response(200, text=tabular_body))
        reading = await tabular.fetch()
        assert reading.rate_per_gram == Decimal("166.69")
        assert reading.rate_per_kg == Decimal("166685")
        assert reading.usd_inr_rate == Decimal("89.25")
        assert reading.source_name == "Tabular"

    @respx.mock
    async def test_falls_back_to_high_then_bid(self, tabular):
        body = "2966\tSilver 999\t150000\t-\t-\t140000\tInStock\n"
        respx.get(TABULAR_URL).mock(return_value=httpx.Response(200, text=body))
        reading = await tabular.fetch()
        assert reading.rate_per_kg == Decimal("150000")

    @respx.mock
    async def test_no_usable_price(self, tabular):
        body = "2966\tSilver 999\t-\t-\t-\t-\tClosed\n"
        respx.get(TABULAR_URL).mock(return_value=httpx.Response(200, text=body))
        with pytest.raises(AdapterMalformedPayload):
            await tabular.fetch()

    @respx.mock
    async def test_instrument_missing(self, tabular):
        body = "1\tGold 995\t-\t7000000\t7100000\t6900000\tInStock\n"
        respx.get(TABULAR_URL).mock(return_value=httpx.Response(200, text=body))
        with pytest.raises(AdapterInstrumentNotFound) as exc_info:
            await tabular.fetch()
        assert exc_info.value.context["instrument_id"] == "2966"

    @respx.mock
    async def test_empty_body(self, tabular):
        respx.get(TABULAR_URL).mock(return_value=httpx.Response(200, text=""))
        with pytest.raises(AdapterMalformedPayload):
            await tabular.fetch()

    @respx.mock
    async def test_http_error_status(self, tabular):
        respx.get(TABULAR_URL).mock(return_value=httpx.Response(503))
        with pytest.raises(AdapterMalformedPayload) as exc_info:
            await tabular.fetch()
        assert exc_info.value.context["status_code"] == 503

    @respx.mock
    async def test_timeout(self, tabular):
        respx.get(TABULAR_URL).mock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(AdapterTimeout):
            await tabular.fetch()

    @respx.mock
    async def test_connection_error(self, tabular):
        respx.get(TABULAR_URL).mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(SourceError):
            await tabular.fetch()

    def test_hard_timeout_caps_caller(self, tabular):
        assert tabular.effective_timeout(30) == 5.0
        assert tabular.effective_timeout(2) == 2
        assert tabular.effective_timeout(None) == 5.0

    @respx.mock
    async def test_sends_no_cache_headers(self, tabular, tabular_body):
        route = respx.get(TABULAR_URL).mock(return_value=httpx.Response(200, text=tabular_body))
        await tabular.fetch()
        assert route.calls.last.request.headers["Cache-Control"].startswith("no-cache")


# --- Stream ---


class TestStreamFeedAdapter:
    def test_extract_newest_event(self, stream_body):
        payload = extract_payload(stream_body)
        assert payload["prices"][0]["ask"] == "161495"

    def test_extract_bare_json_line(self):
        assert extract_payload('noise\n{"rate": 1}\n') == {"rate": 1}

    def test_extract_nothing(self):
        assert extract_payload("event: ping\n\n") is None

    @respx.mock
    async def test_event_stream_prices(self, stream, stream_body):
        respx.get(STREAM_URL).mock(return_value=httpx.Response(200, text=stream_body))
        reading = await stream.fetch()
        assert reading.rate_per_gram == Decimal("161.50")
        assert reading.rate_per_kg == Decimal("161495")
        assert reading.usd_inr_rate == Decimal("89.30")

    @respx.mock
    async def test_plain_json_rate_per_gram(self, stream):
        respx.get(STREAM_URL).mock(
            return_value=httpx.Response(200, json={"ratePerGram": 168.39, "usdInrRate": 89.1})
        )
        reading = await stream.fetch()
        assert reading.rate_per_gram == Decimal("168.39")
        assert reading.usd_inr_rate == Decimal("89.1")

    @pytest.mark.parametrize("rate", [168390, 168.39])
    @respx.mock
    async def test_ambiguous_rate(self, stream, rate):
        respx.get(STREAM_URL).mock(return_value=httpx.Response(200, json={"rate": rate}))
        reading = await stream.fetch()
        assert reading.rate_per_gram == Decimal("168.39")

    @respx.mock
    async def test_bid_used_when_ask_missing(self, stream):
        body = {"prices": [{"id": "2966", "name": "Silver 999", "ask": "-", "bid": "150000"}]}
        respx.get(STREAM_URL).mock(return_value=httpx.Response(200, json=body))
        reading = await stream.fetch()
        assert reading.rate_per_gram == Decimal("150.00")

    @respx.mock
    async def test_instrument_missing(self, stream):
        body = {"prices": [{"id": "1", "name": "Gold 995", "ask": "7000000"}]}
        respx.get(STREAM_URL).mock(return_value=httpx.Response(200, json=body))
        with pytest.raises(AdapterInstrumentNotFound):
            await stream.fetch()

    @pytest.mark.parametrize(
        "payload", [{"ratePerGram": 0}, {"rate": "-"}, {"status": "ok"}]
    )
    @respx.mock
    async def test_unusable_payloads(self, stream, payload):
        respx.get(STREAM_URL).mock(return_value=httpx.Response(200, text=json.dumps(payload)))
        with pytest.raises(AdapterMalformedPayload):
            await stream.fetch()


# --- Generic ---


class TestGenericFeedAdapter:
    @respx.mock
    async def test_text_payload(self, generic):
        respx.get(GENERIC_URL).mock(
            return_value=httpx.Response(200, text="Silver today: Rs 1,68,390 per kg")
        )
        reading = await generic.fetch()
        assert reading.rate_per_gram == Decimal("168.39")
        assert reading.source_name == "Custom"

    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"ratePerGram": "170.10"}, Decimal("170.10")),
            ({"price": 170.5}, Decimal("170.50")),
            ({"rate": 171000}, Decimal("171.00")),
            ({"data": {"ratePerGram": 172}}, Decimal("172.00")),
            (173.25, Decimal("173.25")),
        ],
    )
    @respx.mock
    async def test_json_shapes(self, generic, payload, expected):
        respx.get(GENERIC_URL).mock(return_value=httpx.Response(200, json=payload))
        reading = await generic.fetch()
        assert reading.rate_per_gram == expected

    @pytest.mark.parametrize("body", ["[1, 2]", "no number", '{"rate": 0}', "0.001"])
    @respx.mock
    async def test_rejects(self, generic, body):
        respx.get(GENERIC_URL).mock(return_value=httpx.Response(200, text=body))
        with pytest.raises(AdapterMalformedPayload):
            await generic.fetch()
