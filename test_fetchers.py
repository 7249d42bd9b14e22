"""
Tests for the ledger event sources.
"""

import asyncio
import json

from core.infra.http import HttpClient
from core.infra.ws import WebSocketClient
from plugins.token_metadata.fetchers import (
    ContractLogFetcher,
    JsonLinesFetcher,
    NodeEventFetcher,
    events_from_message,
)

CONTRACT = "SP2X0TZ59D5SZ8ACQ6YMCHHNR2ZN51Z32E2CJ173.the-explorer-guild"


def contract_event(topic="print", value=None, **extra):
    event = {
        "type": "contract_event",
        "contract_event": {"contract_identifier": CONTRACT, "topic": topic, "value": value},
    }
    event.update(extra)
    return event


async def collect(fetcher):
    return [event async for event in fetcher.fetch()]


# --------------------------------------------------------------------------- #
# Message shapes
# --------------------------------------------------------------------------- #


def test_single_event_message():
    events = list(events_from_message(contract_event(txid="0x01", event_index=3)))
    assert len(events) == 1
    assert events[0].txid == "0x01"
    assert events[0].event_index == 3
    assert events[0].contract_event.contract_identifier == CONTRACT


def test_block_envelope_stamps_height_and_skips_other_event_types():
    message = {
        "block_height": 120,
        "events": [
            {"type": "stx_transfer_event", "stx_transfer_event": {"amount": "1"}},
            contract_event(value={"a": 1}),
            contract_event(topic="transfer", block_height=99),
        ],
    }
    events = list(events_from_message(message))

    assert [e.contract_event.topic for e in events] == ["print", "transfer"]
    assert [e.block_height for e in events] == [120, 99]


def test_list_message_and_junk():
    assert len(list(events_from_message([contract_event(), contract_event()]))) == 2
    assert list(events_from_message("text")) == []
    assert list(events_from_message({"type": "contract_event"})) == []
    assert list(events_from_message({"events": [None, 5]})) == []


def test_nested_lists_are_flattened_in_order():
    message = [contract_event(txid="0x01"), [[contract_event(txid="0x02")], contract_event(txid="0x03")]]
    assert [e.txid for e in events_from_message(message)] == ["0x01", "0x02", "0x03"]

    deep = [contract_event(txid="0x04")]
    for _ in range(5000):
        deep = [deep]
    assert [e.txid for e in events_from_message(deep)] == ["0x04"]


# --------------------------------------------------------------------------- #
# Websocket feed
# --------------------------------------------------------------------------- #


class FakeSocket:
    def __init__(self, frames):
        self.frames = frames
        self.disconnected = False

    async def messages(self):
        for frame in self.frames:
            yield frame

    async def disconnect(self):
        self.disconnected = True


def test_node_event_fetcher_decodes_frames_in_order():
    frames = [
        json.dumps(contract_event(txid="0x01")),
        "not json",
        "[" * 100000,
        json.dumps({"block_height": 5, "events": [contract_event(txid="0x02"), contract_event(txid="0x03")]}),
        json.dumps({"jsonrpc": "2.0", "result": True}),
    ]
    socket = FakeSocket(frames)

    async def run():
        async with NodeEventFetcher(url="ws://unused", client=socket) as fetcher:
            return await collect(fetcher)

    events = asyncio.run(run())

    assert [e.txid for e in events] == ["0x01", "0x02", "0x03"]
    assert socket.disconnected


def test_websocket_backoff_doubles():
    client = WebSocketClient("ws://unused", reconnect_delay=2.0)
    assert [client.backoff_delay(n) for n in (1, 2, 3, 4)] == [2.0, 4.0, 8.0, 16.0]


# --------------------------------------------------------------------------- #
# Stacks API replay
# --------------------------------------------------------------------------- #


class FakeHttp:
    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    async def get_json(self, url, params=None, **_):
        self.calls.append((url, dict(params or {})))
        return self.pages[len(self.calls) - 1]


def api_log(tx_id, repr_value="u1", topic="print", event_type="smart_contract_log"):
    return {
        "event_index": 0,
        "event_type": event_type,
        "tx_id": tx_id,
        "contract_log": {"contract_id": CONTRACT, "topic": topic, "value": {"hex": "0x01", "repr": repr_value}},
    }


def test_contract_log_fetcher_pages_and_yields_oldest_first():
    http = FakeHttp([
        {"results": [api_log("0x04"), api_log("0x03"), api_log("0x02", event_type="stx_asset")]},
        {"results": [api_log("0x01", topic="other")]},
    ])
    fetcher = ContractLogFetcher(api_url="https://api.example/", contracts=[CONTRACT], page_size=3, http=http)

    events = asyncio.run(collect(fetcher))

    assert [e.txid for e in events] == ["0x03", "0x04"]
    assert events[0].contract_event.value == {"hex": "0x01", "repr": "u1"}
    assert http.calls == [
        (f"https://api.example/extended/v1/contract/{CONTRACT}/events", {"limit": 3, "offset": 0}),
        (f"https://api.example/extended/v1/contract/{CONTRACT}/events", {"limit": 3, "offset": 3}),
    ]


def test_contract_log_fetcher_respects_max_pages():
    full_page = {"results": [api_log("0x09"), api_log("0x08")]}
    http = FakeHttp([full_page, full_page, full_page])
    fetcher = ContractLogFetcher(contracts=[CONTRACT], page_size=2, max_pages=1, http=http)

    events = asyncio.run(collect(fetcher))

    assert len(http.calls) == 1
    assert [e.txid for e in events] == ["0x08", "0x09"]


def test_http_retry_after_parsing():
    assert HttpClient.parse_retry_after("7") == 7.0
    assert HttpClient.parse_retry_after(" 0.5 ") == 0.5
    assert HttpClient.parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
    assert HttpClient.parse_retry_after(None) is None


def test_http_backoff_is_capped():
    client = HttpClient(base_delay=1.0, max_delay=10.0)
    assert client.backoff_seconds(1, retry_after=3.0) == 3.0
    assert client.backoff_seconds(1, retry_after=300.0) == 10.0
    assert 10.0 <= client.backoff_seconds(8) <= 11.0


# --------------------------------------------------------------------------- #
# JSON lines replay
# --------------------------------------------------------------------------- #


def test_json_lines_fetcher_skips_blank_and_invalid_lines(tmp_path):
    path = tmp_path / "events.jsonl"
    path.write_text(
        "\n".join([
            json.dumps(contract_event(txid="0x01")),
            "",
            "{broken",
            json.dumps({"block_height": 7, "events": [contract_event(txid="0x02")]}),
        ]),
        encoding="utf-8",
    )

    events = asyncio.run(collect(JsonLinesFetcher(path=str(path))))

    assert [(e.txid, e.block_height) for e in events] == [("0x01", None), ("0x02", 7)]


def test_json_lines_fetcher_survives_deeply_nested_line(tmp_path):
    path = tmp_path / "events.jsonl"
    path.write_text("[" * 100000 + "\n" + json.dumps(contract_event(txid="0x01")), encoding="utf-8")

    events = asyncio.run(collect(JsonLinesFetcher(path=str(path))))

    assert [e.txid for e in events] == ["0x01"]
