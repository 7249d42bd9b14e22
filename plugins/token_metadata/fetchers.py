"""token_metadata.fetchers – ledger event sources.

* :class:`NodeEventFetcher`   – live websocket feed from a node or relay
* :class:`ContractLogFetcher` – replays contract ``print`` logs from a Stacks API
* :class:`JsonLinesFetcher`   – replays events stored one JSON object per line

Sources only translate upstream shapes into :class:`~core.models.LedgerEvent`;
deciding which events matter is the watcher's job.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional

from pydantic import ValidationError

from core.infra.http import HttpClient
from core.infra.ws import WebSocketClient
from core.interfaces import Fetcher
from core.models import CONTRACT_EVENT, PRINT_TOPIC, LedgerEvent

logger = logging.getLogger(__name__)

__all__ = ["NodeEventFetcher", "ContractLogFetcher", "JsonLinesFetcher", "events_from_message"]


# --------------------------------------------------------------------------- #
def _to_event(obj: Any, block_height: Optional[int] = None) -> Optional[LedgerEvent]:
    if not isinstance(obj, dict) or obj.get("type") != CONTRACT_EVENT:
        return None
    if block_height is not None and "block_height" not in obj:
        obj = {**obj, "block_height": block_height}
    try:
        return LedgerEvent.model_validate(obj)
    except ValidationError as exc:
        logger.debug("Skipping undecodable contract event: %s", exc.errors()[0]["msg"])
        return None


def events_from_message(message: Any) -> Iterator[LedgerEvent]:
    """Extract contract events from one decoded feed message.

    A message is a single event, a list of events, or a block envelope
    ``{"block_height": ..., "events": [...]}`` as posted by the node's
    ``/new_block`` observer. Nested lists are flattened in order.
    """
    pending: List[Any] = [message]
    while pending:
        item = pending.pop()
        if isinstance(item, list):
            pending.extend(reversed(item))
            continue
        if not isinstance(item, dict):
            continue

        if isinstance(item.get("events"), list):
            height = item.get("block_height")
            for obj in item["events"]:
                event = _to_event(obj, height if isinstance(height, int) else None)
                if event is not None:
                    yield event
            continue

        event = _to_event(item)
        if event is not None:
            yield event


# --------------------------------------------------------------------------- #
class NodeEventFetcher(Fetcher):
    """Transform stage 1 – live contract events from a websocket feed."""

    name = "NodeEventFetcher"

    def __init__(
        self,
        *,
        url: str,
        subscribe: Optional[List[Dict[str, Any]]] = None,
        heartbeat_interval: float = 30.0,
        reconnect_delay: float = 5.0,
        max_reconnect_attempts: int = 10,
        client: Optional[WebSocketClient] = None,
    ) -> None:
        self._client = client or WebSocketClient(
            url,
            heartbeat_interval=heartbeat_interval,
            reconnect_delay=reconnect_delay,
            max_reconnect_attempts=max_reconnect_attempts,
            subscribe=subscribe,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        await self._client.disconnect()

    async def fetch(self) -> AsyncIterator[LedgerEvent]:
        async for raw in self._client.messages():
            try:
                message = json.loads(raw)
            except (TypeError, ValueError, RecursionError):
                logger.debug("Skipping non-JSON frame (%d chars)", len(raw or ""))
                continue
            for event in events_from_message(message):
                yield event
        logger.info("Event feed exhausted")


# --------------------------------------------------------------------------- #
class ContractLogFetcher(Fetcher):
    """Transform stage 1 – historic ``print`` logs of selected contracts.

    Pages ``/extended/v1/contract/{id}/events`` and yields each contract's
    logs oldest first. The API returns newest first, so a contract's pages
    are collected before anything is yielded.
    """

    name = "ContractLogFetcher"

    EVENTS_PATH = "/extended/v1/contract/{contract_id}/events"

    def __init__(
        self,
        *,
        api_url: str = "https://api.hiro.so",
        contracts: List[str],
        page_size: int = 50,
        max_pages: Optional[int] = None,
        max_retries: int = 5,
        http: Optional[HttpClient] = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._contracts = list(contracts)
        self._page_size = page_size
        self._max_pages = max_pages
        self._http = http or HttpClient(max_retries=max_retries)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        if hasattr(self._http, "close"):
            await self._http.close()

    @staticmethod
    def _to_ledger_event(entry: Dict[str, Any]) -> Optional[LedgerEvent]:
        if entry.get("event_type") != "smart_contract_log":
            return None
        log = entry.get("contract_log") or {}
        return _to_event(
            {
                "type": CONTRACT_EVENT,
                "txid": entry.get("tx_id"),
                "event_index": entry.get("event_index"),
                "contract_event": {
                    "contract_identifier": log.get("contract_id"),
                    "topic": log.get("topic"),
                    "value": log.get("value"),
                },
            }
        )

    async def _contract_events(self, contract_id: str) -> List[LedgerEvent]:
        url = self._api_url + self.EVENTS_PATH.format(contract_id=contract_id)
        collected: List[LedgerEvent] = []
        offset = 0
        page = 0
        while self._max_pages is None or page < self._max_pages:
            body = await self._http.get_json(url, params={"limit": self._page_size, "offset": offset})
            results = (body or {}).get("results") or []
            for entry in results:
                event = self._to_ledger_event(entry)
                if event is not None and event.contract_event.topic == PRINT_TOPIC:
                    collected.append(event)
            page += 1
            offset += len(results)
            if len(results) < self._page_size:
                break
        collected.reverse()
        return collected

    async def fetch(self) -> AsyncIterator[LedgerEvent]:
        logger.info("ContractLogFetcher – %d contracts", len(self._contracts))
        for contract_id in self._contracts:
            events = await self._contract_events(contract_id)
            logger.info("%s – %d print events", contract_id, len(events))
            for event in events:
                yield event


# --------------------------------------------------------------------------- #
class JsonLinesFetcher(Fetcher):
    """Transform stage 1 – events recorded one JSON document per line."""

    name = "JsonLinesFetcher"

    def __init__(self, *, path: str) -> None:
        self._path = Path(path)

    async def fetch(self) -> AsyncIterator[LedgerEvent]:
        with self._path.open(encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    message = json.loads(line)
                except (ValueError, RecursionError) as exc:
                    logger.warning("%s:%d – invalid JSON: %s", self._path, lineno, exc)
                    continue
                for event in events_from_message(message):
                    yield event
