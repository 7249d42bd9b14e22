# plugins/token_metadata/sinks.py
"""
Refresh task sinks
==================

* RefreshQueueSink – appends every task to the ``refresh_tasks`` SQLite table
  that indexer workers drain. Duplicates are stored as-is; coalescing repeated
  refreshes of one contract is the consumer's job.
* WebhookSink – POSTs the task's wire form to an indexer endpoint.
* LogSink – logs each task, handy for dry runs.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from core.infra.db import Database
from core.infra.http import HttpClient
from core.interfaces import Sink
from core.models import RefreshTask

logger = logging.getLogger(__name__)


class RefreshQueueSink(Sink):
    name = "RefreshQueueSink"

    TABLE = "refresh_tasks"

    def __init__(self, db_path: str = "watcher.db"):
        self.db = Database(db_path)

    async def __aenter__(self):
        await self.db.connect()
        return self

    async def __aexit__(self, *_):
        await self.db.close()

    async def handle(self, item: RefreshTask) -> None:
        if not isinstance(item, RefreshTask):
            logger.debug(f"Ignoring non-task item: {type(item).__name__}")
            return

        row_id = await self.db.insert(
            self.TABLE,
            {
                "contract_id": item.contract_id,
                "token_class": item.token_class.value,
                "token_ids": item.token_ids_json(),
                "emitter": item.emitter,
                "txid": item.txid,
                "event_index": item.event_index,
                "block_height": item.block_height,
            },
        )
        logger.debug(f"Queued refresh #{row_id} for {item.contract_id}")


class WebhookSink(Sink):
    name = "WebhookSink"

    def __init__(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        max_retries: int = 5,
        http: Optional[HttpClient] = None,
    ):
        self.url = url
        self._http = http or HttpClient(max_retries=max_retries, default_headers=headers)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        if hasattr(self._http, "close"):
            await self._http.close()

    async def handle(self, item: RefreshTask) -> None:
        if not isinstance(item, RefreshTask):
            return
        await self._http.post_json(self.url, item.to_wire())
        logger.debug(f"Delivered refresh for {item.contract_id} to {self.url}")


class LogSink(Sink):
    name = "LogSink"

    def __init__(self, level: str = "INFO"):
        self._level = logging.getLevelName(level.upper())
        if not isinstance(self._level, int):
            raise ValueError(f"Unknown log level: {level}")

    async def handle(self, item: RefreshTask) -> None:
        if isinstance(item, RefreshTask):
            logger.log(self._level, "refresh task %s", item.to_wire())
