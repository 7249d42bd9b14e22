"""Token metadata plugin package – sources, watcher, sinks.

The classes below are what *pipeline_orchestrator* resolves from YAML as
``token_metadata.<ClassName>``:

* :class:`NodeEventFetcher`, :class:`ContractLogFetcher`, :class:`JsonLinesFetcher`
  – yield :class:`~core.models.LedgerEvent`
* :class:`MetadataUpdateWatcher` – LedgerEvent -> :class:`~core.models.RefreshTask`
* :class:`RefreshQueueSink`, :class:`WebhookSink`, :class:`LogSink` – deliver tasks
"""

from .fetchers import ContractLogFetcher, JsonLinesFetcher, NodeEventFetcher  # noqa: F401
from .sinks import LogSink, RefreshQueueSink, WebhookSink  # noqa: F401
from .watcher import MetadataUpdateWatcher  # noqa: F401
