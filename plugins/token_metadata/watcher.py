"""token_metadata.watcher – LedgerEvent -> RefreshTask transform.

Recognises ``print`` events whose value is a ``token-metadata-update``
notification and turns each into a :class:`~core.models.RefreshTask`.

Everything else on the ``print`` topic is ordinary traffic: foreign messages
are skipped silently and malformed notifications are logged at DEBUG and
dropped. :meth:`MetadataUpdateWatcher.process` never raises and keeps no
state, so re-processing an event always gives the same answer.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Mapping, Optional, Union

from pydantic import ValidationError

from core.clarity import ClarityParseError, parse_repr
from core.interfaces import Transform
from core.models import (
    NOTIFICATION_TAG,
    LedgerEvent,
    MetadataUpdateNotification,
    RefreshTask,
)

logger = logging.getLogger(__name__)

__all__ = ["MetadataUpdateWatcher", "decode_value"]

POLICIES = ("trust", "emitter")


def decode_value(value: Any) -> Optional[Mapping[str, Any]]:
    """Return the print value as a mapping, or None if it is not one.

    Accepts an already decoded mapping, a Clarity ``repr`` string, or the
    ``{"hex": ..., "repr": ...}`` wrapper served by Stacks APIs.
    """
    if isinstance(value, Mapping) and "repr" in value and "notification" not in value:
        value = value["repr"]
    if isinstance(value, str):
        try:
            value = parse_repr(value)
        except ClarityParseError:
            return None
    return value if isinstance(value, Mapping) else None


class MetadataUpdateWatcher(Transform):
    """Transform stage – yields one :class:`RefreshTask` per valid notification.

    ``contract_id_policy`` decides what happens when the payload's
    ``contract-id`` names a contract other than the one that printed it:
    ``"trust"`` (default) accepts them as announced, ``"emitter"`` drops them.
    """

    name = "MetadataUpdateWatcher"

    def __init__(self, *, contract_id_policy: str = "trust") -> None:
        if contract_id_policy not in POLICIES:
            raise ValueError(
                f"contract_id_policy must be one of {POLICIES}, got {contract_id_policy!r}"
            )
        self._policy = contract_id_policy

    # ------------------------------------------------------------------- #
    def process(self, event: Union[LedgerEvent, Mapping[str, Any], Any]) -> Optional[RefreshTask]:
        if not isinstance(event, LedgerEvent):
            if not isinstance(event, Mapping):
                return None
            try:
                event = LedgerEvent.model_validate(event)
            except ValidationError:
                return None

        if not event.is_print:
            return None

        value = decode_value(event.contract_event.value)
        if value is None or value.get("notification") != NOTIFICATION_TAG:
            return None

        try:
            notification = MetadataUpdateNotification.model_validate(dict(value))
        except (ValidationError, TypeError) as exc:
            # TypeError: unhashable token-class values trip the variant lookup
            reason = (
                "; ".join(err["msg"] for err in exc.errors())
                if isinstance(exc, ValidationError)
                else str(exc)
            )
            logger.debug(
                "Malformed %s from %s (tx %s): %s",
                NOTIFICATION_TAG,
                event.contract_event.contract_identifier,
                event.txid,
                reason,
            )
            return None

        emitter = event.contract_event.contract_identifier
        target = notification.payload.contract_id
        if self._policy == "emitter" and target != emitter:
            logger.debug("Ignoring notification from %s for foreign contract %s", emitter, target)
            return None

        return RefreshTask.from_notification(notification, event)

    # ------------------------------------------------------------------- #
    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[RefreshTask]:
        async for event in items:
            task = self.process(event)
            if task is None:
                continue
            logger.info(
                "Refresh %s %s%s",
                task.token_class.value,
                task.contract_id,
                f" tokens={list(task.token_ids)}" if task.token_ids else "",
            )
            yield task
