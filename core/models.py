"""
Core data models for the token metadata watcher.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator, model_validator


NOTIFICATION_TAG = "token-metadata-update"
PRINT_TOPIC = "print"
CONTRACT_EVENT = "contract_event"
MAX_TOKEN_IDS = 100


class TokenClass(str, Enum):
    FT = "ft"
    NFT = "nft"
    SFT = "sft"  # reserved


# --------------------------------------------------------------------------- #
# Inbound: ledger events
# --------------------------------------------------------------------------- #


class ContractEvent(BaseModel):
    """The `contract_event` body of a ledger event."""

    model_config = ConfigDict(extra="ignore")

    contract_identifier: StrictStr
    topic: StrictStr
    value: Any = None


class LedgerEvent(BaseModel):
    """A transaction event as delivered by a node event feed."""

    model_config = ConfigDict(extra="ignore")

    type: StrictStr
    contract_event: Optional[ContractEvent] = None
    txid: Optional[str] = None
    event_index: Optional[int] = None
    block_height: Optional[int] = None

    @property
    def is_print(self) -> bool:
        return (
            self.type == CONTRACT_EVENT
            and self.contract_event is not None
            and self.contract_event.topic == PRINT_TOPIC
        )


# --------------------------------------------------------------------------- #
# Notification variants
# --------------------------------------------------------------------------- #


def _principal(value: str) -> str:
    # Clarity principal literals carry a single leading quote
    if value.startswith("'"):
        value = value[1:]
    if not value or any(ch.isspace() or ch == "'" for ch in value):
        raise ValueError("contract-id must be a non-empty principal")
    return value


TokenId = Annotated[StrictInt, Field(gt=0)]
ContractId = Annotated[StrictStr, Field(min_length=1)]


class _Payload(BaseModel):
    # optional keys added by later revisions of the convention are ignored
    model_config = ConfigDict(extra="ignore", frozen=True)

    contract_id: ContractId = Field(alias="contract-id")

    @field_validator("contract_id")
    @classmethod
    def _check_principal(cls, v: str) -> str:
        return _principal(v)


class _WholeContractPayload(_Payload):
    """ft / sft: a notification always covers the whole contract."""

    @model_validator(mode="before")
    @classmethod
    def _no_token_ids(cls, data: Any) -> Any:
        if isinstance(data, dict) and "token-ids" in data:
            raise ValueError("token-ids is only allowed for nft notifications")
        return data


class FtPayload(_WholeContractPayload):
    token_class: Literal["ft"] = Field(alias="token-class")


class SftPayload(_WholeContractPayload):
    token_class: Literal["sft"] = Field(alias="token-class")


class NftPayload(_Payload):
    token_class: Literal["nft"] = Field(alias="token-class")
    token_ids: Optional[
        Annotated[List[TokenId], Field(max_length=MAX_TOKEN_IDS)]
    ] = Field(default=None, alias="token-ids")

    @field_validator("token_ids")
    @classmethod
    def _empty_means_all(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        return v or None


NotificationPayload = Annotated[
    Union[FtPayload, NftPayload, SftPayload],
    Field(discriminator="token_class"),
]


class MetadataUpdateNotification(BaseModel):
    """Strict projection of a `print` value announcing a metadata change."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    notification: Literal["token-metadata-update"]
    payload: NotificationPayload


# --------------------------------------------------------------------------- #
# Outbound: refresh tasks
# --------------------------------------------------------------------------- #


class RefreshTask(BaseModel):
    """Request for the indexer to re-fetch metadata of a contract's tokens.

    ``token_ids`` of ``None`` means every token of the contract.
    """

    model_config = ConfigDict(frozen=True)

    contract_id: str
    token_class: TokenClass
    token_ids: Optional[Tuple[int, ...]] = None

    # provenance, copied from the originating event
    emitter: Optional[str] = None
    txid: Optional[str] = None
    event_index: Optional[int] = None
    block_height: Optional[int] = None

    @classmethod
    def from_notification(
        cls, notification: MetadataUpdateNotification, event: LedgerEvent
    ) -> "RefreshTask":
        payload = notification.payload
        token_ids = getattr(payload, "token_ids", None)
        return cls(
            contract_id=payload.contract_id,
            token_class=TokenClass(payload.token_class),
            token_ids=tuple(token_ids) if token_ids is not None else None,
            emitter=event.contract_event.contract_identifier if event.contract_event else None,
            txid=event.txid,
            event_index=event.event_index,
            block_height=event.block_height,
        )

    def to_wire(self) -> Dict[str, Any]:
        """Hyphenated mapping handed to external indexers."""
        out: Dict[str, Any] = {
            "contract-id": self.contract_id,
            "token-class": self.token_class.value,
            "token-ids": list(self.token_ids) if self.token_ids is not None else None,
        }
        for key in ("emitter", "txid", "event_index", "block_height"):
            val = getattr(self, key)
            if val is not None:
                out[key.replace("_", "-")] = val
        return out

    def token_ids_json(self) -> Optional[str]:
        return json.dumps(list(self.token_ids)) if self.token_ids is not None else None
