"""Structured events emitted by the agent and its collaborators."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, ClassVar


class EventType(str, Enum):
    WHITELIST_ADDED = "WhitelistAdded"
    WHITELIST_REMOVED = "WhitelistRemoved"
    BATCH_WHITELIST_ADDED = "BatchWhitelistAdded"
    BATCH_WHITELIST_REMOVED = "BatchWhitelistRemoved"
    DERIVATIVE_REGISTERED = "DerivativeRegistered"
    EMERGENCY_WITHDRAW = "EmergencyWithdraw"
    PAUSED = "Paused"
    UNPAUSED = "Unpaused"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
    TRANSFER = "Transfer"
    APPROVAL = "Approval"


@dataclass(frozen=True)
class Event:
    event_type: ClassVar[EventType]

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event_type.value, **asdict(self)}


@dataclass(frozen=True)
class WhitelistAdded(Event):
    event_type: ClassVar[EventType] = EventType.WHITELIST_ADDED

    parent_ip_id: str
    child_ip_id: str
    license_template: str
    license_terms_id: int
    licensee: str


@dataclass(frozen=True)
class WhitelistRemoved(Event):
    event_type: ClassVar[EventType] = EventType.WHITELIST_REMOVED

    parent_ip_id: str
    child_ip_id: str
    license_template: str
    license_terms_id: int
    licensee: str


@dataclass(frozen=True)
class BatchWhitelistAdded(Event):
    event_type: ClassVar[EventType] = EventType.BATCH_WHITELIST_ADDED

    count: int


@dataclass(frozen=True)
class BatchWhitelistRemoved(Event):
    event_type: ClassVar[EventType] = EventType.BATCH_WHITELIST_REMOVED

    count: int


@dataclass(frozen=True)
class DerivativeRegistered(Event):
    event_type: ClassVar[EventType] = EventType.DERIVATIVE_REGISTERED

    caller: str
    child_ip_id: str
    parent_ip_id: str
    license_terms_id: int
    license_template: str
    currency_token: str
    fee_amount: int
    timestamp: int


@dataclass(frozen=True)
class EmergencyWithdraw(Event):
    event_type: ClassVar[EventType] = EventType.EMERGENCY_WITHDRAW

    token: str
    to: str
    amount: int
    timestamp: int


@dataclass(frozen=True)
class Paused(Event):
    event_type: ClassVar[EventType] = EventType.PAUSED

    account: str


@dataclass(frozen=True)
class Unpaused(Event):
    event_type: ClassVar[EventType] = EventType.UNPAUSED

    account: str


@dataclass(frozen=True)
class OwnershipTransferred(Event):
    event_type: ClassVar[EventType] = EventType.OWNERSHIP_TRANSFERRED

    previous_owner: str
    new_owner: str


@dataclass(frozen=True)
class Transfer(Event):
    event_type: ClassVar[EventType] = EventType.TRANSFER

    sender: str
    to: str
    amount: int


@dataclass(frozen=True)
class Approval(Event):
    event_type: ClassVar[EventType] = EventType.APPROVAL

    owner: str
    spender: str
    amount: int


@dataclass(frozen=True)
class LogEntry:
    """An event together with the contract that emitted it."""

    emitter: str
    event: Event

    @property
    def event_type(self) -> EventType:
        return self.event.event_type

    def to_dict(self) -> dict[str, Any]:
        return {"emitter": self.emitter, **self.event.to_dict()}
