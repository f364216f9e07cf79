"""
Execution substrate for the agent and its collaborators.

A Ledger holds JSON-serializable world state (one record per address),
runs every mutation inside an atomic transaction and hands events to
subscribers only once the outermost transaction commits. A failed call
anywhere inside a transaction leaves no trace: balances, allowances,
storage and events all roll back together.
"""

from __future__ import annotations

import copy
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar

from eth_utils import keccak

from .errors import LedgerError, UnknownContractError
from .events import Event, LogEntry
from .identifiers import normalize_address, parse_uint256

logger = logging.getLogger(__name__)

Receiver = Callable[[str, int], None]
Subscriber = Callable[[LogEntry], None]
C = TypeVar("C", bound="Contract")

_CONTRACT_TYPES: dict[str, type["Contract"]] = {}


def register_contract(kind: str):
    """Class decorator making a contract type loadable from persisted state."""
    def decorator(cls):
        cls.kind = kind
        _CONTRACT_TYPES[kind] = cls
        return cls
    return decorator


class NativeTransferRejectedError(LedgerError):
    """Raised by receiver hooks to refuse incoming native value."""
    pass


class Contract:
    """Base for code living at a ledger address. State lives in ledger storage."""

    kind: str = "external"

    def __init__(self, ledger: "Ledger", address: str):
        self.ledger = ledger
        self.address = normalize_address(address)

    @property
    def storage(self) -> dict[str, Any]:
        # Always re-fetch: a rolled-back transaction replaces the state dicts.
        return self.ledger.storage(self.address)

    def initialize(self, deployer: str, **kwargs: Any) -> None:
        pass

    def emit(self, event: Event) -> None:
        self.ledger.emit(self.address, event)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"


class Ledger:
    """In-process ledger with snapshot/rollback transactions."""

    def __init__(
        self,
        state: Optional[dict[str, Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._state: dict[str, Any] = state if state is not None else {}
        self._state.setdefault("accounts", {})
        self._state.setdefault("nonces", {})
        self._clock = clock
        self._instances: dict[str, Contract] = {}
        self._receivers: dict[str, Receiver] = {}
        self._subscribers: list[Subscriber] = []
        self._pending: list[LogEntry] = []
        self._logs: list[LogEntry] = []
        self._depth = 0

    @property
    def state(self) -> dict[str, Any]:
        return self._state

    @property
    def timestamp(self) -> int:
        return int(self._clock())

    @property
    def logs(self) -> list[LogEntry]:
        """Events committed during this process's lifetime."""
        return list(self._logs)

    # ── Transactions ──────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["Ledger"]:
        snapshot = copy.deepcopy(self._state)
        pending_mark = len(self._pending)
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._state.clear()
            self._state.update(snapshot)
            del self._pending[pending_mark:]
            raise
        finally:
            self._depth -= 1
        if self._depth == 0:
            self._flush()

    def emit(self, emitter: str, event: Event) -> None:
        self._pending.append(LogEntry(emitter=normalize_address(emitter), event=event))
        if self._depth == 0:
            self._flush()

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def _flush(self) -> None:
        entries, self._pending = self._pending, []
        self._logs.extend(entries)
        for entry in entries:
            for subscriber in self._subscribers:
                subscriber(entry)

    # ── Accounts and contracts ────────────────────────────────────

    def _account(self, address: str) -> dict[str, Any]:
        accounts = self._state["accounts"]
        key = normalize_address(address)
        record = accounts.get(key)
        if record is None:
            record = {"kind": None, "native": 0, "storage": {}}
            accounts[key] = record
        return record

    def storage(self, address: str) -> dict[str, Any]:
        return self._account(address)["storage"]

    def account_kind(self, address: str) -> Optional[str]:
        record = self._state["accounts"].get(normalize_address(address))
        return record.get("kind") if record else None

    def deploy(self, kind: str, deployer: str, **kwargs: Any) -> Contract:
        """Create a contract of a registered kind at a deterministic address."""
        cls = _CONTRACT_TYPES.get(kind)
        if cls is None:
            raise LedgerError(f"Unknown contract kind: {kind}")
        normalized_deployer = normalize_address(deployer)
        with self.transaction():
            address = self._next_address(normalized_deployer)
            self._account(address)["kind"] = kind
            contract = cls(self, address)
            self._instances[address] = contract
            try:
                contract.initialize(normalized_deployer, **kwargs)
            except BaseException:
                self._instances.pop(address, None)
                raise
        logger.info("Deployed %s at %s (deployer: %s)", kind, address, normalized_deployer)
        return contract

    def bind(self, contract: Contract) -> Contract:
        """Attach runtime-only code at an address (not restored from state)."""
        record = self._account(contract.address)
        if record["kind"] is None:
            record["kind"] = contract.kind
        self._instances[contract.address] = contract
        return contract

    def contract_at(self, address: str, expected: Optional[type[C]] = None) -> Any:
        key = normalize_address(address)
        contract = self._instances.get(key)
        if contract is not None and self.account_kind(key) is None:
            # deployment was rolled back
            del self._instances[key]
            contract = None
        if contract is None:
            cls = _CONTRACT_TYPES.get(self.account_kind(key) or "")
            if cls is None:
                raise UnknownContractError(key)
            contract = cls(self, key)
            self._instances[key] = contract
        if expected is not None and not isinstance(contract, expected):
            raise LedgerError(f"{key} is a {contract.kind}, not a {expected.__name__}")
        return contract

    def contracts(self, kind: Optional[str] = None) -> list[str]:
        return sorted(
            address
            for address, record in self._state["accounts"].items()
            if record.get("kind") and (kind is None or record["kind"] == kind)
        )

    def _next_address(self, deployer: str) -> str:
        nonces = self._state["nonces"]
        nonce = int(nonces.get(deployer, 0))
        nonces[deployer] = nonce + 1
        digest = keccak(bytes.fromhex(deployer[2:]) + nonce.to_bytes(32, "big"))
        return "0x" + digest[-20:].hex()

    # ── Native value ──────────────────────────────────────────────

    def native_balance(self, address: str) -> int:
        record = self._state["accounts"].get(normalize_address(address))
        return int(record["native"]) if record else 0

    def mint_native(self, address: str, amount: int) -> None:
        amount = parse_uint256(amount, "amount")
        with self.transaction():
            record = self._account(address)
            record["native"] = int(record["native"]) + amount

    def set_receiver(self, address: str, receiver: Optional[Receiver]) -> None:
        """Install a hook run whenever ``address`` receives native value."""
        key = normalize_address(address)
        if receiver is None:
            self._receivers.pop(key, None)
        else:
            self._receivers[key] = receiver

    def send_native(self, sender: str, to: str, amount: int) -> bool:
        """Move native value; False when the balance is short or the receiver refuses."""
        amount = parse_uint256(amount, "amount")
        sender_key = normalize_address(sender)
        to_key = normalize_address(to)
        if self.native_balance(sender_key) < amount:
            return False
        try:
            with self.transaction():
                source = self._account(sender_key)
                source["native"] = int(source["native"]) - amount
                target = self._account(to_key)
                target["native"] = int(target["native"]) + amount
                receiver = self._receivers.get(to_key)
                if receiver is not None:
                    receiver(sender_key, amount)
        except Exception as exc:
            # any failure in the receiver reverts the value call
            logger.info("Native transfer %s -> %s reverted: %s", sender_key, to_key, exc)
            return False
        return True
