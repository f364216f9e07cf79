"""
IP derivative agent.

The agent lets whitelisted callers register a child IP as a derivative
of a parent IP through the licensing module, paying the minting fee on
their behalf:

1. Check the pause state, the identifiers and the whitelist
2. Quote the minting fee and enforce the caller's cap
3. Pull the fee from the caller and approve it to the royalty module
4. Register the derivative
5. Reset any allowance the royalty module left unused, then emit

Every public mutation runs in one ledger transaction, so any failure
undoes the whole call. Registration and emergency withdrawal share a
re-entrancy flag because the agent briefly holds the caller's fee
between steps 3 and 5.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

from .access import Ownable, PauseController
from .errors import (
    EmergencyWithdrawFailedError,
    FeeTooHighError,
    InvalidParamsError,
    NotWhitelistedError,
    ReentrancyError,
    ZeroIdentifierError,
)
from .events import (
    BatchWhitelistAdded,
    BatchWhitelistRemoved,
    DerivativeRegistered,
    EmergencyWithdraw,
    WhitelistAdded,
    WhitelistRemoved,
)
from .identifiers import (
    WILDCARD_LICENSEE,
    ZERO_ADDRESS,
    normalize_address,
    normalize_optional_address,
    parse_uint256,
)
from .ledger import Contract, Ledger, register_contract
from .modules import FeeQuote, LicensingModule
from .token import force_approve, safe_increase_allowance, safe_transfer, safe_transfer_from, token_at
from .whitelist import WhitelistEntry, WhitelistStore, entries_from_columns, whitelist_key

logger = logging.getLogger(__name__)

EMPTY_ROYALTY_CONTEXT = b""


@dataclass(frozen=True)
class AgentConfig:
    """Fixed at deployment; there is no upgrade path."""

    owner: str
    licensing_module: str
    royalty_module: str

    def to_dict(self) -> dict[str, str]:
        return {
            "owner": self.owner,
            "licensing_module": self.licensing_module,
            "royalty_module": self.royalty_module,
        }


@register_contract("ip_derivative_agent")
class IPDerivativeAgent(Contract):
    """Whitelist-gated derivative registration with delegated fee payment."""

    def __init__(self, ledger: Ledger, address: str):
        super().__init__(ledger, address)
        self.whitelist = WhitelistStore(lambda: self.storage)
        self._ownable = Ownable(lambda: self.storage, self.emit)
        self._pause = PauseController(lambda: self.storage, self.emit)
        self._entered = False

    @classmethod
    def deploy(
        cls,
        ledger: Ledger,
        deployer: str,
        licensing_module: str,
        royalty_module: str,
        owner: Optional[str] = None,
    ) -> "IPDerivativeAgent":
        return ledger.deploy(
            cls.kind,
            deployer,
            owner=normalize_optional_address(owner),
            licensing_module=licensing_module,
            royalty_module=royalty_module,
        )

    def initialize(
        self,
        deployer: str,
        owner: str = ZERO_ADDRESS,
        licensing_module: str = ZERO_ADDRESS,
        royalty_module: str = ZERO_ADDRESS,
    ) -> None:
        licensing_module = normalize_address(licensing_module)
        royalty_module = normalize_address(royalty_module)
        if licensing_module == ZERO_ADDRESS:
            raise ZeroIdentifierError("licensing_module")
        if royalty_module == ZERO_ADDRESS:
            raise ZeroIdentifierError("royalty_module")
        self.storage.update(
            {
                "licensing_module": licensing_module,
                "royalty_module": royalty_module,
                "paused": False,
                "whitelist": {},
            }
        )
        self._ownable.initialize(deployer, owner)

    # ── Views ─────────────────────────────────────────────────────

    @property
    def owner(self) -> str:
        return self._ownable.owner

    @property
    def config(self) -> AgentConfig:
        storage = self.storage
        return AgentConfig(
            owner=storage["owner"],
            licensing_module=storage["licensing_module"],
            royalty_module=storage["royalty_module"],
        )

    @property
    def paused(self) -> bool:
        return self._pause.paused

    def is_whitelisted(
        self,
        parent_ip_id: str,
        child_ip_id: str,
        license_template: str,
        license_terms_id: int,
        licensee: str,
    ) -> bool:
        """True if the exact licensee or the wildcard entry is present."""
        entry = WhitelistEntry.create(parent_ip_id, child_ip_id, license_template, license_terms_id)
        return self.whitelist.is_authorized(entry, licensee)

    def whitelist_key(
        self,
        parent_ip_id: str,
        child_ip_id: str,
        license_template: str,
        license_terms_id: int,
        licensee: str = WILDCARD_LICENSEE,
    ) -> str:
        return whitelist_key(
            WhitelistEntry.create(parent_ip_id, child_ip_id, license_template, license_terms_id, licensee)
        )

    def status(self) -> dict[str, Any]:
        return {
            "address": self.address,
            **self.config.to_dict(),
            "paused": self.paused,
            "whitelist_entries": len(self.whitelist),
            "native_balance": self.ledger.native_balance(self.address),
        }

    # ── Whitelist administration ─────────────────────────────────

    def add_to_whitelist(
        self,
        caller: str,
        parent_ip_id: str,
        child_ip_id: str,
        license_template: str,
        license_terms_id: int,
        licensee: str,
    ) -> WhitelistEntry:
        with self.ledger.transaction():
            self._ownable.require_owner(caller)
            entry = WhitelistEntry.create(
                parent_ip_id, child_ip_id, license_template, license_terms_id, licensee
            )
            self._add_entry(entry)
        logger.info("Whitelisted %s", entry)
        return entry

    def remove_from_whitelist(
        self,
        caller: str,
        parent_ip_id: str,
        child_ip_id: str,
        license_template: str,
        license_terms_id: int,
        licensee: str,
    ) -> WhitelistEntry:
        with self.ledger.transaction():
            self._ownable.require_owner(caller)
            entry = WhitelistEntry.create(
                parent_ip_id, child_ip_id, license_template, license_terms_id, licensee
            )
            self._remove_entry(entry)
        logger.info("Removed from whitelist %s", entry)
        return entry

    def add_wildcard_to_whitelist(
        self,
        caller: str,
        parent_ip_id: str,
        child_ip_id: str,
        license_template: str,
        license_terms_id: int,
    ) -> WhitelistEntry:
        """Authorize every caller for one (parent, child, template, terms) combination."""
        with self.ledger.transaction():
            self._ownable.require_owner(caller)
            entry = self._wildcard_entry(parent_ip_id, child_ip_id, license_template, license_terms_id)
            self._add_entry(entry)
        logger.info("Whitelisted wildcard %s", entry)
        return entry

    def remove_wildcard_from_whitelist(
        self,
        caller: str,
        parent_ip_id: str,
        child_ip_id: str,
        license_template: str,
        license_terms_id: int,
    ) -> WhitelistEntry:
        with self.ledger.transaction():
            self._ownable.require_owner(caller)
            entry = self._wildcard_entry(parent_ip_id, child_ip_id, license_template, license_terms_id)
            self._remove_entry(entry)
        logger.info("Removed wildcard %s", entry)
        return entry

    def add_to_whitelist_batch(
        self,
        caller: str,
        parent_ip_ids: Sequence[str],
        child_ip_ids: Sequence[str],
        license_templates: Sequence[str],
        license_terms_ids: Sequence[int],
        licensees: Sequence[str],
    ) -> int:
        """All-or-nothing: one bad entry rolls back the entries before it."""
        with self.ledger.transaction():
            self._ownable.require_owner(caller)
            entries = entries_from_columns(
                parent_ip_ids, child_ip_ids, license_templates, license_terms_ids, licensees
            )
            for entry in entries:
                self._add_entry(entry)
            self.emit(BatchWhitelistAdded(count=len(entries)))
        logger.info("Whitelisted batch of %d entries", len(entries))
        return len(entries)

    def remove_from_whitelist_batch(
        self,
        caller: str,
        parent_ip_ids: Sequence[str],
        child_ip_ids: Sequence[str],
        license_templates: Sequence[str],
        license_terms_ids: Sequence[int],
        licensees: Sequence[str],
    ) -> int:
        with self.ledger.transaction():
            self._ownable.require_owner(caller)
            entries = entries_from_columns(
                parent_ip_ids, child_ip_ids, license_templates, license_terms_ids, licensees
            )
            for entry in entries:
                self._remove_entry(entry)
            self.emit(BatchWhitelistRemoved(count=len(entries)))
        logger.info("Removed batch of %d whitelist entries", len(entries))
        return len(entries)

    def _wildcard_entry(
        self,
        parent_ip_id: str,
        child_ip_id: str,
        license_template: str,
        license_terms_id: int,
    ) -> WhitelistEntry:
        entry = WhitelistEntry.create(parent_ip_id, child_ip_id, license_template, license_terms_id)
        if entry.license_terms_id == 0:
            raise InvalidParamsError("license_terms_id must be non-zero for wildcard entries")
        return entry

    def _add_entry(self, entry: WhitelistEntry) -> None:
        self.whitelist.add(entry)
        self.emit(WhitelistAdded(**entry.to_dict()))

    def _remove_entry(self, entry: WhitelistEntry) -> None:
        self.whitelist.remove(entry)
        self.emit(WhitelistRemoved(**entry.to_dict()))

    # ── Pause control ────────────────────────────────────────────

    def pause(self, caller: str) -> None:
        with self.ledger.transaction():
            owner = self._ownable.require_owner(caller)
            self._pause.pause(owner)

    def unpause(self, caller: str) -> None:
        with self.ledger.transaction():
            owner = self._ownable.require_owner(caller)
            self._pause.unpause(owner)

    # ── Registration ─────────────────────────────────────────────

    @contextmanager
    def _non_reentrant(self) -> Iterator[None]:
        if self._entered:
            raise ReentrancyError()
        self._entered = True
        try:
            yield
        finally:
            self._entered = False

    def register_derivative(
        self,
        caller: str,
        child_ip_id: str,
        parent_ip_id: str,
        license_terms_id: int,
        license_template: str,
        max_minting_fee: int = 0,
    ) -> DerivativeRegistered:
        """Register ``child_ip_id`` under ``parent_ip_id``, paying the fee from ``caller``.

        ``max_minting_fee`` of zero means no cap.
        """
        caller = normalize_address(caller)
        with self._non_reentrant(), self.ledger.transaction():
            self._pause.require_active()

            child_ip_id = normalize_address(child_ip_id)
            parent_ip_id = normalize_address(parent_ip_id)
            license_template = normalize_address(license_template)
            license_terms_id = parse_uint256(license_terms_id, "license_terms_id")
            max_minting_fee = parse_uint256(max_minting_fee, "max_minting_fee")
            if child_ip_id == ZERO_ADDRESS:
                raise ZeroIdentifierError("child_ip_id")
            if parent_ip_id == ZERO_ADDRESS:
                raise ZeroIdentifierError("parent_ip_id")
            if license_template == ZERO_ADDRESS:
                raise ZeroIdentifierError("license_template")

            entry = WhitelistEntry.create(
                parent_ip_id, child_ip_id, license_template, license_terms_id, caller
            )
            if not self.whitelist.is_authorized(entry, caller):
                raise NotWhitelistedError(entry, caller)

            config = self.config
            licensing: LicensingModule = self.ledger.contract_at(config.licensing_module)
            quote: FeeQuote = licensing.predict_minting_license_fee(
                parent_ip_id, license_template, license_terms_id, 1, caller, EMPTY_ROYALTY_CONTEXT
            )
            currency_token = normalize_optional_address(quote.currency_token)
            fee = parse_uint256(quote.token_amount, "token_amount")
            if max_minting_fee != 0 and fee > max_minting_fee:
                raise FeeTooHighError(fee, max_minting_fee)

            fee_pulled = currency_token != ZERO_ADDRESS and fee > 0
            if fee_pulled:
                safe_transfer_from(self.ledger, currency_token, self.address, caller, self.address, fee)
                safe_increase_allowance(
                    self.ledger, currency_token, self.address, config.royalty_module, fee
                )

            licensing.register_derivative(
                self.address,
                child_ip_id,
                [parent_ip_id],
                [license_terms_id],
                license_template,
                EMPTY_ROYALTY_CONTEXT,
                max_minting_fee,
                0,
                0,
            )

            if fee_pulled:
                residual = token_at(self.ledger, currency_token).allowance(
                    self.address, config.royalty_module
                )
                if residual != 0:
                    force_approve(self.ledger, currency_token, self.address, config.royalty_module, 0)
                    logger.info("Reset residual allowance %d to royalty module", residual)

            event = DerivativeRegistered(
                caller=caller,
                child_ip_id=child_ip_id,
                parent_ip_id=parent_ip_id,
                license_terms_id=license_terms_id,
                license_template=license_template,
                currency_token=currency_token,
                fee_amount=fee,
                timestamp=self.ledger.timestamp,
            )
            self.emit(event)

        logger.info(
            "Derivative registered: child=%s parent=%s caller=%s fee=%d",
            child_ip_id, parent_ip_id, caller, fee,
        )
        return event

    # ── Emergency recovery ───────────────────────────────────────

    def withdraw(
        self,
        caller: str,
        token: Optional[str],
        to: str,
        amount: int,
    ) -> EmergencyWithdraw:
        """Sweep native value (``token=None``) or a token balance while paused."""
        with self._non_reentrant(), self.ledger.transaction():
            self._ownable.require_owner(caller)
            to = normalize_optional_address(to)
            if to == ZERO_ADDRESS:
                raise ZeroIdentifierError("to")
            if to == self.address:
                raise InvalidParamsError("Cannot withdraw to the agent itself")
            self._pause.require_paused()

            amount = parse_uint256(amount, "amount")
            token_address = normalize_optional_address(token)
            if token_address == ZERO_ADDRESS:
                if not self.ledger.send_native(self.address, to, amount):
                    raise EmergencyWithdrawFailedError(to, amount)
            else:
                safe_transfer(self.ledger, token_address, self.address, to, amount)

            event = EmergencyWithdraw(
                token=token_address,
                to=to,
                amount=amount,
                timestamp=self.ledger.timestamp,
            )
            self.emit(event)

        logger.info("Emergency withdraw of %d (%s) to %s", amount, token_address, to)
        return event
