"""
Fungible token collaborator.

``FungibleToken`` is the ERC-20 shaped surface the agent consumes.
``LocalToken`` is a ledger-backed implementation for local use and tests.
The ``safe_*`` helpers wrap token calls the way SafeERC20 does: a token
that reports failure by returning False raises instead.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from .errors import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    TokenOperationFailedError,
    UnauthorizedError,
    UnknownContractError,
    ZeroIdentifierError,
)
from .events import Approval, Transfer
from .identifiers import MAX_UINT256, ZERO_ADDRESS, normalize_address, parse_uint256
from .ledger import Contract, Ledger, register_contract

logger = logging.getLogger(__name__)


@runtime_checkable
class FungibleToken(Protocol):
    address: str

    def balance_of(self, account: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def transfer(self, caller: str, to: str, amount: int) -> bool: ...

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool: ...

    def approve(self, caller: str, spender: str, amount: int) -> bool: ...


@register_contract("token")
class LocalToken(Contract):
    """Minimal ERC-20 with a single minter (the deployer)."""

    def initialize(
        self,
        deployer: str,
        name: str = "Wrapped IP",
        symbol: str = "WIP",
        decimals: int = 18,
    ) -> None:
        self.storage.update(
            {
                "name": name,
                "symbol": symbol,
                "decimals": int(decimals),
                "minter": deployer,
                "total_supply": 0,
                "balances": {},
                "allowances": {},
            }
        )

    @property
    def name(self) -> str:
        return self.storage["name"]

    @property
    def symbol(self) -> str:
        return self.storage["symbol"]

    @property
    def decimals(self) -> int:
        return int(self.storage["decimals"])

    @property
    def total_supply(self) -> int:
        return int(self.storage["total_supply"])

    def balance_of(self, account: str) -> int:
        return int(self.storage["balances"].get(normalize_address(account), 0))

    def allowance(self, owner: str, spender: str) -> int:
        by_owner = self.storage["allowances"].get(normalize_address(owner), {})
        return int(by_owner.get(normalize_address(spender), 0))

    def mint(self, caller: str, to: str, amount: int) -> None:
        caller = normalize_address(caller)
        if caller != self.storage["minter"]:
            raise UnauthorizedError(caller)
        to = normalize_address(to)
        if to == ZERO_ADDRESS:
            raise ZeroIdentifierError("to")
        amount = parse_uint256(amount, "amount")
        with self.ledger.transaction():
            storage = self.storage
            storage["total_supply"] = int(storage["total_supply"]) + amount
            storage["balances"][to] = self.balance_of(to) + amount
            self.emit(Transfer(sender=ZERO_ADDRESS, to=to, amount=amount))

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        with self.ledger.transaction():
            self._move(normalize_address(caller), normalize_address(to), parse_uint256(amount, "amount"))
        return True

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool:
        caller = normalize_address(caller)
        owner = normalize_address(owner)
        amount = parse_uint256(amount, "amount")
        with self.ledger.transaction():
            current = self.allowance(owner, caller)
            if current < amount:
                raise InsufficientAllowanceError(owner, caller, current, amount)
            if current != MAX_UINT256:
                self._set_allowance(owner, caller, current - amount)
            self._move(owner, normalize_address(to), amount)
        return True

    def approve(self, caller: str, spender: str, amount: int) -> bool:
        caller = normalize_address(caller)
        spender = normalize_address(spender)
        if spender == ZERO_ADDRESS:
            raise ZeroIdentifierError("spender")
        amount = parse_uint256(amount, "amount")
        with self.ledger.transaction():
            self._set_allowance(caller, spender, amount)
            self.emit(Approval(owner=caller, spender=spender, amount=amount))
        return True

    def _set_allowance(self, owner: str, spender: str, amount: int) -> None:
        by_owner = self.storage["allowances"].setdefault(owner, {})
        if amount:
            by_owner[spender] = amount
        else:
            by_owner.pop(spender, None)

    def _move(self, sender: str, to: str, amount: int) -> None:
        if to == ZERO_ADDRESS:
            raise ZeroIdentifierError("to")
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalanceError(sender, balance, amount)
        balances = self.storage["balances"]
        balances[sender] = balance - amount
        balances[to] = int(balances.get(to, 0)) + amount
        self.emit(Transfer(sender=sender, to=to, amount=amount))


def token_at(ledger: Ledger, address: str) -> FungibleToken:
    """Resolve a token contract, failing like a call to a non-token account."""
    try:
        contract = ledger.contract_at(address)
    except UnknownContractError:
        raise TokenOperationFailedError(normalize_address(address), "call to non-contract")
    if not isinstance(contract, FungibleToken):
        raise TokenOperationFailedError(contract.address, "not a fungible token")
    return contract


def safe_transfer(ledger: Ledger, token: str, caller: str, to: str, amount: int) -> None:
    if not token_at(ledger, token).transfer(caller, to, amount):
        raise TokenOperationFailedError(token, "transfer")


def safe_transfer_from(
    ledger: Ledger, token: str, caller: str, owner: str, to: str, amount: int
) -> None:
    if not token_at(ledger, token).transfer_from(caller, owner, to, amount):
        raise TokenOperationFailedError(token, "transferFrom")


def safe_increase_allowance(
    ledger: Ledger, token: str, caller: str, spender: str, value: int
) -> None:
    current = token_at(ledger, token).allowance(caller, spender)
    force_approve(ledger, token, caller, spender, current + value)


def force_approve(ledger: Ledger, token: str, caller: str, spender: str, value: int) -> None:
    """Approve ``value``, resetting to zero first for tokens that refuse non-zero to non-zero."""
    contract = token_at(ledger, token)
    if contract.approve(caller, spender, value):
        return
    if not contract.approve(caller, spender, 0) or not contract.approve(caller, spender, value):
        raise TokenOperationFailedError(token, "approve")


def describe_token(ledger: Ledger, address: str) -> dict[str, Any]:
    token = token_at(ledger, address)
    return {
        "address": token.address,
        "name": getattr(token, "name", ""),
        "symbol": getattr(token, "symbol", ""),
        "decimals": getattr(token, "decimals", 18),
    }
