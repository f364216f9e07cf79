"""
IP derivative agent error types.

Each failure mode has its own exception carrying the arguments that
caused it, so callers can tell exactly which check rejected a call.
Any of these aborts the enclosing ledger transaction.
"""

from __future__ import annotations

from typing import Any, Optional


class AgentError(Exception):
    """Base error for all agent operations."""
    pass


# Parameter errors
class InvalidParamsError(AgentError):
    """Arguments are structurally invalid."""
    pass


class ZeroIdentifierError(InvalidParamsError):
    """A null identifier was supplied where one is forbidden."""
    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"{field_name} must not be the zero address")


# Whitelist errors
class WhitelistError(AgentError):
    """Base error for whitelist state mismatches."""
    pass


class AlreadyWhitelistedError(WhitelistError):
    """Exact whitelist entry already present."""
    def __init__(self, entry: Any):
        self.entry = entry
        super().__init__(f"Already whitelisted: {entry}")


class NotWhitelistedError(WhitelistError):
    """Entry absent on removal, or caller not authorized to register."""
    def __init__(self, entry: Any, caller: Optional[str] = None):
        self.entry = entry
        self.caller = caller
        if caller is None:
            super().__init__(f"Not whitelisted: {entry}")
        else:
            super().__init__(f"Caller {caller} not whitelisted for {entry}")


class BatchLengthMismatchError(WhitelistError):
    """Batch input sequences differ in length."""
    def __init__(self, lengths: tuple[int, ...]):
        self.lengths = lengths
        super().__init__(f"Batch input lengths differ: {list(lengths)}")


# Fee errors
class FeeTooHighError(AgentError):
    """Quoted minting fee exceeds the caller's declared cap."""
    def __init__(self, fee: int, max_fee: int):
        self.fee = fee
        self.max_fee = max_fee
        super().__init__(f"Minting fee {fee} exceeds max {max_fee}")


# Access errors
class UnauthorizedError(AgentError):
    """Non-owner attempted an owner-only operation."""
    def __init__(self, caller: str):
        self.caller = caller
        super().__init__(f"Caller {caller} is not the owner")


class InvalidPauseStateError(AgentError):
    """Operation attempted in the wrong Active/Paused state."""
    def __init__(self, required: str):
        self.required = required
        actual = "active" if required == "paused" else "paused"
        super().__init__(f"Agent is {actual}; operation requires {required}")


class ReentrancyError(AgentError):
    """Nested call into a guarded entry point."""
    def __init__(self):
        super().__init__("Reentrant call rejected")


class EmergencyWithdrawFailedError(AgentError):
    """Native transfer was rejected by the destination."""
    def __init__(self, to: str, amount: int):
        self.to = to
        self.amount = amount
        super().__init__(f"Native transfer of {amount} to {to} failed")


# Token errors
class TokenError(AgentError):
    """Base error for fungible token failures."""
    pass


class InsufficientBalanceError(TokenError):
    def __init__(self, account: str, balance: int, needed: int):
        self.account = account
        self.balance = balance
        self.needed = needed
        super().__init__(f"{account} balance {balance} below {needed}")


class InsufficientAllowanceError(TokenError):
    def __init__(self, owner: str, spender: str, allowance: int, needed: int):
        self.owner = owner
        self.spender = spender
        self.allowance = allowance
        self.needed = needed
        super().__init__(
            f"Allowance {allowance} from {owner} to {spender} below {needed}"
        )


class TokenOperationFailedError(TokenError):
    """Token call returned false or targeted a non-token account."""
    def __init__(self, token: str, operation: str):
        self.token = token
        self.operation = operation
        super().__init__(f"Token {token}: {operation} failed")


# Licensing errors
class LicensingError(AgentError):
    """Base error raised by licensing/royalty collaborators."""
    pass


class LicenseTermsNotAttachedError(LicensingError):
    def __init__(self, ip_id: str, license_template: str, license_terms_id: int):
        self.ip_id = ip_id
        self.license_template = license_template
        self.license_terms_id = license_terms_id
        super().__init__(
            f"License terms {license_terms_id} ({license_template}) not attached to {ip_id}"
        )


class DerivativeAlreadyRegisteredError(LicensingError):
    def __init__(self, child_ip_id: str):
        self.child_ip_id = child_ip_id
        super().__init__(f"{child_ip_id} is already registered as a derivative")


class MintingFeeExceededError(LicensingError):
    def __init__(self, fee: int, max_fee: int):
        self.fee = fee
        self.max_fee = max_fee
        super().__init__(f"Total minting fee {fee} exceeds max {max_fee}")


# Ledger errors
class LedgerError(AgentError):
    """Execution substrate failures."""
    pass


class UnknownContractError(LedgerError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"No contract deployed at {address}")
