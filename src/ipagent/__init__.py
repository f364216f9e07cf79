"""
IP derivative agent: whitelist-gated derivative registration.

An owner whitelists who may register which child IP under which parent
IP; whitelisted callers register through the agent, which pays the
licensing module's minting fee on their behalf from their own tokens.
"""

__version__ = "0.1.0"

from .errors import AgentError
from .events import EventType, LogEntry
from .identifiers import WILDCARD_LICENSEE, ZERO_ADDRESS
from .ledger import Contract, Ledger
from .token import FungibleToken, LocalToken
from .modules import FeeQuote, LicensingModule, LocalLicensingModule, LocalRoyaltyModule
from .whitelist import WhitelistEntry, WhitelistStore, whitelist_key
from .agent import AgentConfig, IPDerivativeAgent
from .audit import AuditTrail
from .state_store import LedgerStateStore

__all__ = [
    "AgentError", "EventType", "LogEntry", "WILDCARD_LICENSEE", "ZERO_ADDRESS",
    "Contract", "Ledger", "FungibleToken", "LocalToken",
    "FeeQuote", "LicensingModule", "LocalLicensingModule", "LocalRoyaltyModule",
    "WhitelistEntry", "WhitelistStore", "whitelist_key",
    "AgentConfig", "IPDerivativeAgent", "AuditTrail", "LedgerStateStore",
]
