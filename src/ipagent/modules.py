"""
Licensing and royalty collaborators.

The agent consumes a licensing module that quotes minting fees and
registers derivatives, and hands fee allowances to a royalty module that
pulls them during registration. ``LicensingModule`` is that consumed
surface; the ``Local*`` classes are ledger-backed stand-ins that enforce
the same fee and registration semantics for local development and tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from .errors import (
    DerivativeAlreadyRegisteredError,
    LicenseTermsNotAttachedError,
    LicensingError,
    MintingFeeExceededError,
    UnauthorizedError,
    ZeroIdentifierError,
)
from .identifiers import ZERO_ADDRESS, normalize_address, normalize_optional_address, parse_uint256
from .ledger import Contract, register_contract
from .token import safe_transfer_from

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeQuote:
    """Minting fee quoted for one license token."""

    currency_token: str
    token_amount: int

    @property
    def is_payable(self) -> bool:
        return self.currency_token != ZERO_ADDRESS and self.token_amount > 0


class LicensingModule(Protocol):
    address: str

    def predict_minting_license_fee(
        self,
        licensor_ip_id: str,
        license_template: str,
        license_terms_id: int,
        amount: int,
        receiver: str,
        royalty_context: bytes,
    ) -> FeeQuote: ...

    def register_derivative(
        self,
        caller: str,
        child_ip_id: str,
        parent_ip_ids: Sequence[str],
        license_terms_ids: Sequence[int],
        license_template: str,
        royalty_context: bytes,
        max_minting_fee: int,
        max_rts: int,
        max_revenue_share: int,
    ) -> None: ...


def _terms_key(ip_id: str, license_template: str, license_terms_id: int) -> str:
    return f"{ip_id}:{license_template}:{license_terms_id}"


@register_contract("royalty_module")
class LocalRoyaltyModule(Contract):
    """Collects minting fees and tracks what each parent IP has earned."""

    def initialize(self, deployer: str) -> None:
        self.storage.update(
            {
                "admin": deployer,
                "licensing_module": ZERO_ADDRESS,
                "royalties": {},
            }
        )

    @property
    def licensing_module(self) -> str:
        return self.storage["licensing_module"]

    def set_licensing_module(self, caller: str, licensing_module: str) -> None:
        caller = normalize_address(caller)
        if caller != self.storage["admin"]:
            raise UnauthorizedError(caller)
        self.storage["licensing_module"] = normalize_address(licensing_module)

    def collect_minting_fee(
        self,
        caller: str,
        payer: str,
        receiver_ip_id: str,
        token: str,
        amount: int,
    ) -> None:
        caller = normalize_address(caller)
        # nobody may collect until the admin names the licensing module
        if caller != self.licensing_module or caller == ZERO_ADDRESS:
            raise UnauthorizedError(caller)
        receiver_ip_id = normalize_address(receiver_ip_id)
        token = normalize_address(token)
        amount = parse_uint256(amount, "amount")
        safe_transfer_from(self.ledger, token, self.address, payer, self.address, amount)
        by_ip = self.storage["royalties"].setdefault(receiver_ip_id, {})
        by_ip[token] = int(by_ip.get(token, 0)) + amount
        logger.info("Collected minting fee %d of %s for %s", amount, token, receiver_ip_id)

    def royalties_of(self, ip_id: str, token: str) -> int:
        by_ip = self.storage["royalties"].get(normalize_address(ip_id), {})
        return int(by_ip.get(normalize_address(token), 0))


@register_contract("licensing_module")
class LocalLicensingModule(Contract):
    """Quote table plus derivative registry backed by ledger storage."""

    def initialize(self, deployer: str, royalty_module: str, strict: bool = True) -> None:
        royalty_module = normalize_address(royalty_module)
        if royalty_module == ZERO_ADDRESS:
            raise ZeroIdentifierError("royalty_module")
        self.storage.update(
            {
                "admin": deployer,
                "royalty_module": royalty_module,
                "strict": bool(strict),
                "terms": {},
                "parents": {},
            }
        )

    @property
    def royalty_module(self) -> str:
        return self.storage["royalty_module"]

    def attach_license_terms(
        self,
        caller: str,
        ip_id: str,
        license_template: str,
        license_terms_id: int,
        currency_token: str | None,
        minting_fee: int,
    ) -> None:
        """Set the fee for one (ip, template, terms) combination. Module admin only."""
        caller = normalize_address(caller)
        if caller != self.storage["admin"]:
            raise UnauthorizedError(caller)
        ip_id = normalize_address(ip_id)
        license_template = normalize_address(license_template)
        if ip_id == ZERO_ADDRESS:
            raise ZeroIdentifierError("ip_id")
        if license_template == ZERO_ADDRESS:
            raise ZeroIdentifierError("license_template")
        license_terms_id = parse_uint256(license_terms_id, "license_terms_id")
        self.storage["terms"][_terms_key(ip_id, license_template, license_terms_id)] = {
            "currency_token": normalize_optional_address(currency_token),
            "minting_fee": parse_uint256(minting_fee, "minting_fee"),
            "attached_by": caller,
        }
        logger.info(
            "Attached terms %d (%s) to %s, fee %d", license_terms_id, license_template, ip_id, minting_fee
        )

    def predict_minting_license_fee(
        self,
        licensor_ip_id: str,
        license_template: str,
        license_terms_id: int,
        amount: int,
        receiver: str,
        royalty_context: bytes,
    ) -> FeeQuote:
        licensor_ip_id = normalize_address(licensor_ip_id)
        license_template = normalize_address(license_template)
        terms = self.storage["terms"].get(_terms_key(licensor_ip_id, license_template, license_terms_id))
        if terms is None:
            if self.storage["strict"]:
                raise LicenseTermsNotAttachedError(licensor_ip_id, license_template, license_terms_id)
            return FeeQuote(currency_token=ZERO_ADDRESS, token_amount=0)
        return FeeQuote(
            currency_token=terms["currency_token"],
            token_amount=int(terms["minting_fee"]) * int(amount),
        )

    def register_derivative(
        self,
        caller: str,
        child_ip_id: str,
        parent_ip_ids: Sequence[str],
        license_terms_ids: Sequence[int],
        license_template: str,
        royalty_context: bytes,
        max_minting_fee: int,
        max_rts: int,
        max_revenue_share: int,
    ) -> None:
        # max_rts and max_revenue_share: this module has no royalty-token split to cap.
        caller = normalize_address(caller)
        child_ip_id = normalize_address(child_ip_id)
        license_template = normalize_address(license_template)
        parents = [normalize_address(p) for p in parent_ip_ids]
        if not parents or len(parents) != len(license_terms_ids):
            raise LicensingError("Parent and license terms lists must be non-empty and equal length")
        if child_ip_id in parents:
            raise LicensingError(f"{child_ip_id} cannot derive from itself")
        if child_ip_id in self.storage["parents"]:
            raise DerivativeAlreadyRegisteredError(child_ip_id)

        quotes = [
            self.predict_minting_license_fee(parent, license_template, terms_id, 1, caller, royalty_context)
            for parent, terms_id in zip(parents, license_terms_ids)
        ]
        total = sum(q.token_amount for q in quotes)
        if max_minting_fee != 0 and total > max_minting_fee:
            raise MintingFeeExceededError(total, max_minting_fee)

        royalty = self.ledger.contract_at(self.royalty_module, LocalRoyaltyModule)
        for parent, quote in zip(parents, quotes):
            if quote.is_payable:
                royalty.collect_minting_fee(
                    self.address, caller, parent, quote.currency_token, quote.token_amount
                )

        self.storage["parents"][child_ip_id] = {
            "parent_ip_ids": parents,
            "license_terms_ids": [int(t) for t in license_terms_ids],
            "license_template": license_template,
            "registered_by": caller,
        }
        logger.info("Registered derivative %s of %s", child_ip_id, ", ".join(parents))

    def parents_of(self, child_ip_id: str) -> list[str]:
        record = self.storage["parents"].get(normalize_address(child_ip_id))
        return list(record["parent_ip_ids"]) if record else []
