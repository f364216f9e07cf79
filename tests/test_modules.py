"""Tests for the local licensing and royalty modules."""

import pytest

from ipagent.errors import (
    LicenseTermsNotAttachedError,
    LicensingError,
    MintingFeeExceededError,
    UnauthorizedError,
)
from ipagent.identifiers import ZERO_ADDRESS
from ipagent.modules import FeeQuote

from conftest import new_address


def test_quote_multiplies_fee_by_amount(stack):
    stack.attach_fee(7)
    quote = stack.licensing.predict_minting_license_fee(
        stack.parent, stack.template, 1, 3, stack.licensee, b""
    )
    assert quote == FeeQuote(currency_token=stack.token.address, token_amount=21)
    assert quote.is_payable


def test_strict_module_rejects_unknown_terms(stack):
    with pytest.raises(LicenseTermsNotAttachedError):
        stack.licensing.predict_minting_license_fee(
            stack.parent, stack.template, 1, 1, stack.licensee, b""
        )


def test_lenient_module_quotes_zero(stack):
    lenient = stack.ledger.deploy(
        "licensing_module", stack.owner, royalty_module=stack.royalty.address, strict=False
    )
    quote = lenient.predict_minting_license_fee(stack.parent, stack.template, 1, 1, stack.licensee, b"")
    assert quote == FeeQuote(currency_token=ZERO_ADDRESS, token_amount=0)
    assert not quote.is_payable


def test_register_enforces_fee_cap(stack):
    stack.attach_fee(10)
    with pytest.raises(MintingFeeExceededError):
        stack.licensing.register_derivative(
            stack.licensee, stack.child, [stack.parent], [1], stack.template, b"", 9, 0, 0
        )


def test_register_rejects_self_parent_and_bad_lists(stack):
    stack.attach_fee(0)
    with pytest.raises(LicensingError):
        stack.licensing.register_derivative(
            stack.licensee, stack.parent, [stack.parent], [1], stack.template, b"", 0, 0, 0
        )
    with pytest.raises(LicensingError):
        stack.licensing.register_derivative(
            stack.licensee, stack.child, [stack.parent], [], stack.template, b"", 0, 0, 0
        )


def test_register_pays_each_parent(stack):
    other_parent = new_address()
    stack.attach_fee(4)
    stack.licensing.attach_license_terms(
        stack.owner, other_parent, stack.template, 2, stack.token.address, 6
    )
    stack.token.mint(stack.owner, stack.licensee, 10)
    stack.token.approve(stack.licensee, stack.royalty.address, 10)

    stack.licensing.register_derivative(
        stack.licensee, stack.child, [stack.parent, other_parent], [1, 2], stack.template, b"", 0, 0, 0
    )

    assert stack.royalty.royalties_of(stack.parent, stack.token.address) == 4
    assert stack.royalty.royalties_of(other_parent, stack.token.address) == 6
    assert stack.licensing.parents_of(stack.child) == [stack.parent, other_parent]


def test_only_admin_attaches_terms(stack):
    with pytest.raises(UnauthorizedError):
        stack.licensing.attach_license_terms(
            stack.stranger, stack.parent, stack.template, 1, stack.token.address, 0
        )
    stack.attach_fee(10)
    quote = stack.licensing.predict_minting_license_fee(
        stack.parent, stack.template, 1, 1, stack.licensee, b""
    )
    assert quote.token_amount == 10


def test_unconfigured_royalty_module_collects_nothing(stack):
    royalty = stack.ledger.deploy("royalty_module", stack.owner)
    stack.fund(stack.licensee, 10, approve=0)
    stack.token.approve(stack.licensee, royalty.address, 10)

    for caller in (stack.stranger, stack.licensing.address):
        with pytest.raises(UnauthorizedError):
            royalty.collect_minting_fee(caller, stack.licensee, stack.parent, stack.token.address, 10)

    assert stack.token.balance_of(stack.licensee) == 10
    assert stack.token.allowance(stack.licensee, royalty.address) == 10


def test_royalty_module_only_serves_licensing_module(stack):
    with pytest.raises(UnauthorizedError):
        stack.royalty.collect_minting_fee(
            stack.stranger, stack.licensee, stack.parent, stack.token.address, 1
        )
    with pytest.raises(UnauthorizedError):
        stack.royalty.set_licensing_module(stack.stranger, stack.stranger)
