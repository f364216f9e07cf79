"""Tests for owner-only emergency withdrawal while paused."""

import pytest

from ipagent.errors import (
    EmergencyWithdrawFailedError,
    InsufficientBalanceError,
    InvalidParamsError,
    InvalidPauseStateError,
    UnauthorizedError,
    ZeroIdentifierError,
)
from ipagent.events import EmergencyWithdraw
from ipagent.identifiers import ZERO_ADDRESS
from ipagent.ledger import NativeTransferRejectedError

from conftest import NOW, new_address


@pytest.fixture
def funded(stack):
    stack.token.mint(stack.owner, stack.agent.address, 50)
    stack.ledger.mint_native(stack.agent.address, 100)
    return stack


class TestTokenWithdraw:
    def test_withdraw_while_paused(self, funded):
        recipient = new_address()
        funded.agent.pause(funded.owner)

        event = funded.agent.withdraw(funded.owner, funded.token.address, recipient, 50)

        assert event == EmergencyWithdraw(
            token=funded.token.address, to=recipient, amount=50, timestamp=NOW
        )
        assert funded.token.balance_of(recipient) == 50
        assert funded.token.balance_of(funded.agent.address) == 0
        assert funded.ledger.logs[-1].event == event

    def test_requires_paused(self, funded):
        with pytest.raises(InvalidPauseStateError):
            funded.agent.withdraw(funded.owner, funded.token.address, new_address(), 50)
        assert funded.token.balance_of(funded.agent.address) == 50

    def test_requires_owner(self, funded):
        funded.agent.pause(funded.owner)
        with pytest.raises(UnauthorizedError):
            funded.agent.withdraw(funded.stranger, funded.token.address, funded.stranger, 50)

    def test_insufficient_balance(self, funded):
        funded.agent.pause(funded.owner)
        with pytest.raises(InsufficientBalanceError):
            funded.agent.withdraw(funded.owner, funded.token.address, new_address(), 51)


class TestDestinationChecks:
    @pytest.mark.parametrize("paused", [False, True])
    def test_agent_itself_rejected(self, funded, paused):
        if paused:
            funded.agent.pause(funded.owner)
        with pytest.raises(InvalidParamsError):
            funded.agent.withdraw(funded.owner, None, funded.agent.address, 1)

    @pytest.mark.parametrize("to", [ZERO_ADDRESS, None])
    def test_zero_destination_rejected(self, funded, to):
        funded.agent.pause(funded.owner)
        with pytest.raises(ZeroIdentifierError):
            funded.agent.withdraw(funded.owner, funded.token.address, to, 1)


class TestNativeWithdraw:
    def test_native_withdraw(self, funded):
        recipient = new_address()
        funded.agent.pause(funded.owner)

        event = funded.agent.withdraw(funded.owner, None, recipient, 40)

        assert event.token == ZERO_ADDRESS
        assert funded.ledger.native_balance(recipient) == 40
        assert funded.ledger.native_balance(funded.agent.address) == 60

    def test_zero_token_address_means_native(self, funded):
        funded.agent.pause(funded.owner)
        funded.agent.withdraw(funded.owner, ZERO_ADDRESS, funded.owner, 100)
        assert funded.ledger.native_balance(funded.owner) == 100

    def test_over_balance_fails(self, funded):
        funded.agent.pause(funded.owner)
        with pytest.raises(EmergencyWithdrawFailedError) as exc:
            funded.agent.withdraw(funded.owner, None, funded.owner, 101)
        assert exc.value.amount == 101

    def test_rejecting_receiver(self, funded):
        recipient = new_address()

        def refuse(sender, amount):
            raise NativeTransferRejectedError("no thanks")

        funded.ledger.set_receiver(recipient, refuse)
        funded.agent.pause(funded.owner)
        before = len(funded.ledger.logs)

        with pytest.raises(EmergencyWithdrawFailedError):
            funded.agent.withdraw(funded.owner, None, recipient, 10)

        assert funded.ledger.native_balance(funded.agent.address) == 100
        assert funded.ledger.native_balance(recipient) == 0
        assert len(funded.ledger.logs) == before

    def test_receiver_crash_counts_as_rejection(self, funded):
        recipient = new_address()

        def crash(sender, amount):
            raise RuntimeError("receiver blew up")

        funded.ledger.set_receiver(recipient, crash)
        funded.agent.pause(funded.owner)

        with pytest.raises(EmergencyWithdrawFailedError):
            funded.agent.withdraw(funded.owner, None, recipient, 10)

        assert funded.ledger.native_balance(funded.agent.address) == 100
        assert funded.ledger.native_balance(recipient) == 0

    def test_reentrant_receiver_cannot_withdraw_twice(self, funded):
        owner_calls = []

        def reenter(sender, amount):
            owner_calls.append(amount)
            funded.agent.withdraw(funded.owner, None, funded.owner, amount)

        funded.ledger.set_receiver(funded.owner, reenter)
        funded.agent.pause(funded.owner)

        with pytest.raises(EmergencyWithdrawFailedError):
            funded.agent.withdraw(funded.owner, None, funded.owner, 60)

        assert owner_calls == [60]
        assert funded.ledger.native_balance(funded.agent.address) == 100
