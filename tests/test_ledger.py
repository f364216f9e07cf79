"""Tests for the transactional ledger."""

import copy

import pytest

from ipagent.agent import IPDerivativeAgent
from ipagent.errors import LedgerError, UnknownContractError, ZeroIdentifierError
from ipagent.events import EventType, Paused
from ipagent.identifiers import ZERO_ADDRESS
from ipagent.ledger import Ledger
from ipagent.token import LocalToken

from conftest import new_address


class TestDeployment:
    def test_addresses_are_deterministic_per_deployer_nonce(self):
        deployer = new_address()
        first, second = Ledger(), Ledger()
        a1 = first.deploy("token", deployer).address
        a2 = first.deploy("token", deployer).address
        b1 = second.deploy("token", deployer).address
        assert a1 == b1
        assert a1 != a2

    def test_contract_at_returns_live_instance(self, stack):
        assert stack.ledger.contract_at(stack.agent.address) is stack.agent
        assert stack.ledger.contract_at(stack.token.address.upper().replace("0X", "0x"), LocalToken) is stack.token

    def test_contract_at_unknown_address(self, ledger):
        with pytest.raises(UnknownContractError):
            ledger.contract_at(new_address())

    def test_contract_at_type_mismatch(self, stack):
        with pytest.raises(LedgerError, match="not a LocalToken"):
            stack.ledger.contract_at(stack.agent.address, LocalToken)

    def test_unknown_kind(self, ledger):
        with pytest.raises(LedgerError):
            ledger.deploy("nope", new_address())

    def test_failed_deploy_leaves_no_account(self, stack):
        before = stack.ledger.contracts()
        nonce_state = copy.deepcopy(stack.ledger.state["nonces"])
        with pytest.raises(ZeroIdentifierError):
            IPDerivativeAgent.deploy(stack.ledger, stack.owner, ZERO_ADDRESS, stack.royalty.address)
        assert stack.ledger.contracts() == before
        assert stack.ledger.state["nonces"] == nonce_state

    def test_rehydrates_from_state(self, stack):
        stack.whitelist_licensee()
        stack.agent.pause(stack.owner)

        restored = Ledger(copy.deepcopy(stack.ledger.state))
        agent = restored.contract_at(stack.agent.address, IPDerivativeAgent)

        assert agent is not stack.agent
        assert agent.paused
        assert agent.owner == stack.owner
        assert agent.is_whitelisted(stack.parent, stack.child, stack.template, 1, stack.licensee)
        assert restored.contracts("licensing_module") == [stack.licensing.address]


class TestTransactions:
    def test_rollback_restores_state_and_drops_events(self, stack):
        seen = []
        stack.ledger.subscribe(seen.append)
        with pytest.raises(RuntimeError):
            with stack.ledger.transaction():
                stack.agent.pause(stack.owner)
                assert stack.agent.paused
                raise RuntimeError("abort")
        assert not stack.agent.paused
        assert seen == []

    def test_events_delivered_on_outer_commit(self, stack):
        seen = []
        stack.ledger.subscribe(seen.append)
        with stack.ledger.transaction():
            stack.agent.pause(stack.owner)
            assert seen == []
        assert [entry.event for entry in seen] == [Paused(account=stack.owner)]

    def test_inner_failure_keeps_outer_changes(self, stack):
        with stack.ledger.transaction():
            stack.token.mint(stack.owner, stack.licensee, 5)
            with pytest.raises(ZeroIdentifierError):
                with stack.ledger.transaction():
                    stack.token.mint(stack.owner, stack.licensee, 7)
                    stack.token.mint(stack.owner, ZERO_ADDRESS, 1)
        assert stack.token.balance_of(stack.licensee) == 5
        transfers = [e for e in stack.ledger.logs if e.event_type == EventType.TRANSFER]
        assert [e.event.amount for e in transfers] == [5]


class TestNativeValue:
    def test_mint_and_send(self, ledger):
        a, b = new_address(), new_address()
        ledger.mint_native(a, 10)
        assert ledger.send_native(a, b, 4)
        assert (ledger.native_balance(a), ledger.native_balance(b)) == (6, 4)

    def test_send_short_balance_returns_false(self, ledger):
        a, b = new_address(), new_address()
        ledger.mint_native(a, 3)
        assert not ledger.send_native(a, b, 4)
        assert ledger.native_balance(a) == 3

    def test_receiver_hook_sees_transfer(self, ledger):
        a, b = new_address(), new_address()
        calls = []
        ledger.set_receiver(b, lambda sender, amount: calls.append((sender, amount)))
        ledger.mint_native(a, 3)
        ledger.send_native(a, b, 3)
        assert calls == [(a, 3)]

        ledger.set_receiver(b, None)
        ledger.mint_native(a, 1)
        ledger.send_native(a, b, 1)
        assert len(calls) == 1
