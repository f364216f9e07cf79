"""Tests for the file-backed ledger state store."""

import pytest

from ipagent.agent import IPDerivativeAgent
from ipagent.errors import UnauthorizedError
from ipagent.events import EventType
from ipagent.state_store import LedgerStateStore

from conftest import new_address


def deploy_agent(ledger, owner):
    royalty = ledger.deploy("royalty_module", owner)
    licensing = ledger.deploy("licensing_module", owner, royalty_module=royalty.address)
    return IPDerivativeAgent.deploy(ledger, owner, licensing.address, royalty.address)


def test_session_persists_state(tmp_path):
    store = LedgerStateStore(tmp_path / "ledger.json")
    owner = new_address()
    with store.session() as ledger:
        agent = deploy_agent(ledger, owner)
        agent.pause(owner)

    with store.session() as ledger:
        restored = ledger.contract_at(agent.address, IPDerivativeAgent)
        assert restored.paused
        assert restored.owner == owner


def test_failed_session_is_not_saved_or_published(tmp_path):
    store = LedgerStateStore(tmp_path / "ledger.json")
    owner = new_address()
    with store.session() as ledger:
        agent = deploy_agent(ledger, owner)

    seen = []
    with pytest.raises(UnauthorizedError):
        with store.session(subscribers=(seen.append,)) as ledger:
            restored = ledger.contract_at(agent.address, IPDerivativeAgent)
            restored.pause(owner)
            restored.unpause(new_address())

    assert seen == []
    assert not store.load().contract_at(agent.address, IPDerivativeAgent).paused


def test_subscribers_receive_committed_events(tmp_path):
    store = LedgerStateStore(tmp_path / "ledger.json")
    seen = []
    with store.session(subscribers=(seen.append,)) as ledger:
        deploy_agent(ledger, new_address())

    assert EventType.OWNERSHIP_TRANSFERRED in [entry.event_type for entry in seen]


def test_load_is_read_only(tmp_path):
    store = LedgerStateStore(tmp_path / "ledger.json")
    owner = new_address()
    with store.session() as ledger:
        agent = deploy_agent(ledger, owner)

    snapshot = store.load()
    snapshot.contract_at(agent.address, IPDerivativeAgent).pause(owner)

    assert not store.load().contract_at(agent.address, IPDerivativeAgent).paused
