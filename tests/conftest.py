"""Shared fixtures: a ledger with a token, licensing/royalty modules and an agent."""

from dataclasses import dataclass

import pytest
from eth_account import Account

from ipagent.agent import IPDerivativeAgent
from ipagent.ledger import Ledger
from ipagent.modules import LocalLicensingModule, LocalRoyaltyModule
from ipagent.token import LocalToken


NOW = 1_700_000_000


def new_address() -> str:
    return Account.create().address.lower()


@dataclass
class Stack:
    ledger: Ledger
    owner: str
    licensee: str
    stranger: str
    parent: str
    child: str
    template: str
    token: LocalToken
    royalty: LocalRoyaltyModule
    licensing: LocalLicensingModule
    agent: IPDerivativeAgent

    def attach_fee(self, fee: int, terms_id: int = 1) -> None:
        self.licensing.attach_license_terms(
            self.owner, self.parent, self.template, terms_id, self.token.address, fee
        )

    def fund(self, account: str, amount: int, approve: int) -> None:
        self.token.mint(self.owner, account, amount)
        self.token.approve(account, self.agent.address, approve)

    def whitelist_licensee(self, terms_id: int = 1) -> None:
        self.agent.add_to_whitelist(
            self.owner, self.parent, self.child, self.template, terms_id, self.licensee
        )


@pytest.fixture
def ledger():
    return Ledger(clock=lambda: NOW)


@pytest.fixture
def stack(ledger):
    owner = new_address()
    token = ledger.deploy("token", owner)
    royalty = ledger.deploy("royalty_module", owner)
    licensing = ledger.deploy("licensing_module", owner, royalty_module=royalty.address)
    royalty.set_licensing_module(owner, licensing.address)
    agent = IPDerivativeAgent.deploy(ledger, owner, licensing.address, royalty.address)
    return Stack(
        ledger=ledger,
        owner=owner,
        licensee=new_address(),
        stranger=new_address(),
        parent=new_address(),
        child=new_address(),
        template=new_address(),
        token=token,
        royalty=royalty,
        licensing=licensing,
        agent=agent,
    )
