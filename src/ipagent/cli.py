"""
IP derivative agent CLI.

Commands:
    ipagent init-local   Deploy a local token, licensing and royalty module
    ipagent deploy       Deploy an agent
    ipagent status       Show agent configuration and pause state
    ipagent whitelist    Manage and query the registration whitelist
    ipagent pause        Pause registration (enables emergency withdraw)
    ipagent unpause      Resume registration
    ipagent register     Register a derivative through the agent
    ipagent withdraw     Emergency withdraw while paused
    ipagent token        Local token helpers (mint, approve, balance)
    ipagent native       Local native balance helpers
    ipagent licensing    Local licensing module helpers
    ipagent events       View the audit trail of committed events
    ipagent demo         Run a full in-memory demo flow
"""

from __future__ import annotations

import json
import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click
from eth_account import Account

from . import __version__
from .agent import IPDerivativeAgent
from .audit import AuditTrail
from .config import Settings
from .errors import AgentError
from .events import EventType
from .identifiers import WILDCARD_LICENSEE, normalize_address
from .ledger import Ledger
from .modules import LocalLicensingModule
from .state_store import LedgerStateStore
from .token import LocalToken, describe_token, token_at
from .whitelist import WhitelistEntry


# ── Storage ───────────────────────────────────────────────────────

def _settings() -> Settings:
    return Settings.from_env()


def _audit() -> AuditTrail:
    settings = _settings()
    return AuditTrail(path=settings.audit_path, key_path=settings.audit_key_path)


@contextmanager
def _session(action: str) -> Iterator[Ledger]:
    """Open the persisted ledger; report agent errors and exit non-zero."""
    store = LedgerStateStore(_settings().state_path)
    try:
        with store.session(subscribers=(_audit().record,)) as ledger:
            yield ledger
    except (AgentError, ValueError) as exc:
        click.echo(f"❌ Failed to {action}: {exc}", err=True)
        sys.exit(1)


def _agent(ledger: Ledger, address: Optional[str]) -> IPDerivativeAgent:
    if not address:
        raise ValueError("No agent address (pass --agent or set IPAGENT_AGENT_ADDRESS)")
    return ledger.contract_at(address, IPDerivativeAgent)


def _load_batch(path: Path) -> list[WhitelistEntry]:
    with open(path, encoding="utf-8") as f:
        rows = json.load(f)
    if not isinstance(rows, list):
        raise ValueError("Batch file must contain a JSON list of entries")
    return [WhitelistEntry.from_dict(row) for row in rows]


def _columns(entries: list[WhitelistEntry]) -> tuple[list, list, list, list, list]:
    return (
        [e.parent_ip_id for e in entries],
        [e.child_ip_id for e in entries],
        [e.license_template for e in entries],
        [e.license_terms_id for e in entries],
        [e.licensee for e in entries],
    )


def _agent_option(fn):
    return click.option(
        "--agent",
        default=lambda: _settings().agent_address,
        show_default="env IPAGENT_AGENT_ADDRESS",
        help="Agent contract address",
    )(fn)


def _sender_option(fn):
    return click.option("--sender", required=True, help="Account submitting the call")(fn)


def _tuple_options(fn):
    fn = click.option("--terms-id", type=int, required=True, help="License terms id")(fn)
    fn = click.option("--template", required=True, help="License template address")(fn)
    fn = click.option("--child", required=True, help="Child (derivative) IP id")(fn)
    fn = click.option("--parent", required=True, help="Parent IP id")(fn)
    return fn


# ── CLI ───────────────────────────────────────────────────────────

@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log state changes to stderr")
def main(verbose: bool):
    """IP derivative agent: whitelist-gated derivative registration with delegated fees."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")


@main.command("init-local")
@click.option("--deployer", required=True, help="Account deploying the local modules")
@click.option("--token-name", default="Wrapped IP", help="Fee token name")
@click.option("--token-symbol", default="WIP", help="Fee token symbol")
@click.option("--strict/--lenient", default=True,
              help="Lenient licensing quotes zero fee for unattached terms")
def init_local(deployer: str, token_name: str, token_symbol: str, strict: bool):
    """Deploy a local fee token, royalty module and licensing module."""
    with _session("initialize local modules") as ledger:
        token = ledger.deploy("token", deployer, name=token_name, symbol=token_symbol)
        royalty = ledger.deploy("royalty_module", deployer)
        licensing = ledger.deploy("licensing_module", deployer,
                                  royalty_module=royalty.address, strict=strict)
        royalty.set_licensing_module(deployer, licensing.address)

    click.echo("✅ Local modules deployed")
    click.echo(f"   Token:     {token.address} ({token_symbol})")
    click.echo(f"   Licensing: {licensing.address}")
    click.echo(f"   Royalty:   {royalty.address}")
    click.echo(f"   export LICENSING_MODULE={licensing.address}")
    click.echo(f"   export ROYALTY_MODULE={royalty.address}")


@main.command()
@click.option("--deployer", required=True, help="Account deploying the agent")
@click.option("--owner", default=lambda: _settings().owner_address,
              show_default="env AGENT_OWNER_ADDRESS or deployer", help="Agent owner")
@click.option("--licensing-module", default=lambda: _settings().licensing_module,
              show_default="env LICENSING_MODULE", help="Licensing module address")
@click.option("--royalty-module", default=lambda: _settings().royalty_module,
              show_default="env ROYALTY_MODULE", help="Royalty module address")
def deploy(deployer: str, owner: Optional[str], licensing_module: Optional[str],
           royalty_module: Optional[str]):
    """Deploy an IP derivative agent."""
    if not licensing_module or not royalty_module:
        click.echo("❌ --licensing-module and --royalty-module are required.", err=True)
        sys.exit(1)
    with _session("deploy agent") as ledger:
        agent = IPDerivativeAgent.deploy(
            ledger,
            deployer,
            licensing_module=licensing_module,
            royalty_module=royalty_module,
            owner=owner,
        )

    click.echo(f"✅ Agent deployed: {agent.address}")
    click.echo(f"   Owner:     {agent.owner}")
    click.echo(f"   Licensing: {agent.config.licensing_module}")
    click.echo(f"   Royalty:   {agent.config.royalty_module}")
    click.echo(f"   export IPAGENT_AGENT_ADDRESS={agent.address}")


@main.command()
@_agent_option
def status(agent: Optional[str]):
    """Show agent configuration, pause state and balances."""
    with _session("read status") as ledger:
        info = _agent(ledger, agent).status()

    click.echo(f"📊 Agent {info['address']}")
    click.echo(f"   Owner:      {info['owner']}")
    click.echo(f"   Licensing:  {info['licensing_module']}")
    click.echo(f"   Royalty:    {info['royalty_module']}")
    click.echo(f"   State:      {'paused' if info['paused'] else 'active'}")
    click.echo(f"   Whitelist:  {info['whitelist_entries']} entries")
    click.echo(f"   Native:     {info['native_balance']}")


# ── Whitelist ─────────────────────────────────────────────────────

@main.group("whitelist")
def whitelist_group():
    """Whitelist administration and queries."""
    pass


@whitelist_group.command("add")
@_agent_option
@_sender_option
@_tuple_options
@click.option("--licensee", required=True, help="Licensee allowed to register")
def whitelist_add(agent, sender, parent, child, template, terms_id, licensee):
    """Whitelist one licensee for a parent/child/template/terms combination."""
    with _session("add whitelist entry") as ledger:
        entry = _agent(ledger, agent).add_to_whitelist(
            sender, parent, child, template, terms_id, licensee
        )
    click.echo(f"✓ Whitelisted {entry}")


@whitelist_group.command("remove")
@_agent_option
@_sender_option
@_tuple_options
@click.option("--licensee", required=True, help="Licensee to remove")
def whitelist_remove(agent, sender, parent, child, template, terms_id, licensee):
    """Remove one exact whitelist entry."""
    with _session("remove whitelist entry") as ledger:
        entry = _agent(ledger, agent).remove_from_whitelist(
            sender, parent, child, template, terms_id, licensee
        )
    click.echo(f"✓ Removed {entry}")


@whitelist_group.command("add-wildcard")
@_agent_option
@_sender_option
@_tuple_options
def whitelist_add_wildcard(agent, sender, parent, child, template, terms_id):
    """Allow any caller for a parent/child/template/terms combination."""
    with _session("add wildcard entry") as ledger:
        entry = _agent(ledger, agent).add_wildcard_to_whitelist(
            sender, parent, child, template, terms_id
        )
    click.echo(f"✓ Whitelisted any licensee for {entry}")


@whitelist_group.command("remove-wildcard")
@_agent_option
@_sender_option
@_tuple_options
def whitelist_remove_wildcard(agent, sender, parent, child, template, terms_id):
    """Remove a wildcard entry."""
    with _session("remove wildcard entry") as ledger:
        entry = _agent(ledger, agent).remove_wildcard_from_whitelist(
            sender, parent, child, template, terms_id
        )
    click.echo(f"✓ Removed wildcard {entry}")


@whitelist_group.command("add-batch")
@_agent_option
@_sender_option
@click.argument("batch_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def whitelist_add_batch(agent, sender, batch_file: Path):
    """Add every entry in a JSON file, or none of them."""
    with _session("add whitelist batch") as ledger:
        count = _agent(ledger, agent).add_to_whitelist_batch(sender, *_columns(_load_batch(batch_file)))
    click.echo(f"✓ Whitelisted {count} entries")


@whitelist_group.command("remove-batch")
@_agent_option
@_sender_option
@click.argument("batch_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def whitelist_remove_batch(agent, sender, batch_file: Path):
    """Remove every entry in a JSON file, or none of them."""
    with _session("remove whitelist batch") as ledger:
        count = _agent(ledger, agent).remove_from_whitelist_batch(
            sender, *_columns(_load_batch(batch_file))
        )
    click.echo(f"✓ Removed {count} entries")


@whitelist_group.command("check")
@_agent_option
@_tuple_options
@click.option("--licensee", required=True, help="Caller to check")
def whitelist_check(agent, parent, child, template, terms_id, licensee):
    """Check whether a caller may register (exact or wildcard match)."""
    with _session("check whitelist") as ledger:
        allowed = _agent(ledger, agent).is_whitelisted(parent, child, template, terms_id, licensee)
    if allowed:
        click.echo(f"✅ {licensee} is authorized")
    else:
        click.echo(f"❌ {licensee} is not authorized")
        sys.exit(1)


@whitelist_group.command("key")
@_agent_option
@_tuple_options
@click.option("--licensee", default=WILDCARD_LICENSEE, show_default="wildcard",
              help="Licensee part of the key")
def whitelist_key(agent, parent, child, template, terms_id, licensee):
    """Print the storage key for a whitelist entry."""
    with _session("derive whitelist key") as ledger:
        key = _agent(ledger, agent).whitelist_key(parent, child, template, terms_id, licensee)
    click.echo(key)


@whitelist_group.command("list")
@_agent_option
def whitelist_list(agent):
    """List whitelist entries."""
    with _session("list whitelist") as ledger:
        entries = list(_agent(ledger, agent).whitelist.entries())
    if not entries:
        click.echo("No whitelist entries")
        return
    for entry in entries:
        licensee = "*" if entry.is_wildcard else entry.licensee
        click.echo(
            f"  parent={entry.parent_ip_id} child={entry.child_ip_id} "
            f"template={entry.license_template} terms={entry.license_terms_id} licensee={licensee}"
        )


# ── Pause / registration / recovery ──────────────────────────────

@main.command()
@_agent_option
@_sender_option
def pause(agent, sender):
    """Pause registration; emergency withdraw becomes available."""
    with _session("pause") as ledger:
        _agent(ledger, agent).pause(sender)
    click.echo("⏸  Agent paused")


@main.command()
@_agent_option
@_sender_option
def unpause(agent, sender):
    """Resume registration."""
    with _session("unpause") as ledger:
        _agent(ledger, agent).unpause(sender)
    click.echo("▶️  Agent active")


@main.command()
@_agent_option
@_sender_option
@_tuple_options
@click.option("--max-fee", type=int, default=0, show_default=True,
              help="Maximum minting fee in base units (0 = no limit)")
def register(agent, sender, parent, child, template, terms_id, max_fee):
    """Register CHILD as a derivative of PARENT, paying the fee from SENDER."""
    with _session("register derivative") as ledger:
        event = _agent(ledger, agent).register_derivative(
            sender, child, parent, terms_id, template, max_fee
        )
    click.echo(f"✅ Derivative registered: {event.child_ip_id} ← {event.parent_ip_id}")
    click.echo(f"   Terms:  {event.license_terms_id} ({event.license_template})")
    click.echo(f"   Fee:    {event.fee_amount} of {event.currency_token}")


@main.command()
@_agent_option
@_sender_option
@click.option("--token", default=None, help="Token to withdraw (omit for native balance)")
@click.option("--to", "to", required=True, help="Destination account")
@click.option("--amount", type=int, required=True, help="Amount in base units")
def withdraw(agent, sender, token, to, amount):
    """Emergency withdraw (owner only, agent must be paused)."""
    with _session("withdraw") as ledger:
        event = _agent(ledger, agent).withdraw(sender, token, to, amount)
    label = "native" if token is None else event.token
    click.echo(f"✅ Withdrew {event.amount} ({label}) to {event.to}")


# ── Local collaborators ──────────────────────────────────────────

@main.group("token")
def token_group():
    """Local fee token helpers."""
    pass


@token_group.command("mint")
@click.option("--token", "token_address", required=True, help="Token address")
@_sender_option
@click.option("--to", "to", required=True, help="Recipient")
@click.option("--amount", type=int, required=True, help="Amount in base units")
def token_mint(token_address, sender, to, amount):
    """Mint tokens (token deployer only)."""
    with _session("mint") as ledger:
        ledger.contract_at(token_address, LocalToken).mint(sender, to, amount)
    click.echo(f"✓ Minted {amount} to {normalize_address(to)}")


@token_group.command("approve")
@click.option("--token", "token_address", required=True, help="Token address")
@_sender_option
@click.option("--spender", required=True, help="Spender (usually the agent)")
@click.option("--amount", type=int, required=True, help="Allowance in base units")
def token_approve(token_address, sender, spender, amount):
    """Grant an allowance, e.g. so the agent can pull minting fees."""
    with _session("approve") as ledger:
        token_at(ledger, token_address).approve(sender, spender, amount)
    click.echo(f"✓ Approved {amount} to {normalize_address(spender)}")


@token_group.command("balance")
@click.option("--token", "token_address", required=True, help="Token address")
@click.option("--account", required=True, help="Account to inspect")
def token_balance(token_address, account):
    """Show a token balance."""
    with _session("read balance") as ledger:
        info = describe_token(ledger, token_address)
        balance = token_at(ledger, token_address).balance_of(account)
    click.echo(f"{balance} {info['symbol']}")


@main.group("native")
def native_group():
    """Local native balance helpers."""
    pass


@native_group.command("fund")
@click.option("--account", required=True, help="Account to credit")
@click.option("--amount", type=int, required=True, help="Amount in base units")
def native_fund(account, amount):
    """Credit native balance on the local ledger."""
    with _session("fund") as ledger:
        ledger.mint_native(account, amount)
        balance = ledger.native_balance(account)
    click.echo(f"✓ {normalize_address(account)} native balance: {balance}")


@main.group("licensing")
def licensing_group():
    """Local licensing module helpers."""
    pass


@licensing_group.command("attach-terms")
@click.option("--module", default=lambda: _settings().licensing_module,
              show_default="env LICENSING_MODULE", help="Licensing module address")
@_sender_option
@click.option("--ip", "ip_id", required=True, help="Parent IP id")
@click.option("--template", required=True, help="License template address")
@click.option("--terms-id", type=int, required=True, help="License terms id")
@click.option("--currency", default=None, help="Fee token (omit for free terms)")
@click.option("--fee", type=int, default=0, show_default=True, help="Minting fee per license")
def licensing_attach_terms(module, sender, ip_id, template, terms_id, currency, fee):
    """Attach license terms (and their minting fee) to a parent IP."""
    if not module:
        click.echo("❌ --module is required (or set LICENSING_MODULE).", err=True)
        sys.exit(1)
    with _session("attach license terms") as ledger:
        ledger.contract_at(module, LocalLicensingModule).attach_license_terms(
            sender, ip_id, template, terms_id, currency, fee
        )
    click.echo(f"✓ Terms {terms_id} attached to {normalize_address(ip_id)} (fee {fee})")


# ── Audit ────────────────────────────────────────────────────────

@main.command()
@click.option("--emitter", default=None, help="Filter by emitting contract")
@click.option("--type", "event_type", default=None,
              type=click.Choice([t.value for t in EventType]), help="Filter by event type")
@click.option("--limit", type=int, default=20, help="Number of events")
@click.option("--webhook-url", default=None, help="POST the selected events to this URL")
@click.option("--summary", "show_summary", is_flag=True, help="Show event counts by type instead")
def events(emitter, event_type, limit, webhook_url, show_summary):
    """View the audit trail of committed events."""
    if show_summary:
        try:
            summary = _audit().summary(emitter=emitter)
        except RuntimeError as exc:
            click.echo(f"❌ {exc}", err=True)
            sys.exit(1)
        click.echo(f"📊 Audit trail: {summary['total_events']} events")
        for name, count in sorted(summary["by_type"].items()):
            click.echo(f"   {name}: {count}")
        return

    try:
        selected = _audit().read_events(
            emitter=emitter,
            event_type=EventType(event_type) if event_type else None,
            limit=limit,
        )
    except RuntimeError as exc:
        click.echo(f"❌ {exc}", err=True)
        sys.exit(1)
    if not selected:
        click.echo("No audit events found.")
        return

    for event in selected:
        ts = time.strftime("%H:%M:%S", time.localtime(event.recorded_at))
        args = " ".join(f"{k}={v}" for k, v in event.args.items())
        click.echo(f"  {ts} {event.event_type} @ {event.emitter} {args}")

    if webhook_url:
        try:
            import httpx

            body = {
                "event": "ipagent_events",
                "count": len(selected),
                "events": [
                    {
                        "event_type": e.event_type,
                        "emitter": e.emitter,
                        "recorded_at": e.recorded_at,
                        "args": e.args,
                        "event_hash": e.event_hash,
                    }
                    for e in selected
                ],
            }
            response = httpx.post(webhook_url, json=body, timeout=5.0)
            response.raise_for_status()
            click.echo(f"Webhook delivered: {webhook_url}")
        except Exception as exc:
            click.echo(f"❌ Failed to deliver webhook: {exc}", err=True)
            sys.exit(1)


# ── Demo ─────────────────────────────────────────────────────────

@main.command()
def demo():
    """Run the full delegation flow on an in-memory ledger."""
    click.echo("🎬 IP Derivative Agent Demo")
    click.echo("=" * 50)

    ledger = Ledger()
    owner = Account.create().address
    licensee = Account.create().address
    parent_ip = Account.create().address
    child_ip = Account.create().address
    template = Account.create().address

    click.echo("\n1️⃣  Deploying local modules and the agent...")
    token = ledger.deploy("token", owner)
    royalty = ledger.deploy("royalty_module", owner)
    licensing = ledger.deploy("licensing_module", owner, royalty_module=royalty.address)
    royalty.set_licensing_module(owner, licensing.address)
    agent = IPDerivativeAgent.deploy(ledger, owner, licensing.address, royalty.address)
    click.echo(f"   Agent: {agent.address} (owner {agent.owner})")

    click.echo("\n2️⃣  Parent IP attaches terms #1 with a 10 WIP minting fee...")
    licensing.attach_license_terms(owner, parent_ip, template, 1, token.address, 10)

    click.echo("\n3️⃣  Owner whitelists the licensee...")
    agent.add_to_whitelist(owner, parent_ip, child_ip, template, 1, licensee)

    click.echo("\n4️⃣  Licensee funds and approves the agent...")
    token.mint(owner, licensee, 100)
    token.approve(licensee, agent.address, 10)

    click.echo("\n5️⃣  Registering with a cap of 5 (should fail)...")
    try:
        agent.register_derivative(licensee, child_ip, parent_ip, 1, template, 5)
    except AgentError as exc:
        click.echo(f"   ❌ {exc}")

    click.echo("\n6️⃣  Registering with no cap...")
    event = agent.register_derivative(licensee, child_ip, parent_ip, 1, template, 0)
    click.echo(f"   ✅ {event.child_ip_id} ← {event.parent_ip_id}, fee {event.fee_amount}")
    click.echo(f"   Licensee balance:   {token.balance_of(licensee)}")
    click.echo(f"   Parent royalties:   {royalty.royalties_of(parent_ip, token.address)}")
    click.echo(f"   Residual allowance: {token.allowance(agent.address, royalty.address)}")

    click.echo("\n7️⃣  Committed events...")
    for entry in ledger.logs:
        click.echo(f"   {entry.event_type.value} @ {entry.emitter}")

    click.echo("\n" + "=" * 50)
    click.echo("🎉 Demo complete! Whitelist → Quote → Pull → Approve → Register → Clean up")


if __name__ == "__main__":
    main()
