"""Tests for tamper-evident audit trail behavior."""

import json

import pytest

from ipagent.audit import AuditTrail
from ipagent.events import DerivativeRegistered, EventType, LogEntry, Paused

from conftest import new_address


EMITTER = new_address()


def make_trail(tmp_path):
    return AuditTrail(
        path=tmp_path / "audit.jsonl",
        key_path=tmp_path / "secret" / "audit_hmac.key",
    )


def registered(fee):
    return LogEntry(
        emitter=EMITTER,
        event=DerivativeRegistered(
            caller=new_address(),
            child_ip_id=new_address(),
            parent_ip_id=new_address(),
            license_terms_id=1,
            license_template=new_address(),
            currency_token=new_address(),
            fee_amount=fee,
            timestamp=1,
        ),
    )


def test_audit_hash_chain_detects_tampering(tmp_path):
    trail = make_trail(tmp_path)
    trail.record(registered(10))
    trail.record(LogEntry(emitter=EMITTER, event=Paused(account=new_address())))

    lines = (tmp_path / "audit.jsonl").read_text().splitlines()
    first = json.loads(lines[0])
    first["args"]["fee_amount"] = "0"
    lines[0] = json.dumps(first, separators=(",", ":"))
    (tmp_path / "audit.jsonl").write_text("\n".join(lines) + "\n")

    with pytest.raises(RuntimeError, match="Audit chain broken"):
        trail.read_events()


def test_large_integers_are_stored_as_strings(tmp_path):
    trail = make_trail(tmp_path)
    trail.record(registered(2**200))
    [event] = trail.read_events()
    assert event.args["fee_amount"] == str(2**200)
    assert event.event_type == EventType.DERIVATIVE_REGISTERED.value


def test_filters_and_summary(tmp_path):
    trail = make_trail(tmp_path)
    trail.record(registered(1))
    trail.record(LogEntry(emitter=EMITTER, event=Paused(account=new_address())))
    trail.record(LogEntry(emitter=new_address(), event=Paused(account=new_address())))

    assert len(trail.read_events(emitter=EMITTER)) == 2
    assert len(trail.read_events(event_type=EventType.PAUSED)) == 2
    assert len(trail.read_events(limit=1)) == 1

    summary = trail.summary()
    assert summary["total_events"] == 3
    assert summary["by_type"] == {"DerivativeRegistered": 1, "Paused": 2}


def test_chain_continues_across_instances(tmp_path):
    make_trail(tmp_path).record(registered(1))
    reopened = make_trail(tmp_path)
    reopened.record(registered(2))
    events = reopened.read_events()
    assert events[1].prev_hash == events[0].event_hash
