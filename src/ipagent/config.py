"""Environment-driven settings for the CLI and local tooling."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


@dataclass(frozen=True)
class Settings:
    home: Path
    state_path: Path
    audit_path: Path
    audit_key_path: Path
    owner_address: Optional[str] = None
    licensing_module: Optional[str] = None
    royalty_module: Optional[str] = None
    agent_address: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        # Path.home() is read per call so a changed HOME takes effect
        home = Path(env["IPAGENT_HOME"]) if env.get("IPAGENT_HOME") else Path.home() / ".ipagent"
        secrets_dir = Path.home() / ".ipagent-secrets"
        return cls(
            home=home,
            state_path=_path(env, "IPAGENT_STATE_PATH", home / "ledger.json"),
            audit_path=_path(env, "IPAGENT_AUDIT_PATH", home / "audit.jsonl"),
            audit_key_path=_path(env, "IPAGENT_AUDIT_KEY_PATH", secrets_dir / "audit_hmac.key"),
            # Same variable names as the deployment Makefile
            owner_address=env.get("AGENT_OWNER_ADDRESS") or None,
            licensing_module=env.get("LICENSING_MODULE") or None,
            royalty_module=env.get("ROYALTY_MODULE") or None,
            agent_address=env.get("IPAGENT_AGENT_ADDRESS") or None,
        )


def _path(env: Mapping[str, str], name: str, default: Path) -> Path:
    value = env.get(name)
    return Path(value) if value else default
