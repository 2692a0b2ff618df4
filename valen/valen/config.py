from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(slots=True)
class GateConfig:
    policy_path: str
    audit_dir: str = "audit"
    actor: str = "valen-agent"
    bundle_path: str = ""
    pubkey_path: str = ""


def load_gate_config() -> GateConfig:
    return GateConfig(
        policy_path=os.environ.get("VALEN_POLICY", "policies/default.yaml"),
        audit_dir=os.environ.get("VALEN_AUDIT_DIR", "audit"),
        actor=os.environ.get("VALEN_ACTOR", "valen-agent"),
        bundle_path=os.environ.get("VALEN_POLICY_BUNDLE", ""),
        pubkey_path=os.environ.get("VALEN_POLICY_PUBKEY", ""),
    )
