from __future__ import annotations

from pathlib import Path

from valen.policy.gate import EgressGate
from valen.policy.load import load_policy_bytes, read_policy_bytes
from valen.policy.signing.bundle import SigningError, verify_bundle_hash_bytes, verify_bundle_signature_bytes


def load_gate(policy_path: str | Path, bundle_path: str | Path = "", pubkey_path: str | Path = "") -> EgressGate:
    # the bytes that are verified are the bytes that get parsed
    policy_bytes = read_policy_bytes(policy_path)
    if bundle_path:
        if not verify_bundle_hash_bytes(policy_bytes, bundle_path):
            raise SigningError(f"policy bundle hash mismatch: {bundle_path}")
        if pubkey_path and not verify_bundle_signature_bytes(policy_bytes, bundle_path, pubkey_path):
            raise SigningError(f"policy bundle signature verification failed: {bundle_path}")
    elif pubkey_path:
        raise SigningError("a public key was given without a policy bundle")
    return EgressGate(load_policy_bytes(policy_bytes, policy_id=Path(policy_path).stem))
