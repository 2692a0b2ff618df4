from __future__ import annotations

import base64
import binascii
import hashlib
import json
from pathlib import Path


BUNDLE_VERSION = 1


class SigningError(ValueError):
    pass


def policy_digest(policy_bytes: bytes) -> str:
    return hashlib.sha256(policy_bytes).hexdigest()


def build_policy_bundle(policy_path: str | Path, signature_b64: str = "") -> dict:
    policy_file = Path(policy_path)
    return {
        "version": BUNDLE_VERSION,
        "policy_file": policy_file.name,
        "policy_sha256": policy_digest(policy_file.read_bytes()),
        "signature": {
            "algorithm": "ed25519",
            "sig_b64": signature_b64,
        },
    }


def write_bundle(policy_path: str | Path, out_path: str | Path, signature_b64: str = "") -> Path:
    bundle = build_policy_bundle(policy_path=policy_path, signature_b64=signature_b64)
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(bundle, indent=2), encoding="utf-8")
    return out


def _read_bundle(bundle_path: str | Path) -> dict:
    path = Path(bundle_path)
    if not path.exists():
        raise SigningError(f"Bundle not found: {path}")
    try:
        bundle = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SigningError(f"Bundle is not valid JSON: {exc}") from exc
    if not isinstance(bundle, dict):
        raise SigningError("Bundle must be a JSON object")
    if bundle.get("version") != BUNDLE_VERSION:
        raise SigningError(f"Unsupported bundle version: {bundle.get('version')}")
    return bundle


def verify_bundle_hash(policy_path: str | Path, bundle_path: str | Path) -> bool:
    return verify_bundle_hash_bytes(Path(policy_path).read_bytes(), bundle_path)


def verify_bundle_hash_bytes(policy_bytes: bytes, bundle_path: str | Path) -> bool:
    bundle = _read_bundle(bundle_path)
    return policy_digest(policy_bytes) == bundle.get("policy_sha256")


def _load_ed25519_public_key(public_key_pem: str | Path):
    try:
        from cryptography.hazmat.primitives import serialization
        from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
    except ModuleNotFoundError as exc:
        raise SigningError("cryptography package required for ed25519 verification") from exc

    try:
        key = serialization.load_pem_public_key(Path(public_key_pem).read_bytes())
    except (OSError, ValueError) as exc:
        raise SigningError(f"Could not load public key {public_key_pem}: {exc}") from exc
    if not isinstance(key, Ed25519PublicKey):
        raise SigningError("Public key is not ed25519")
    return key


def verify_bundle_signature(policy_path: str | Path, bundle_path: str | Path, public_key_pem: str | Path) -> bool:
    return verify_bundle_signature_bytes(Path(policy_path).read_bytes(), bundle_path, public_key_pem)


def verify_bundle_signature_bytes(policy_bytes: bytes, bundle_path: str | Path, public_key_pem: str | Path) -> bool:
    bundle = _read_bundle(bundle_path)
    signature_block = bundle.get("signature", {})
    if not isinstance(signature_block, dict):
        raise SigningError("Bundle signature must be a JSON object")
    sig_b64 = signature_block.get("sig_b64", "")
    if not isinstance(sig_b64, str):
        raise SigningError("Bundle signature sig_b64 must be a string")
    if not sig_b64:
        raise SigningError("Bundle missing signature")

    key = _load_ed25519_public_key(public_key_pem)
    from cryptography.exceptions import InvalidSignature

    try:
        signature = base64.b64decode(sig_b64, validate=True)
    except binascii.Error as exc:
        raise SigningError("Bundle signature is not valid base64") from exc
    try:
        key.verify(signature, policy_bytes)
    except InvalidSignature:
        return False
    return True
