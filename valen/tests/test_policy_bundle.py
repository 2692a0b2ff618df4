import base64
import json

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from valen.policy.signing.bundle import SigningError, verify_bundle_hash, verify_bundle_signature, write_bundle


def _policy(tmp_path):
    policy = tmp_path / "policy.yaml"
    policy.write_text("policy_id: t\ndefault_decision: deny\n", encoding="utf-8")
    return policy


def _keypair(tmp_path):
    private_key = Ed25519PrivateKey.generate()
    pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    pubkey = tmp_path / "pub.pem"
    pubkey.write_bytes(pem)
    return private_key, pubkey


def test_bundle_hash_verification(tmp_path):
    policy = _policy(tmp_path)
    bundle = tmp_path / "bundle.json"
    write_bundle(policy_path=policy, out_path=bundle)
    assert verify_bundle_hash(policy_path=policy, bundle_path=bundle)

    policy.write_text("policy_id: t\ndefault_decision: deny\nrules: []\n", encoding="utf-8")
    assert not verify_bundle_hash(policy_path=policy, bundle_path=bundle)


def test_bundle_signature_verification(tmp_path):
    policy = _policy(tmp_path)
    private_key, pubkey = _keypair(tmp_path)
    signature = base64.b64encode(private_key.sign(policy.read_bytes())).decode("ascii")
    bundle = tmp_path / "bundle.json"
    write_bundle(policy_path=policy, out_path=bundle, signature_b64=signature)

    assert verify_bundle_signature(policy_path=policy, bundle_path=bundle, public_key_pem=pubkey)

    other_key = Ed25519PrivateKey.generate()
    forged = base64.b64encode(other_key.sign(policy.read_bytes())).decode("ascii")
    write_bundle(policy_path=policy, out_path=bundle, signature_b64=forged)
    assert not verify_bundle_signature(policy_path=policy, bundle_path=bundle, public_key_pem=pubkey)


def test_bundle_without_signature_fails_signature_check(tmp_path):
    policy = _policy(tmp_path)
    _, pubkey = _keypair(tmp_path)
    bundle = tmp_path / "bundle.json"
    write_bundle(policy_path=policy, out_path=bundle)
    with pytest.raises(SigningError, match="missing signature"):
        verify_bundle_signature(policy_path=policy, bundle_path=bundle, public_key_pem=pubkey)


def test_malformed_bundle(tmp_path):
    policy = _policy(tmp_path)
    bundle = tmp_path / "bundle.json"
    bundle.write_text(json.dumps({"version": 99}), encoding="utf-8")
    with pytest.raises(SigningError, match="version"):
        verify_bundle_hash(policy_path=policy, bundle_path=bundle)
    with pytest.raises(SigningError, match="not found"):
        verify_bundle_hash(policy_path=policy, bundle_path=tmp_path / "missing.json")


@pytest.mark.parametrize(
    "signature, message",
    [
        ("abc", "JSON object"),
        (["abc"], "JSON object"),
        ({"alg": "ed25519", "sig_b64": 5}, "must be a string"),
    ],
)
def test_malformed_signature_block(tmp_path, signature, message):
    policy = _policy(tmp_path)
    _, pubkey = _keypair(tmp_path)
    bundle = tmp_path / "bundle.json"
    write_bundle(policy_path=policy, out_path=bundle)
    data = json.loads(bundle.read_text(encoding="utf-8"))
    data["signature"] = signature
    bundle.write_text(json.dumps(data), encoding="utf-8")
    with pytest.raises(SigningError, match=message):
        verify_bundle_signature(policy_path=policy, bundle_path=bundle, public_key_pem=pubkey)
