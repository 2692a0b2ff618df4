from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from valen.policy.evaluate import EgressRequest, InvalidRequest
from valen.policy.factory import load_gate
from valen.policy.gate import EgressGate
from valen.policy.model import PolicyError
from valen.policy.signing.bundle import SigningError, write_bundle


def _policy_file(tmp_path: Path) -> Path:
    path = tmp_path / "policy.yaml"
    path.write_text(
        """
policy_id: gate
default_decision: deny
rules:
  - rule_id: evil
    tool: "*"
    target: evil.example.com
    effect: deny
  - rule_id: api
    tool: "fetch*"
    target: api.example.com
    effect: allow
""".strip(),
        encoding="utf-8",
    )
    return path


def test_gate_from_path_evaluates(tmp_path: Path):
    gate = EgressGate.from_path(_policy_file(tmp_path))
    assert gate.policy_id == "gate"
    d = gate.evaluate(EgressRequest("fetch_url", "https://api.example.com/v1/x"))
    assert d.allowed is True
    assert d.rule_id == "api"


def test_is_allowed_returns_flag_and_reason(tmp_path: Path):
    gate = EgressGate.from_path(_policy_file(tmp_path))
    allowed, reason = gate.is_allowed("fetch", "https://api.example.com/")
    assert allowed is True
    assert "'api'" in reason

    allowed, reason = gate.is_allowed("fetch", "https://evil.example.com/")
    assert allowed is False
    assert "'evil'" in reason

    allowed, reason = gate.is_allowed("shell")
    assert allowed is False
    assert reason == "no matching rule; default-deny"


def test_is_allowed_raises_on_invalid_input(tmp_path: Path):
    gate = EgressGate.from_path(_policy_file(tmp_path))
    with pytest.raises(InvalidRequest):
        gate.is_allowed("", "https://api.example.com/")
    with pytest.raises(InvalidRequest):
        gate.is_allowed("fetch", "::not-a-uri::")


def test_gate_rejects_unbuilt_policy():
    with pytest.raises(PolicyError):
        EgressGate([])


def test_shared_gate_across_threads(tmp_path: Path):
    gate = EgressGate.from_path(_policy_file(tmp_path))
    requests = [
        EgressRequest(tool, f"https://{host}/p/{i}")
        for i in range(100)
        for tool in ("fetch", "fetch_url", "prefetch")
        for host in ("api.example.com", "evil.example.com")
    ]
    sequential = [gate.evaluate(r) for r in requests]
    with ThreadPoolExecutor(max_workers=16) as pool:
        parallel = list(pool.map(gate.evaluate, requests))
    assert parallel == sequential


def test_load_gate_verifies_bundle(tmp_path: Path):
    policy = _policy_file(tmp_path)
    bundle = tmp_path / "bundle.json"
    write_bundle(policy_path=policy, out_path=bundle)

    gate = load_gate(policy, bundle_path=bundle)
    assert gate.policy_id == "gate"

    policy.write_text(policy.read_text(encoding="utf-8") + "\n  - tool: '*'\n    effect: allow\n", encoding="utf-8")
    with pytest.raises(SigningError, match="hash mismatch"):
        load_gate(policy, bundle_path=bundle)


def test_load_gate_builds_from_the_verified_bytes(tmp_path: Path, monkeypatch):
    import valen.policy.factory as factory

    policy = _policy_file(tmp_path)
    bundle = tmp_path / "bundle.json"
    write_bundle(policy_path=policy, out_path=bundle)
    real_verify = factory.verify_bundle_hash_bytes

    def verify_then_swap(policy_bytes, bundle_path):
        ok = real_verify(policy_bytes, bundle_path)
        policy.write_text("policy_id: swapped\nrules:\n  - tool: '*'\n    effect: allow\n", encoding="utf-8")
        return ok

    monkeypatch.setattr(factory, "verify_bundle_hash_bytes", verify_then_swap)
    gate = load_gate(policy, bundle_path=bundle)
    assert gate.policy_id == "gate"
    assert gate.evaluate(EgressRequest("fetch_url", "https://evil.example.com/")).allowed is False
    assert gate.evaluate(EgressRequest("calc")).allowed is False


def test_load_gate_rejects_pubkey_without_bundle(tmp_path: Path):
    with pytest.raises(SigningError):
        load_gate(_policy_file(tmp_path), pubkey_path=tmp_path / "key.pem")
