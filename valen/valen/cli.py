from __future__ import annotations

import asyncio
from dataclasses import asdict
from pathlib import Path

import requests
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from valen.audit.exporter import export_ledger
from valen.audit.ledger import AuditLedger
from valen.audit.render import render_markdown_report
from valen.clients.guarded import GuardedRagClient, is_remote
from valen.clients.null import NullRagClient
from valen.config import GateConfig, load_gate_config
from valen.policy.backend import EgressDenied
from valen.policy.evaluate import EgressRequest, InvalidRequest
from valen.policy.factory import load_gate
from valen.policy.gate import EgressGate
from valen.policy.load import load_policy
from valen.policy.model import PolicyError
from valen.policy.signing.bundle import SigningError, verify_bundle_hash, verify_bundle_signature, write_bundle

app = typer.Typer(help="Valen orchestrator (walking skeleton) with a tool-call egress gate")
audit_app = typer.Typer(help="Audit commands")
policy_app = typer.Typer(help="Policy inspection and bundle/signature commands")
app.add_typer(audit_app, name="audit")
app.add_typer(policy_app, name="policy")
console = Console()

EXIT_INVALID = 2
EXIT_DENIED = 3


def _config(policy: str = "", audit_dir: str = "", actor: str = "") -> GateConfig:
    cfg = load_gate_config()
    if policy:
        cfg.policy_path = policy
    if audit_dir:
        cfg.audit_dir = audit_dir
    if actor:
        cfg.actor = actor
    return cfg


def _open_gate(cfg: GateConfig) -> EgressGate:
    try:
        return load_gate(cfg.policy_path, bundle_path=cfg.bundle_path, pubkey_path=cfg.pubkey_path)
    except (PolicyError, SigningError) as exc:
        console.print(f"[red]INVALID[/red] policy could not be loaded: {escape(str(exc))}")
        raise typer.Exit(EXIT_INVALID)


@app.command("ingest")
def ingest(
    path: str = typer.Argument(..., help="Local path or remote URI to ingest"),
    policy: str = typer.Option("", "--policy", help="Path to policy YAML (default: $VALEN_POLICY)"),
    audit_dir: str = typer.Option("", "--audit-dir"),
    actor: str = typer.Option("", "--actor"),
) -> None:
    cfg = _config(policy, audit_dir, actor)
    backend = NullRagClient()
    client = backend
    if is_remote(path):
        client = GuardedRagClient(backend, _open_gate(cfg), ledger=AuditLedger(cfg.audit_dir), actor=cfg.actor)

    try:
        asyncio.run(client.ingest_path(path))
    except InvalidRequest as exc:
        console.print(f"[red]INVALID[/red] {escape(str(exc))}")
        raise typer.Exit(EXIT_INVALID)
    except EgressDenied as exc:
        console.print(f"[red]DENY[/red] {escape(exc.reason)}")
        raise typer.Exit(EXIT_DENIED)
    console.print(f"[stub] Ingesting path: {path}", markup=False)


@app.command("ask")
def ask(question: list[str] = typer.Argument(..., help="Question to ask")) -> None:
    console.print(f"[stub] Asking: {' '.join(question)}", markup=False)
    console.print("[stub] Researcher would query local snapshot (VSS) and synthesize an answer.", markup=False)


@app.command("check")
def check(
    tool: str = typer.Option(..., "--tool", help="Tool name the agent wants to invoke"),
    target: str = typer.Option("", "--target", help="Target URI, omit for tools without network access"),
    policy: str = typer.Option("", "--policy", help="Path to policy YAML (default: $VALEN_POLICY)"),
    audit_dir: str = typer.Option("", "--audit-dir"),
    actor: str = typer.Option("", "--actor"),
    as_json: bool = typer.Option(False, "--json", help="Print the decision as JSON"),
) -> None:
    cfg = _config(policy, audit_dir, actor)
    gate = _open_gate(cfg)
    ledger = AuditLedger(cfg.audit_dir)
    request = EgressRequest(tool_name=tool, target=target or None)

    try:
        decision = gate.evaluate(request)
    except InvalidRequest as exc:
        ledger.record_invalid(request, exc, actor=cfg.actor)
        console.print(f"[red]INVALID[/red] {escape(str(exc))}")
        raise typer.Exit(EXIT_INVALID)

    request_id = ledger.record_decision(request, decision, actor=cfg.actor, policy_id=gate.policy_id)
    if as_json:
        console.print_json(data={"request_id": request_id, **asdict(decision)})
    elif decision.allowed:
        console.print(f"[green]ALLOW[/green] {escape(decision.reason)}")
    else:
        console.print(f"[red]DENY[/red] {escape(decision.reason)}")

    if not decision.allowed:
        raise typer.Exit(EXIT_DENIED)


@policy_app.command("show")
def policy_show(policy: str = typer.Option("", "--policy")) -> None:
    cfg = _config(policy)
    try:
        policy_set = load_policy(cfg.policy_path)
    except PolicyError as exc:
        console.print(f"[red]INVALID[/red] {escape(str(exc))}")
        raise typer.Exit(EXIT_INVALID)

    table = Table(title=f"policy {policy_set.policy_id}")
    table.add_column("#", justify="right")
    table.add_column("rule_id")
    table.add_column("tool")
    table.add_column("target")
    table.add_column("effect")
    for index, rule in enumerate(policy_set.rules):
        effect = rule.effect.value
        style = "green" if effect == "allow" else "red"
        table.add_row(
            str(index),
            escape(rule.rule_id),
            escape(rule.tool),
            rule.target.describe() if rule.target else "-",
            f"[{style}]{effect}[/{style}]",
        )
    console.print(table)


@policy_app.command("bundle")
def policy_bundle(
    policy: str = typer.Option(..., "--policy"),
    out: str = typer.Option("policies/bundle.json", "--out"),
    signature_b64: str = typer.Option("", "--signature-b64"),
) -> None:
    try:
        load_policy(policy)
    except PolicyError as exc:
        console.print(f"[red]INVALID[/red] refusing to bundle: {escape(str(exc))}")
        raise typer.Exit(EXIT_INVALID)
    out_path = write_bundle(policy_path=policy, out_path=out, signature_b64=signature_b64)
    console.print(f"wrote {out_path}")


@policy_app.command("verify")
def policy_verify(
    policy: str = typer.Option(..., "--policy"),
    bundle: str = typer.Option(..., "--bundle"),
    pubkey: str = typer.Option("", "--pubkey", help="PEM ed25519 public key"),
) -> None:
    try:
        if not verify_bundle_hash(policy_path=policy, bundle_path=bundle):
            console.print("[red]FAIL[/red] bundle hash mismatch")
            raise typer.Exit(EXIT_INVALID)
        if pubkey and not verify_bundle_signature(policy_path=policy, bundle_path=bundle, public_key_pem=pubkey):
            console.print("[red]FAIL[/red] signature verification failed")
            raise typer.Exit(EXIT_INVALID)
    except SigningError as exc:
        console.print(f"[red]FAIL[/red] {escape(str(exc))}")
        raise typer.Exit(EXIT_INVALID)

    console.print("[green]OK[/green] policy bundle verified")


@audit_app.command("tail")
def audit_tail(
    lines: int = typer.Option(20, "--lines"),
    audit_dir: str = typer.Option("", "--audit-dir"),
) -> None:
    ledger = AuditLedger(_config(audit_dir=audit_dir).audit_dir)
    for event in ledger.tail(lines):
        console.print_json(data=event)


@audit_app.command("report")
def audit_report(
    format: str = typer.Option("md", "--format"),
    output: str = typer.Option("audit/report.md", "--output"),
    audit_dir: str = typer.Option("", "--audit-dir"),
) -> None:
    if format != "md":
        raise typer.BadParameter("Only md format is supported")
    ledger = AuditLedger(_config(audit_dir=audit_dir).audit_dir)
    report = render_markdown_report(ledger)
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(report, encoding="utf-8")
    console.print(f"wrote {output_path}")


@audit_app.command("export")
def audit_export(
    endpoint: str = typer.Option("", "--endpoint"),
    only: list[str] = typer.Option([], "--only", help="Decisions to export, e.g. --only DENY"),
    audit_dir: str = typer.Option("", "--audit-dir"),
) -> None:
    if not endpoint:
        raise typer.BadParameter("--endpoint is required")
    ledger = AuditLedger(_config(audit_dir=audit_dir).audit_dir)
    try:
        count = export_ledger(ledger.ledger_path, endpoint, decisions={d.upper() for d in only} or None)
    except requests.RequestException as exc:
        console.print(f"[red]FAIL[/red] export failed: {escape(str(exc))}")
        raise typer.Exit(1)
    console.print(f"exported {count} events to {endpoint}")


if __name__ == "__main__":
    app()
