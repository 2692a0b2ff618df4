from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from valen.policy.evaluate import Decision, EgressRequest


class AuditLedger:
    """Append-only JSONL record of egress decisions."""

    def __init__(self, audit_dir: str | Path = "audit"):
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        self.ledger_path = self.audit_dir / "ledger.jsonl"
        self._lock = threading.Lock()

    def new_request_id(self) -> str:
        return str(uuid.uuid4())

    def write_event(self, event: dict[str, Any]) -> None:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **event,
        }
        line = json.dumps(payload, sort_keys=True) + "\n"
        with self._lock, self.ledger_path.open("a", encoding="utf-8") as fh:
            fh.write(line)

    def record_decision(
        self,
        request: EgressRequest,
        decision: Decision,
        *,
        actor: str,
        request_id: str = "",
        policy_id: str = "",
    ) -> str:
        request_id = request_id or self.new_request_id()
        self.write_event(
            {
                "request_id": request_id,
                "actor": actor,
                "tool": request.tool_name,
                "target": request.target,
                "decision": "ALLOW" if decision.allowed else "DENY",
                "reason": decision.reason,
                "rule_id": decision.rule_id,
                "rule_index": decision.rule_index,
                "policy_id": policy_id,
            }
        )
        return request_id

    def record_invalid(self, request: EgressRequest, error: Exception, *, actor: str, request_id: str = "") -> str:
        request_id = request_id or self.new_request_id()
        self.write_event(
            {
                "request_id": request_id,
                "actor": actor,
                "tool": request.tool_name,
                "target": request.target,
                "decision": "INVALID",
                "reason": str(error),
                "rule_id": "invalid_request",
            }
        )
        return request_id

    def tail(self, n: int = 20) -> list[dict[str, Any]]:
        if not self.ledger_path.exists():
            return []
        lines = self.ledger_path.read_text(encoding="utf-8").splitlines()
        out: list[dict[str, Any]] = []
        for line in lines[-n:]:
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(event, dict):
                out.append(event)
        return out
