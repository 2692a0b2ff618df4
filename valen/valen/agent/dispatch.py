from __future__ import annotations

from typing import Any, Callable

from valen.agent.tool_call import ToolCall, ToolCallError
from valen.audit.ledger import AuditLedger
from valen.policy.backend import EgressDenied, EgressPolicy
from valen.policy.evaluate import EgressRequest, InvalidRequest

ToolFn = Callable[..., Any]


class ToolDispatcher:
    """Runs registered tools only after the egress gate allows the call.

    Target arguments (`url` / `target`) are sent to the gate as the request
    target; the tool receives its args unchanged as keyword arguments.
    """

    def __init__(
        self,
        gate: EgressPolicy,
        ledger: AuditLedger | None = None,
        actor: str = "valen-agent",
        policy_id: str = "",
    ):
        self.gate = gate
        self.ledger = ledger
        self.actor = actor
        self.policy_id = policy_id
        self._tools: dict[str, ToolFn] = {}

    def register(self, name: str, fn: ToolFn) -> None:
        if not name:
            raise ToolCallError("tool name must be non-empty")
        if name in self._tools:
            raise ToolCallError(f"tool already registered: {name}")
        self._tools[name] = fn

    def tools(self) -> list[str]:
        return sorted(self._tools)

    def dispatch(self, call: ToolCall) -> Any:
        fn = self._tools.get(call.name)
        if fn is None:
            raise ToolCallError(f"unknown tool: {call.name}")

        request = EgressRequest(tool_name=call.name, target=call.target)
        try:
            decision = self.gate.evaluate(request)
        except InvalidRequest as exc:
            if self.ledger is not None:
                self.ledger.record_invalid(request, exc, actor=self.actor, request_id=call.request_id)
            raise

        if self.ledger is not None:
            self.ledger.record_decision(
                request,
                decision,
                actor=self.actor,
                request_id=call.request_id,
                policy_id=self.policy_id,
            )
        if not decision.allowed:
            raise EgressDenied(request, decision)
        return fn(**call.args)
