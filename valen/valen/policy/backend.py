from __future__ import annotations

from abc import ABC, abstractmethod

from valen.policy.evaluate import Decision, EgressRequest


class EgressDenied(PermissionError):
    def __init__(self, request: EgressRequest, decision: Decision):
        super().__init__(decision.reason)
        self.request = request
        self.decision = decision

    @property
    def reason(self) -> str:
        return self.decision.reason


class EgressPolicy(ABC):
    @abstractmethod
    def evaluate(self, request: EgressRequest) -> Decision:
        raise NotImplementedError

    def is_allowed(self, tool_name: str, target: str | None = None) -> tuple[bool, str]:
        decision = self.evaluate(EgressRequest(tool_name=tool_name, target=target))
        return decision.allowed, decision.reason

