from __future__ import annotations

from pathlib import Path

from valen.policy.backend import EgressPolicy
from valen.policy.evaluate import Decision, EgressRequest, evaluate
from valen.policy.load import load_policy
from valen.policy.model import PolicyError, PolicySet


class EgressGate(EgressPolicy):
    """Policy decision point consulted before any network-capable tool call.

    The policy set is fixed at construction and never mutated, so a single
    gate can be shared by concurrent callers without locking.
    """

    def __init__(self, policy: PolicySet):
        if not isinstance(policy, PolicySet):
            raise PolicyError("EgressGate requires a built PolicySet")
        self._policy = policy

    @classmethod
    def from_path(cls, path: str | Path) -> "EgressGate":
        return cls(load_policy(path))

    @property
    def policy(self) -> PolicySet:
        return self._policy

    @property
    def policy_id(self) -> str:
        return self._policy.policy_id

    def evaluate(self, request: EgressRequest) -> Decision:
        return evaluate(self._policy, request)
