from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


DEFAULT_DENY_RULE_ID = "default_deny"


class PolicyError(ValueError):
    pass


class Effect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True, slots=True)
class TargetMatcher:
    host: str
    port: int | None = None
    path_prefix: str | None = None

    def describe(self) -> str:
        text = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is not None:
            text += f":{self.port}"
        if self.path_prefix:
            text += self.path_prefix
        return text


@dataclass(frozen=True, slots=True)
class PolicyRule:
    rule_id: str
    tool: str
    effect: Effect
    target: TargetMatcher | None = None
    description: str = ""


DEFAULT_DENY_RULE = PolicyRule(rule_id=DEFAULT_DENY_RULE_ID, tool="*", effect=Effect.DENY)


@dataclass(frozen=True, slots=True)
class PolicySet:
    """Ordered, immutable rule list. The last rule is always the implicit deny-all."""

    policy_id: str
    rules: tuple[PolicyRule, ...]

    def __post_init__(self) -> None:
        if not self.rules:
            raise PolicyError("policy set must contain at least the default deny rule")
        if self.rules[-1] != DEFAULT_DENY_RULE:
            raise PolicyError("policy set must end with the default deny rule")
        seen: set[str] = set()
        for rule in self.rules:
            if rule.rule_id in seen:
                raise PolicyError(f"duplicate rule_id: {rule.rule_id}")
            seen.add(rule.rule_id)

    @classmethod
    def build(cls, policy_id: str, rules: list[PolicyRule] | tuple[PolicyRule, ...] = ()) -> "PolicySet":
        return cls(policy_id=policy_id, rules=(*rules, DEFAULT_DENY_RULE))

    @property
    def explicit_rules(self) -> tuple[PolicyRule, ...]:
        return self.rules[:-1]
