from __future__ import annotations

import re
from pathlib import Path

import yaml

from .model import Effect, PolicyError, PolicyRule, PolicySet, TargetMatcher


_HOST = r"(?:\*\.)?[A-Za-z0-9](?:[A-Za-z0-9.\-]*[A-Za-z0-9])?"
_IPV6 = r"\[[0-9A-Fa-f:.]+\]"
_TARGET_RE = re.compile(rf"^(?P<host>{_HOST}|{_IPV6})(?::(?P<port>\d+))?(?P<path>/\S*)?$")
_HOST_RE = re.compile(rf"^(?:{_HOST}|{_IPV6}|[0-9A-Fa-f.]*:[0-9A-Fa-f:.]*)$")


def _ensure_list(value: object, field_name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise PolicyError(f"{field_name} must be a list")
    return value


def _normalize_host(host: str) -> str:
    # URI parsing reports IPv6 hosts without brackets
    return host.strip().lower().strip("[]")


def _parse_port(value: object, where: str) -> int | None:
    if value is None:
        return None
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise PolicyError(f"{where}: port must be an integer") from exc
    if not 0 < port < 65536:
        raise PolicyError(f"{where}: port out of range: {port}")
    return port


def _parse_tool(value: object, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise PolicyError(f"{where}: tool must be a non-empty string")
    if "*" in value[:-1]:
        raise PolicyError(f"{where}: only a single trailing '*' wildcard is supported: {value}")
    return value


def _parse_target(value: object, where: str) -> TargetMatcher | None:
    if value is None:
        return None

    if isinstance(value, str):
        match = _TARGET_RE.match(value.strip())
        if not match:
            raise PolicyError(f"{where}: malformed target: {value}")
        return TargetMatcher(
            host=_normalize_host(match.group("host")),
            port=_parse_port(match.group("port"), where),
            path_prefix=match.group("path") or None,
        )

    if not isinstance(value, dict):
        raise PolicyError(f"{where}: target must be a string or mapping")
    host = value.get("host")
    if not isinstance(host, str) or not _HOST_RE.match(host.strip()):
        raise PolicyError(f"{where}: target.host must be a hostname")
    path_prefix = value.get("path_prefix")
    if path_prefix is not None and (not isinstance(path_prefix, str) or not path_prefix.startswith("/")):
        raise PolicyError(f"{where}: target.path_prefix must start with '/'")
    return TargetMatcher(
        host=_normalize_host(host),
        port=_parse_port(value.get("port"), where),
        path_prefix=path_prefix or None,
    )


def _parse_effect(value: object, where: str) -> Effect:
    try:
        return Effect(str(value).lower())
    except ValueError as exc:
        raise PolicyError(f"{where}: effect must be 'allow' or 'deny', got {value!r}") from exc


def parse_policy(data: object, default_policy_id: str = "policy") -> PolicySet:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PolicyError("Policy must be a mapping")

    policy_id = data.get("policy_id", default_policy_id)
    default_decision = data.get("default_decision", "deny")
    if default_decision != "deny":
        raise PolicyError("Only default deny is supported")

    rules: list[PolicyRule] = []
    for idx, item in enumerate(_ensure_list(data.get("rules"), "rules")):
        where = f"rules[{idx}]"
        if not isinstance(item, dict):
            raise PolicyError(f"Invalid rule at index {idx}")
        if "effect" not in item:
            raise PolicyError(f"{where}: effect is required")
        rules.append(
            PolicyRule(
                rule_id=str(item.get("rule_id", f"rule_{idx}")),
                tool=_parse_tool(item.get("tool"), where),
                effect=_parse_effect(item["effect"], where),
                target=_parse_target(item.get("target"), where),
                description=str(item.get("description", "")),
            )
        )

    return PolicySet.build(policy_id=str(policy_id), rules=rules)


def load_policy_bytes(data: bytes, policy_id: str = "policy") -> PolicySet:
    try:
        document = yaml.safe_load(data.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise PolicyError(f"Policy is not valid UTF-8: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PolicyError(f"Policy is not valid YAML: {exc}") from exc
    return parse_policy(document, default_policy_id=policy_id)


def read_policy_bytes(path: str | Path) -> bytes:
    path_obj = Path(path)
    if not path_obj.exists():
        raise PolicyError(f"Policy file not found: {path_obj}")
    return path_obj.read_bytes()


def load_policy(path: str | Path) -> PolicySet:
    return load_policy_bytes(read_policy_bytes(path), policy_id=Path(path).stem)
