from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

from .model import DEFAULT_DENY_RULE_ID, Effect, PolicyRule, PolicySet, TargetMatcher


DEFAULT_DENY_REASON = "no matching rule; default-deny"
DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*$")
# RFC 3986 unreserved, reserved and percent-encoded characters
_URI_CHARS_RE = re.compile(r"^(?:[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=]|%[0-9A-Fa-f]{2})+$")
_DOT_SEGMENTS = {".", ".."}


class InvalidRequest(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class EgressRequest:
    tool_name: str
    target: str | None = None


@dataclass(frozen=True, slots=True)
class Target:
    scheme: str
    host: str
    port: int | None
    path: str


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    reason: str
    rule_id: str
    rule_index: int | None = None

    def __post_init__(self) -> None:
        if not self.reason:
            raise ValueError("decision reason must not be empty")


def parse_target(target: object) -> Target:
    """Parse an absolute URI into the parts rules match on.

    Raises InvalidRequest for anything that is not a well-formed absolute URI
    with a host. The port is the explicit one, else the scheme default.
    """
    if not isinstance(target, str) or not target:
        raise InvalidRequest("target must be a non-empty URI string")
    if not _URI_CHARS_RE.match(target):
        raise InvalidRequest(f"target URI contains characters outside RFC 3986: {target!r}")

    try:
        parsed = urlsplit(target)
        explicit_port = parsed.port
    except ValueError as exc:
        raise InvalidRequest(f"malformed target URI {target!r}: {exc}") from exc

    if not parsed.scheme or not _SCHEME_RE.match(parsed.scheme):
        raise InvalidRequest(f"target URI has no valid scheme: {target!r}")
    host = parsed.hostname
    if not host:
        raise InvalidRequest(f"target URI has no host: {target!r}")
    if parsed.netloc.count("@") > 1:
        raise InvalidRequest(f"target URI has an ambiguous userinfo: {target!r}")
    if any(segment in _DOT_SEGMENTS for segment in re.split(r"[/\\]", unquote(parsed.path))):
        raise InvalidRequest(f"target URI path contains dot segments: {target!r}")

    port = explicit_port if explicit_port is not None else DEFAULT_PORTS.get(parsed.scheme)
    return Target(scheme=parsed.scheme, host=host, port=port, path=parsed.path or "/")


def validate_request(request: EgressRequest) -> Target | None:
    if not isinstance(request.tool_name, str) or not request.tool_name.strip():
        raise InvalidRequest("tool name must be a non-empty string")
    if request.target is None:
        return None
    return parse_target(request.target)


def match_tool(pattern: str, tool_name: str) -> bool:
    if pattern.endswith("*"):
        return tool_name.startswith(pattern[:-1])
    return tool_name == pattern


def match_host(pattern: str, host: str) -> bool:
    if pattern.startswith("*."):
        # strict subdomains only
        return host.endswith(pattern[1:])
    return host == pattern


def match_target(matcher: TargetMatcher, target: Target | None) -> bool:
    if target is None:
        return False
    if not match_host(matcher.host, target.host):
        return False
    if matcher.port is not None and target.port != matcher.port:
        return False
    if matcher.path_prefix and not target.path.startswith(matcher.path_prefix):
        return False
    return True


def _rule_reason(index: int, rule: PolicyRule, request: EgressRequest, target: Target | None) -> str:
    verb = "allows" if rule.effect is Effect.ALLOW else "denies"
    reason = f"rule #{index} '{rule.rule_id}' {verb} {request.tool_name}"
    if target is not None:
        reason += f" -> {target.host}"
    if rule.description:
        reason += f": {rule.description}"
    return reason


def evaluate(policy: PolicySet, request: EgressRequest) -> Decision:
    target = validate_request(request)

    for index, rule in enumerate(policy.rules):
        if not match_tool(rule.tool, request.tool_name):
            continue
        if rule.target is not None and not match_target(rule.target, target):
            continue
        if rule.rule_id == DEFAULT_DENY_RULE_ID:
            break
        return Decision(
            allowed=rule.effect is Effect.ALLOW,
            reason=_rule_reason(index, rule, request, target),
            rule_id=rule.rule_id,
            rule_index=index,
        )

    return Decision(False, DEFAULT_DENY_REASON, DEFAULT_DENY_RULE_ID)
