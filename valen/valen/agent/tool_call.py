from __future__ import annotations

import uuid
from dataclasses import dataclass, field


TARGET_ARG_KEYS = ("url", "target")


class ToolCallError(ValueError):
    pass


@dataclass(slots=True)
class ToolCall:
    name: str
    args: dict = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def target(self) -> str | None:
        present = [key for key in TARGET_ARG_KEYS if self.args.get(key) is not None]
        if not present:
            return None
        if len(present) > 1:
            raise ToolCallError(f"ambiguous target: args carry more than one of {', '.join(present)}")
        value = self.args[present[0]]
        if not isinstance(value, str):
            raise ToolCallError(f"{present[0]} must be a string")
        return value


def parse_tool_call(payload: dict) -> ToolCall:
    if not isinstance(payload, dict):
        raise ToolCallError("tool call payload must be an object")

    missing = [name for name in ("tool", "args") if name not in payload]
    if missing:
        raise ToolCallError(f"missing required fields: {', '.join(missing)}")

    tool = payload["tool"]
    args = payload["args"]
    if not isinstance(tool, str) or not tool.strip():
        raise ToolCallError("tool must be a non-empty string")
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise ToolCallError("args must be an object")

    request_id = payload.get("request_id")
    if request_id is None:
        call = ToolCall(name=tool, args=args)
    elif not isinstance(request_id, str) or not request_id.strip():
        raise ToolCallError("request_id must be a non-empty string")
    else:
        call = ToolCall(name=tool, args=args, request_id=request_id)

    # rejects ambiguous or non-string targets up front
    call.target
    return call
