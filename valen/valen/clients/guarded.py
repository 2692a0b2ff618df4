from __future__ import annotations

import re
from urllib.parse import urlsplit

from valen.audit.ledger import AuditLedger
from valen.clients.base import DEFAULT_TOP_K, RagClient
from valen.policy.backend import EgressDenied, EgressPolicy
from valen.policy.evaluate import EgressRequest, InvalidRequest


INGEST_TOOL = "rag.ingest"

_SCHEME_PREFIX_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]+://")


def is_remote(path: str) -> bool:
    """True for anything that names an off-box resource, well-formed or not.

    Malformed URIs count as remote so the gate rejects them instead of the
    backend treating them as local paths.
    """
    if path[:8].lower() == "file:///":
        return False
    if _SCHEME_PREFIX_RE.match(path):
        return True
    try:
        parts = urlsplit(path)
    except ValueError:
        return True
    # single-letter schemes are Windows drive letters
    return len(parts.scheme) > 1 and bool(parts.netloc)


class GuardedRagClient(RagClient):
    """Routes off-box ingests through the egress gate before the backend sees them."""

    def __init__(
        self,
        inner: RagClient,
        gate: EgressPolicy,
        ledger: AuditLedger | None = None,
        actor: str = "valen-agent",
    ):
        self.inner = inner
        self.gate = gate
        self.ledger = ledger
        self.actor = actor

    async def search(self, query: str, top_k: int = DEFAULT_TOP_K) -> list[str]:
        if top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {top_k}")
        results = await self.inner.search(query, top_k)
        return list(results)[:top_k]

    async def ingest_path(self, path: str) -> None:
        if is_remote(path):
            request = EgressRequest(tool_name=INGEST_TOOL, target=path)
            try:
                decision = self.gate.evaluate(request)
            except InvalidRequest as exc:
                if self.ledger is not None:
                    self.ledger.record_invalid(request, exc, actor=self.actor)
                raise
            if self.ledger is not None:
                self.ledger.record_decision(request, decision, actor=self.actor)
            if not decision.allowed:
                raise EgressDenied(request, decision)
        await self.inner.ingest_path(path)
