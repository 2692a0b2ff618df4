from __future__ import annotations

from valen.clients.base import DEFAULT_TOP_K, RagClient


class NullRagClient(RagClient):
    """Retrieval backend that indexes nothing; remembers what it was asked to ingest."""

    def __init__(self):
        self.ingested: list[str] = []

    async def search(self, query: str, top_k: int = DEFAULT_TOP_K) -> list[str]:
        return []

    async def ingest_path(self, path: str) -> None:
        self.ingested.append(path)
