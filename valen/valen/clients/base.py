from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


DEFAULT_TOP_K = 5


@dataclass(frozen=True, slots=True)
class AgentMessage:
    role: str
    content: str


class LlmClient(ABC):
    @abstractmethod
    async def complete(self, system: str, user: str) -> str:
        """Return the completion for a system prompt and a user prompt."""
        raise NotImplementedError


class RagClient(ABC):
    @abstractmethod
    async def search(self, query: str, top_k: int = DEFAULT_TOP_K) -> list[str]:
        """Return at most `top_k` results, best first."""
        raise NotImplementedError

    @abstractmethod
    async def ingest_path(self, path: str) -> None:
        raise NotImplementedError
