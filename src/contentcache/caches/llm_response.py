"""
LLM response cache.

Exact-match cache for chat completions. The key combines the model, the last
user message and optional hashes of the system prompt and tool definitions,
so a response is only reused for the same question asked in the same setup.
Short queries and cheap responses are not worth caching and are ignored.

Messages are plain mappings with ``role`` and ``content`` keys.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from ..cache import ContentStore
from ..cache.invalidation import compile_pattern
from ..config import CacheConfig
from ..utils import hash_content, hash_text

MIN_QUERY_LENGTH = 20
QUERY_PREFIX_LENGTH = 200

Message = Mapping[str, Any]


@dataclass
class CachedResponse:
    content: str | None
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    tool_calls: list[Any] = field(default_factory=list)
    query_prefix: str = ""
    message_count: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def extract_query(messages: Sequence[Message]) -> str:
    """Content of the last user message with string content, or ``""``."""
    for message in reversed(messages):
        if message.get("role") == "user" and isinstance(message.get("content"), str):
            return message["content"]
    return ""


def hash_tools(tools: Any) -> str:
    """Stable hash of a tool definition list, for use as ``tools_hash``."""
    return hash_content(tools)


class LLMResponseCache:
    """Exact-match cache of model responses."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        min_tokens_to_cache: int = 100,
        cost_per_million: float = 3.0,
        **store_kwargs: Any,
    ):
        self.config = config or CacheConfig.for_llm_responses()
        self.store: ContentStore[CachedResponse] = ContentStore(
            self.config, name="llm_response", **store_kwargs
        )
        self.min_tokens_to_cache = min_tokens_to_cache
        self.cost_per_million = cost_per_million
        self.tokens_saved = 0
        self._saved_lock = threading.Lock()

    @staticmethod
    def make_key(
        query: str,
        model: str,
        system_prompt_hash: str | None = None,
        tools_hash: str | None = None,
    ) -> str:
        return ":".join([model, hash_text(query), system_prompt_hash or "", tools_hash or ""])

    def get(
        self,
        messages: Sequence[Message],
        model: str,
        *,
        system_prompt_hash: str | None = None,
        tools_hash: str | None = None,
    ) -> CachedResponse | None:
        query = extract_query(messages)
        if len(query) < MIN_QUERY_LENGTH:
            return None
        response = self.store.get(self.make_key(query, model, system_prompt_hash, tools_hash))
        if response is not None:
            with self._saved_lock:
                self.tokens_saved += response.total_tokens
        return response

    def set(
        self,
        messages: Sequence[Message],
        response: CachedResponse,
        *,
        system_prompt_hash: str | None = None,
        tools_hash: str | None = None,
    ) -> bool:
        """
        Cache ``response`` for the conversation.

        Returns:
            False when the query is too short, the response used fewer than
            ``min_tokens_to_cache`` tokens, or the store declined it
        """
        query = extract_query(messages)
        if len(query) < MIN_QUERY_LENGTH:
            return False
        if response.total_tokens < self.min_tokens_to_cache:
            return False

        stored = replace(response, query_prefix=query[:QUERY_PREFIX_LENGTH], message_count=len(messages))
        key = self.make_key(query, response.model, system_prompt_hash, tools_hash)
        return self.store.put(key, stored)

    def invalidate(self, pattern: Any) -> int:
        """Drop responses whose query prefix matches ``pattern``."""
        compiled = compile_pattern(pattern)
        return self.store.invalidate_where(
            lambda _key, response: bool(compiled.search(response.query_prefix)), reason="pattern"
        )

    @property
    def estimated_cost_saved(self) -> float:
        return self.tokens_saved / 1_000_000 * self.cost_per_million

    def get_stats(self) -> dict[str, Any]:
        stats = self.store.get_stats().to_dict()
        stats["tokens_saved"] = self.tokens_saved
        stats["estimated_cost_saved"] = self.estimated_cost_saved
        return stats

    def format_stats(self) -> str:
        stats = self.get_stats()
        return "\n".join(
            [
                "LLM Response Cache Statistics",
                f"  Entries: {stats['total_entries']}",
                f"  Hit Rate: {stats['hit_rate'] * 100:.1f}%",
                f"  Tokens Saved: {stats['tokens_saved']:,}",
                f"  Est. Cost Saved: ${stats['estimated_cost_saved']:.4f}",
            ]
        )

    def clear(self) -> None:
        self.store.clear()
        with self._saved_lock:
            self.tokens_saved = 0

    def dispose(self) -> None:
        self.store.dispose()

    def __len__(self) -> int:
        return len(self.store)


_llm_response_cache: LLMResponseCache | None = None


def get_llm_response_cache(config: CacheConfig | None = None) -> LLMResponseCache:
    global _llm_response_cache
    if _llm_response_cache is None:
        _llm_response_cache = LLMResponseCache(config)
    return _llm_response_cache


def reset_llm_response_cache() -> None:
    global _llm_response_cache
    if _llm_response_cache is not None:
        _llm_response_cache.dispose()
    _llm_response_cache = None
