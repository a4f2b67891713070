"""
Anthropic Messages API wrapper.

Centralizes model names, token limits, usage/cost accounting and error
classification so the rest of the code calls one of two methods:

  generate(...)   a conversation turn (system prompt + history + new message)
  complete(...)   a single-prompt completion (background analysis)

The SDK's own retries are disabled; retrying is decided by services/retry.py
using error_code() below.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Any

import anthropic

from template_interview.core.config import get_settings
from template_interview.models.conversation import ASSISTANT_ROLE, USER_ROLE

# USD per million tokens: (input, output)
_PRICING_PER_MTOK: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-6": (3.0, 15.0),
    "claude-haiku-4-5-20251001": (1.0, 5.0),
}
_DEFAULT_PRICING = (3.0, 15.0)


@dataclass(frozen=True)
class GenerationResult:
    content: str
    tokens_used: int | None = None
    confidence: float | None = None
    estimated_cost: float = 0.0


def estimate_cost_usd(model: str, input_tokens: int, output_tokens: int) -> float:
    in_price, out_price = _PRICING_PER_MTOK.get(model, _DEFAULT_PRICING)
    return (input_tokens * in_price + output_tokens * out_price) / 1_000_000


def _caused_by(exc: BaseException, kind: type[BaseException]) -> bool:
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        if isinstance(cur, kind):
            return True
        seen.add(id(cur))
        cur = cur.__cause__ or cur.__context__
    return False


def error_code(exc: BaseException) -> int | str | None:
    """
    Classify an upstream failure as an HTTP status (int) or a connection-level
    code ("ECONNRESET" / "ETIMEDOUT" / "ENOTFOUND"). None when unknown.
    """
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        value = response.get("status") or response.get("status_code")
    else:
        value = getattr(response, "status_code", None) or getattr(response, "status", None)
    if isinstance(value, int) and not isinstance(value, bool):
        return value

    code = getattr(exc, "code", None)
    if isinstance(code, str) and code.startswith("E"):
        return code

    if isinstance(exc, (anthropic.APITimeoutError, TimeoutError)) or _caused_by(exc, TimeoutError):
        return "ETIMEDOUT"
    if _caused_by(exc, socket.gaierror):
        return "ENOTFOUND"
    if isinstance(exc, (anthropic.APIConnectionError, ConnectionError)):
        return "ECONNRESET"
    return None


def to_anthropic_messages(messages: list[dict[str, str]]) -> list[dict[str, str]]:
    """
    Shape role/content pairs for the Messages API: system entries removed,
    the list starts with a user turn, and same-role neighbours are merged.
    """
    result: list[dict[str, str]] = []
    for m in messages:
        role = m.get("role")
        if role not in (USER_ROLE, ASSISTANT_ROLE):
            continue
        if not result and role == ASSISTANT_ROLE:
            continue
        if result and result[-1]["role"] == role:
            result[-1] = {"role": role, "content": f"{result[-1]['content']}\n\n{m['content']}"}
        else:
            result.append({"role": role, "content": m["content"]})
    return result


class AnthropicClient:

    def __init__(
        self,
        client: anthropic.AsyncAnthropic | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        settings = get_settings()
        # Lazy: a missing ANTHROPIC_API_KEY only fails when a call is made
        self._client = client
        self.model = model or settings.claude_sonnet_model
        self.max_tokens = max_tokens or settings.llm_max_tokens

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            settings = get_settings()
            self._client = anthropic.AsyncAnthropic(
                api_key=settings.anthropic_api_key or None,
                timeout=settings.llm_timeout_seconds,
                max_retries=0,
            )
        return self._client

    @staticmethod
    def _text_of(resp: Any) -> str:
        return "".join(
            getattr(block, "text", "") for block in resp.content
            if getattr(block, "type", "text") == "text"
        ).strip()

    async def generate(
        self,
        message: str,
        *,
        session_id: str,
        previous_messages: list[dict[str, str]] | None = None,
        system_prompt: str | None = None,
    ) -> GenerationResult:
        messages = to_anthropic_messages(
            [*(previous_messages or []), {"role": USER_ROLE, "content": message}]
        )
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
            "metadata": {"user_id": f"session:{session_id}"},
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        resp = await self._get_client().messages.create(**kwargs)

        usage = getattr(resp, "usage", None)
        input_tokens = getattr(usage, "input_tokens", 0) or 0
        output_tokens = getattr(usage, "output_tokens", 0) or 0
        return GenerationResult(
            content=self._text_of(resp),
            tokens_used=input_tokens + output_tokens,
            estimated_cost=estimate_cost_usd(self.model, input_tokens, output_tokens),
        )

    async def complete(self, prompt: str, *, model: str | None = None, max_tokens: int = 1024) -> str:
        resp = await self._get_client().messages.create(
            model=model or self.model,
            max_tokens=max_tokens,
            messages=[{"role": USER_ROLE, "content": prompt}],
        )
        return self._text_of(resp)
