"""
Context window assembly for generation calls.

Builds the role-tagged message list sent to the model from a session's
conversation:

  1. keep user / assistant entries only (system entries are re-supplied fresh)
  2. keep the last `window_size` of them
  3. prepend the system prompt, if any
  4. trim the oldest non-system entries while the estimated token cost
     exceeds the budget, never going below two entries
  5. if fewer than two entries are left while history exists, re-append the
     latest message as a user entry so the model always sees the last turn

Token cost is estimated as ceil(utf8 bytes / 4).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from template_interview.models.conversation import (
    ASSISTANT_ROLE,
    SYSTEM_ROLE,
    USER_ROLE,
    Message,
)

if TYPE_CHECKING:
    from template_interview.services.session_store import SessionStore


@dataclass(frozen=True)
class ContextOptions:
    window_size: int
    max_tokens_budget: int | None = None
    system_prompt: str | None = None

    def __post_init__(self) -> None:
        if self.window_size <= 0:
            raise ValueError("window_size must be > 0")


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text.encode("utf-8")) / 4)


def assemble_context(
    history: list[Message], options: ContextOptions
) -> list[dict[str, str]]:
    dialogue = [m for m in history if m.role in (USER_ROLE, ASSISTANT_ROLE)]
    recent = dialogue[-options.window_size:]

    messages: list[dict[str, str]] = []
    if options.system_prompt:
        messages.append({"role": SYSTEM_ROLE, "content": options.system_prompt})
    messages.extend({"role": m.role, "content": m.content} for m in recent)

    budget = options.max_tokens_budget
    if budget and budget > 0:
        total = sum(estimate_tokens(m["content"]) for m in messages)
        while total > budget and len(messages) > 2:
            idx = 1 if messages[0]["role"] == SYSTEM_ROLE else 0
            removed = messages.pop(idx)
            total -= estimate_tokens(removed["content"])

    if len(messages) < 2 and dialogue:
        messages.append({"role": USER_ROLE, "content": dialogue[-1].content})

    return messages


class HistoryAssembler:
    """Loads a session by id and assembles its context window."""

    def __init__(self, store: "SessionStore") -> None:
        self._store = store

    async def build(
        self, session_id: str, options: ContextOptions
    ) -> list[dict[str, str]]:
        session = await self._store.load(session_id)
        if session is None:
            return []
        return assemble_context(session.conversation, options)
