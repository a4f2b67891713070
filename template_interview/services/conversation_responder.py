"""
ConversationResponder: one generation call for one interview turn.

Builds the system prompt from the session context, assembles the bounded
history window, and hands both to the LLM client. Retrying and fallback are
the orchestrator's concern.
"""

from __future__ import annotations

from template_interview.core.config import get_settings
from template_interview.models.conversation import SYSTEM_ROLE, ConversationSession
from template_interview.prompts.system_prompt import build_system_prompt
from template_interview.services.history_assembler import ContextOptions, assemble_context
from template_interview.services.llm_client import AnthropicClient, GenerationResult


class ConversationResponder:

    def __init__(
        self,
        llm: AnthropicClient | None = None,
        window_size: int | None = None,
        max_tokens_budget: int | None = None,
    ) -> None:
        settings = get_settings()
        self._llm = llm or AnthropicClient()
        self._window_size = window_size or settings.history_window_size
        self._budget = max_tokens_budget or settings.history_tokens_budget

    async def respond(self, session: ConversationSession, message: str) -> GenerationResult:
        system_prompt = build_system_prompt(session.context)
        window = assemble_context(
            session.conversation,
            ContextOptions(
                window_size=self._window_size,
                max_tokens_budget=self._budget,
                system_prompt=system_prompt,
            ),
        )
        previous = [m for m in window if m["role"] != SYSTEM_ROLE]
        return await self._llm.generate(
            message,
            session_id=session.sessionId,
            previous_messages=previous,
            system_prompt=system_prompt,
        )
