"""
Process analysis: interview progress and background requirement extraction.

calculate_conversation_progress() is a pure score used in every chat response.
RequirementAnalyzer handles REQUIREMENT_ANALYSIS jobs: it asks the analysis
model (Haiku) for the requirements stated so far and stores them on the session.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from template_interview.core.config import get_settings
from template_interview.models.conversation import (
    ConversationProgress,
    Message,
    ProcessRequirement,
)
from template_interview.models.job import BackgroundJob
from template_interview.prompts.requirement_prompt import build_requirement_prompt
from template_interview.services.llm_client import AnthropicClient
from template_interview.services.session_store import SessionStore

logger = logging.getLogger(__name__)

# Score saturates at 100 after this many messages / requirements
_MESSAGES_FOR_FULL_SCORE = 10
_REQUIREMENTS_FOR_FULL_SCORE = 5
_MIN_MESSAGES = 5
_MIN_REQUIREMENTS = 3


def calculate_conversation_progress(
    conversation: list[Message], requirements: list[ProcessRequirement]
) -> ConversationProgress:
    n = len(conversation)
    r = len(requirements)
    conversation_score = min(100.0, n / _MESSAGES_FOR_FULL_SCORE * 50)
    requirement_score = min(100.0, r / _REQUIREMENTS_FOR_FULL_SCORE * 50)

    missing: list[str] = []
    if n < _MIN_MESSAGES:
        missing.append("More conversation needed")
    if r < _MIN_REQUIREMENTS:
        missing.append("More requirements needed")

    return ConversationProgress(
        totalMessages=n,
        requirementsExtracted=r,
        completeness=round((conversation_score + requirement_score) / 2),
        missingAreas=missing or None,
    )


def _parse_json(text: str, default: dict[str, Any]) -> dict[str, Any]:
    """Robustly extract the first JSON object from an LLM response."""
    text = re.sub(r"```(?:json)?\s*", "", text).strip().rstrip("`").strip()
    try:
        result = json.loads(text)
        if isinstance(result, dict):
            return result
    except json.JSONDecodeError:
        pass
    m = re.search(r"\{.*\}", text, re.DOTALL)
    if m:
        try:
            result = json.loads(m.group())
            if isinstance(result, dict):
                return result
        except json.JSONDecodeError:
            pass
    return default


def parse_requirements(text: str) -> list[ProcessRequirement]:
    """Keep the well-formed entries of a {"requirements": [...]} reply, drop the rest."""
    raw = _parse_json(text, default={"requirements": []}).get("requirements")
    if not isinstance(raw, list):
        return []

    requirements: list[ProcessRequirement] = []
    for entry in raw:
        if isinstance(entry, dict) and isinstance(entry.get("category"), str):
            entry = {**entry, "category": entry["category"].strip().lower()}
        try:
            requirements.append(ProcessRequirement.model_validate(entry))
        except ValidationError:
            logger.debug("Skipping malformed requirement entry: %r", entry)
    return requirements


class RequirementAnalyzer:

    def __init__(self, store: SessionStore, llm: AnthropicClient | None = None) -> None:
        self._store = store
        self._llm = llm or AnthropicClient()

    async def handle(self, job: BackgroundJob) -> None:
        conversation = job.payload.get("conversation", [])
        context = job.payload.get("context", {})

        text = await self._llm.complete(
            build_requirement_prompt(conversation, context),
            model=get_settings().claude_haiku_model,
            max_tokens=1024,
        )
        requirements = parse_requirements(text)
        await self._store.set_requirements(job.sessionId, requirements)
        logger.info(
            "Stored %d requirement(s) for session=%s.", len(requirements), job.sessionId
        )
