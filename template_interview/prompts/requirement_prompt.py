# Prompt for background requirement extraction (Haiku). Returns strict JSON only.

from __future__ import annotations

import json
from typing import Any

# Keep transcripts short enough for the analysis model
_MAX_TRANSCRIPT_CHARS = 12000


def _transcript(conversation: list[dict[str, Any]]) -> str:
    lines = [f"{m.get('role', 'user')}: {m.get('content', '')}" for m in conversation]
    text = "\n".join(lines)
    return text[-_MAX_TRANSCRIPT_CHARS:]


def build_requirement_prompt(
    conversation: list[dict[str, Any]], context: dict[str, Any] | None = None
) -> str:
    return (
        "You are a requirements analyst.\n\n"
        f"Interview context: {json.dumps(context or {}, ensure_ascii=False)}\n\n"
        "Conversation transcript:\n"
        f"{_transcript(conversation)}\n\n"
        "List the process requirements the user has stated so far. "
        "Return strict JSON (JSON only, no explanation):\n"
        "{\n"
        '  "requirements": [\n'
        "    {\n"
        '      "category": "goal | stakeholder | timeline | deliverable | constraint | compliance",\n'
        '      "description": "one sentence",\n'
        '      "priority": "high | medium | low",\n'
        '      "confidence": 0.0\n'
        "    }\n"
        "  ]\n"
        "}"
    )
