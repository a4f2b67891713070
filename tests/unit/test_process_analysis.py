"""
Tests for progress scoring and background requirement analysis.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import OWNER_ID, SESSION_ID

from template_interview.models.conversation import Message, ProcessRequirement
from template_interview.models.job import REQUIREMENT_ANALYSIS, BackgroundJob
from template_interview.services.process_analysis import (
    RequirementAnalyzer,
    calculate_conversation_progress,
    parse_requirements,
)


def _conversation(n):
    return [Message(role="user" if i % 2 == 0 else "assistant", content=f"m{i}") for i in range(n)]


def _requirements(n):
    return [ProcessRequirement(category="goal", description=f"r{i}") for i in range(n)]


class TestConversationProgress:

    def test_empty(self):
        progress = calculate_conversation_progress([], [])
        assert progress.completeness == 0
        assert progress.missingAreas == ["More conversation needed", "More requirements needed"]

    @pytest.mark.parametrize(
        "messages,requirements,expected",
        [
            (10, 5, 50),    # 50 + 50
            (20, 10, 100),  # both saturate at 100
            (40, 0, 50),    # conversation alone caps at 100
            (4, 2, 20),     # 20 + 20
        ],
    )
    def test_completeness(self, messages, requirements, expected):
        progress = calculate_conversation_progress(_conversation(messages), _requirements(requirements))
        assert progress.completeness == expected
        assert progress.totalMessages == messages
        assert progress.requirementsExtracted == requirements

    def test_nothing_missing(self):
        progress = calculate_conversation_progress(_conversation(5), _requirements(3))
        assert progress.missingAreas is None


class TestParseRequirements:

    def test_fenced_reply(self):
        text = '```json\n{"requirements": [{"category": "Timeline", "description": "Done by March", "priority": "high", "confidence": 0.9}]}\n```'
        [req] = parse_requirements(text)
        assert req.category == "timeline"
        assert req.priority == "high"

    def test_json_inside_prose(self):
        text = 'Here you go: {"requirements": [{"category": "goal", "description": "Move office"}]} hope it helps'
        assert [r.description for r in parse_requirements(text)] == ["Move office"]

    def test_malformed_entries_are_dropped(self):
        text = json.dumps({
            "requirements": [
                {"category": "goal", "description": "ok"},
                {"category": "unknown", "description": "bad category"},
                {"description": "no category"},
                "not an object",
                {"category": "constraint", "description": "x", "confidence": 3},
            ]
        })
        assert [r.description for r in parse_requirements(text)] == ["ok"]

    def test_unparseable_reply(self):
        assert parse_requirements("I could not find any.") == []


class TestRequirementAnalyzer:

    def test_stores_parsed_requirements(self, seeded_store):
        llm = MagicMock()
        llm.complete = AsyncMock(
            return_value='{"requirements": [{"category": "stakeholder", "description": "Facilities team"}]}'
        )
        job = BackgroundJob(
            type=REQUIREMENT_ANALYSIS,
            userId=OWNER_ID,
            sessionId=SESSION_ID,
            payload={"conversation": [{"role": "user", "content": "Facilities runs it"}], "context": {}},
        )
        asyncio.run(RequirementAnalyzer(seeded_store, llm).handle(job))

        stored = asyncio.run(seeded_store.load(SESSION_ID))
        assert [r.category for r in stored.extractedRequirements] == ["stakeholder"]
        prompt = llm.complete.await_args.args[0]
        assert "Facilities runs it" in prompt
        assert llm.complete.await_args.kwargs["model"].startswith("claude-haiku")
