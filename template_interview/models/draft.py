"""
Pydantic schemas for process-template drafts.

Two shapes leave the normalizer:
  GeneratedTemplate       the draft stored on the session (steps with duration)
  CreateTemplateRequest   the persistence-ready process template (stepTemplates)

The raw document extracted from a reply stays a plain dict; its wire format is

    {
      "schema": "ai_chat_process_template.v1",
      "answer": "...",
      "missing_information": ["..."],
      "process_template_draft": {
        "name": "...",
        "stepTemplates": [
          {"seq": 1, "name": "...", "basis": "goal", "offsetDays": -30, "dependsOn": []}
        ]
      }
    }
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

SCHEMA_ID = "ai_chat_process_template.v1"

OFFSET_MIN_DAYS = -365
OFFSET_MAX_DAYS = 365

Basis = Literal["goal", "prev"]


# ── Session draft ─────────────────────────────────────────────────────────────

class GeneratedStep(BaseModel):
    name: str
    description: str = ""
    duration: int = Field(default=0, ge=OFFSET_MIN_DAYS, le=OFFSET_MAX_DAYS)
    dependencies: list[int] = Field(default_factory=list)


class TemplateMetadata(BaseModel):
    generatedAt: str
    confidence: float
    sources: list[str] = Field(default_factory=list)


class GeneratedTemplate(BaseModel):
    name: str
    steps: list[GeneratedStep] = Field(default_factory=list)
    metadata: TemplateMetadata


# ── Creation request ──────────────────────────────────────────────────────────

class CreateStepTemplate(BaseModel):
    seq: int
    name: str
    basis: Basis
    offsetDays: int = Field(ge=OFFSET_MIN_DAYS, le=OFFSET_MAX_DAYS)
    # Reserved; always empty for AI drafts
    requiredArtifacts: list[dict] = Field(default_factory=list)
    dependsOn: list[int] = Field(default_factory=list)


class CreateTemplateRequest(BaseModel):
    name: str
    stepTemplates: list[CreateStepTemplate] = Field(default_factory=list)
