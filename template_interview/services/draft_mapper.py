"""
Draft normalization.

Maps a validated ai_chat document (or a stored session draft) into the two
stable shapes the rest of the system uses:

  to_generated_template            document  -> GeneratedTemplate (session draft)
  to_create_request                document  -> CreateTemplateRequest
  to_create_request_from_template  GeneratedTemplate -> CreateTemplateRequest

All three are total: missing or malformed values degrade to defaults (blank
name -> fallback name, non-numeric offset -> 0, out-of-range offset -> nearest
bound) and are logged rather than raised.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

from template_interview.models.draft import (
    OFFSET_MAX_DAYS,
    OFFSET_MIN_DAYS,
    CreateStepTemplate,
    CreateTemplateRequest,
    GeneratedStep,
    GeneratedTemplate,
    TemplateMetadata,
)

logger = logging.getLogger(__name__)

DRAFT_CONFIDENCE = 0.8


def _is_finite_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _fallback_name() -> str:
    return f"AI Draft ({datetime.now():%Y-%m-%d %H:%M:%S})"


def _clean_name(name: Any) -> str:
    return name.strip() if isinstance(name, str) else ""


def _normalize_offset(raw: Any, seq: Any, field_name: str) -> int:
    """Default non-numeric to 0, round to whole days, clamp to ±365."""
    if not _is_finite_number(raw):
        logger.warning(
            "Non-numeric or missing %s detected for seq=%s. Defaulting to 0.",
            field_name, seq,
        )
        return 0
    value = int(round(raw))
    clamped = min(max(value, OFFSET_MIN_DAYS), OFFSET_MAX_DAYS)
    if clamped != value:
        logger.warning(
            "%s out of range for seq=%s. Clamped to %s. (raw=%s)",
            field_name, seq, clamped, raw,
        )
    return clamped


def _as_int(v: Any) -> int | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return None


def _int_list(raw: Any, seq: Any) -> list[int]:
    if not isinstance(raw, list):
        return []
    deps = [d for d in (_as_int(r) for r in raw) if d is not None]
    if len(deps) != len(raw):
        logger.warning("Dropped non-integer dependencies for seq=%s.", seq)
    return deps


def _draft_steps(document: Any) -> tuple[str, list[Any]]:
    draft = document.get("process_template_draft") if isinstance(document, dict) else None
    if not isinstance(draft, dict):
        return "", []
    steps = draft.get("stepTemplates")
    return _clean_name(draft.get("name")), steps if isinstance(steps, list) else []


# ── ai_chat document -> session draft ─────────────────────────────────────────

def to_generated_template(document: Any) -> GeneratedTemplate:
    name, raw_steps = _draft_steps(document)

    steps: list[GeneratedStep] = []
    for idx, s in enumerate(raw_steps):
        s = s if isinstance(s, dict) else {}
        seq = _as_int(s.get("seq"))
        seq = idx + 1 if seq is None else seq
        steps.append(
            GeneratedStep(
                name=_clean_name(s.get("name")) or f"Step {seq}",
                description="",
                duration=_normalize_offset(s.get("offsetDays"), seq, "offsetDays"),
                dependencies=_int_list(s.get("dependsOn"), seq),
            )
        )

    return GeneratedTemplate(
        name=name or _fallback_name(),
        steps=steps,
        metadata=TemplateMetadata(
            generatedAt=datetime.now(timezone.utc).isoformat(),
            confidence=DRAFT_CONFIDENCE,
            sources=[],
        ),
    )


# ── ai_chat document -> creation request ──────────────────────────────────────

def to_create_request(document: Any) -> CreateTemplateRequest:
    name, raw_steps = _draft_steps(document)

    step_templates: list[CreateStepTemplate] = []
    for idx, s in enumerate(raw_steps):
        s = s if isinstance(s, dict) else {}
        seq = _as_int(s.get("seq"))
        seq = idx + 1 if seq is None else seq
        step_templates.append(
            CreateStepTemplate(
                seq=seq,
                name=_clean_name(s.get("name")) or f"Step {seq}",
                # position decides basis; the source's own basis is ignored
                basis="goal" if idx == 0 else "prev",
                offsetDays=_normalize_offset(s.get("offsetDays"), seq, "offsetDays"),
                requiredArtifacts=[],
                dependsOn=_int_list(s.get("dependsOn"), seq),
            )
        )

    return CreateTemplateRequest(name=name or _fallback_name(), stepTemplates=step_templates)


# ── session draft -> creation request ─────────────────────────────────────────

def to_create_request_from_template(
    template: GeneratedTemplate | None,
) -> CreateTemplateRequest:
    name = _clean_name(template.name) if template is not None else ""
    steps = template.steps if template is not None else []

    step_templates: list[CreateStepTemplate] = []
    for idx, s in enumerate(steps):
        seq = idx + 1
        step_templates.append(
            CreateStepTemplate(
                seq=seq,
                name=_clean_name(s.name) or f"Step {seq}",
                basis="goal" if idx == 0 else "prev",
                offsetDays=_normalize_offset(s.duration, seq, "duration"),
                requiredArtifacts=[],
                dependsOn=_int_list(s.dependencies, seq),
            )
        )

    return CreateTemplateRequest(name=name or _fallback_name(), stepTemplates=step_templates)
