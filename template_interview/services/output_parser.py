"""
Structured output extraction from a freeform model reply.

The reply is expected to end with a fenced JSON document:

    ```json
    {"schema": "ai_chat_process_template.v1", "answer": "...", ...}
    ```

Selection rule: the last fenced block wins; if that block is tagged with some
other language, the last ```json block wins instead (models like to show
example snippets before the real payload).

Failures never raise; they come back as a closed set of error codes so the
caller can log them and carry on.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from template_interview.models.draft import SCHEMA_ID

MAX_FENCE_CHARS = 32 * 1024

_FENCE_RE = re.compile(r"```(\w+)?\r?\n(.*?)```", re.DOTALL)


class ParseErrorCode(str, Enum):
    MISSING_FENCE = "MissingFence"
    NON_JSON_FENCE = "NonJsonFence"
    FENCE_TOO_LARGE = "FenceTooLarge"
    JSON_PARSE_ERROR = "JsonParseError"
    SCHEMA_MISMATCH = "SchemaMismatch"
    SEQ_NOT_CONTINUOUS = "ValidationFailed:SeqNotContinuous"
    FIRST_BASIS_MUST_BE_GOAL = "ValidationFailed:FirstBasisMustBeGoal"
    DEPENDS_ON_OUT_OF_RANGE = "ValidationFailed:DependsOnOutOfRange"
    DEPENDS_ON_FUTURE = "ValidationFailed:DependsOnFuture"


@dataclass(frozen=True)
class ExtractionResult:
    ok: bool
    schema: str | None = None
    data: dict[str, Any] | None = None
    errors: list[ParseErrorCode] = field(default_factory=list)


def _fail(code: ParseErrorCode) -> ExtractionResult:
    return ExtractionResult(ok=False, errors=[code])


def _is_integer(v: Any) -> bool:
    """JSON has one number type: 2 and 2.0 are the same seq, 2.5 is none."""
    if isinstance(v, bool):
        return False
    return isinstance(v, int) or (isinstance(v, float) and v.is_integer())


def _reject_constant(name: str) -> Any:
    # json.loads accepts NaN / Infinity by default; strict JSON does not
    raise ValueError(f"Non-standard JSON constant: {name}")


def _select_fence(text: str) -> str | None:
    matches = list(_FENCE_RE.finditer(text))
    if not matches:
        return None

    chosen = matches[-1]
    lang = (chosen.group(1) or "").lower()
    if lang and lang != "json":
        json_matches = [m for m in matches if (m.group(1) or "").lower() == "json"]
        if json_matches:
            chosen = json_matches[-1]
    return chosen.group(2)


def _validate_steps(steps: list[Any]) -> ParseErrorCode | None:
    """Check seq continuity, first basis, and dependsOn ordering, in that order."""
    seqs = [s.get("seq") if isinstance(s, dict) else None for s in steps]
    if not all(_is_integer(q) for q in seqs):
        return ParseErrorCode.SEQ_NOT_CONTINUOUS
    for i, q in enumerate(sorted(seqs)):
        if q != i + 1:
            return ParseErrorCode.SEQ_NOT_CONTINUOUS

    first = next(s for s in steps if s["seq"] == 1)
    if first.get("basis") != "goal":
        return ParseErrorCode.FIRST_BASIS_MUST_BE_GOAL

    n = len(steps)
    for s in steps:
        deps = s.get("dependsOn")
        if deps is None:
            continue
        if not isinstance(deps, list):
            return ParseErrorCode.DEPENDS_ON_OUT_OF_RANGE
        for d in deps:
            if not _is_integer(d) or d < 1 or d > n:
                return ParseErrorCode.DEPENDS_ON_OUT_OF_RANGE
            if d >= s["seq"]:
                return ParseErrorCode.DEPENDS_ON_FUTURE
    return None


def extract_template_json(text: str | None) -> ExtractionResult:
    block = _select_fence(text or "")
    if block is None:
        return _fail(ParseErrorCode.MISSING_FENCE)

    code = block.strip()
    if len(code) > MAX_FENCE_CHARS:
        return _fail(ParseErrorCode.FENCE_TOO_LARGE)
    if not (code.startswith("{") and code.endswith("}")):
        return _fail(ParseErrorCode.NON_JSON_FENCE)

    try:
        parsed = json.loads(code, parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return _fail(ParseErrorCode.JSON_PARSE_ERROR)
    if not isinstance(parsed, dict):
        return _fail(ParseErrorCode.JSON_PARSE_ERROR)

    if parsed.get("schema") != SCHEMA_ID:
        return _fail(ParseErrorCode.SCHEMA_MISMATCH)

    draft = parsed.get("process_template_draft")
    if isinstance(draft, dict) and isinstance(draft.get("stepTemplates"), list):
        steps = draft["stepTemplates"]
        if steps:
            error = _validate_steps(steps)
            if error is not None:
                return _fail(error)

    return ExtractionResult(ok=True, schema=parsed["schema"], data=parsed)
