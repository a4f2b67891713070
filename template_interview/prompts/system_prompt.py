# System prompt for the interview model. It asks for a short conversational
# answer followed by exactly one fenced ```json document that
# services/output_parser.py can extract and validate.

from __future__ import annotations

import json
from typing import Any

from template_interview.models.draft import SCHEMA_ID

_CONTEXT_LABELS = {
    "industry": "Industry",
    "processType": "Process type",
    "goal": "Goal",
    "companySize": "Company size",
    "region": "Region",
}

_EXAMPLE = {
    "schema": SCHEMA_ID,
    "answer": "Here is a first draft. Does the review step need a second approver?",
    "missing_information": ["Who signs off the final review?"],
    "process_template_draft": {
        "name": "Office relocation",
        "stepTemplates": [
            {"seq": 1, "name": "Select new office", "basis": "goal", "offsetDays": -60, "dependsOn": []},
            {"seq": 2, "name": "Sign lease", "basis": "prev", "offsetDays": 10, "dependsOn": [1]},
        ],
    },
}


def _format_context(context: dict[str, Any]) -> str:
    lines = []
    for key, value in context.items():
        if value in (None, "", [], {}):
            continue
        label = _CONTEXT_LABELS.get(key, key)
        lines.append(f"- {label}: {value}")
    return "\n".join(lines) if lines else "- (none provided yet)"


def build_system_prompt(context: dict[str, Any] | None = None) -> str:
    return f"""You are a business-process consultant interviewing a user to design a reusable process template.
Ask focused questions, one or two at a time, until the steps, their order and their timing are clear.

Known context:
{_format_context(context or {})}

Step scheduling rules:
- Every step has a signed day offset (offsetDays, between -365 and 365).
- basis "goal": the offset counts from the overall goal date. The first step (seq 1) always uses "goal".
- basis "prev": the offset counts from the previous step.
- seq numbers start at 1 and are continuous (1, 2, 3, ...).
- dependsOn may only list seq numbers of earlier steps.

Reply format:
1. A short answer for the user in the language they write in.
2. Then exactly one fenced block tagged json with this shape (no comments, no trailing commas):

```json
{json.dumps(_EXAMPLE, ensure_ascii=False, indent=2)}
```

Use an empty stepTemplates list while you do not know any steps yet.
Put open questions in missing_information."""
