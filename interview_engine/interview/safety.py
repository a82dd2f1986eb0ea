# interview_engine/interview/safety.py
"""
Keeps model output in assistive register: directive diagnostic or treatment
phrasing is rewritten before anything reaches the patient or clinician.
"""
from __future__ import annotations

import re
from typing import List, Tuple

from interview_engine.interview.recovery import truncate_overlong
from interview_engine.interview.schema import QuestionTurn, SummaryTurn, interview_turn_adapter


PROHIBITED_PHRASES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bmost likely diagnosis is\b", re.IGNORECASE), "Clinical features suggest"),
    (re.compile(r"\bthe diagnosis is\b", re.IGNORECASE), "Differential considerations include"),
    (re.compile(r"\bpatient has\b", re.IGNORECASE), "Findings may be consistent with"),
    (re.compile(r"\bstart treatment with\b", re.IGNORECASE), "Consider treatment options such as"),
    (re.compile(r"\bbegin treatment with\b", re.IGNORECASE), "Consider treatment options such as"),
    (re.compile(r"\bmust start\b", re.IGNORECASE), "consider starting"),
]


def sanitize_assistive_text(text: str) -> Tuple[str, bool]:
    """
    Returns the rewritten text and whether anything changed.
    """
    changed = False
    for pattern, replacement in PROHIBITED_PHRASES:
        rewritten = pattern.sub(replacement, text)
        if rewritten != text:
            changed = True
            text = rewritten
    return text, changed


def _clean(text: str) -> str:
    return sanitize_assistive_text(text)[0]


def enforce_assistive_language(turn: QuestionTurn | SummaryTurn) -> QuestionTurn | SummaryTurn:
    """
    Rewrites the free-text fields of a turn. Replacements can be longer than
    the phrases they replace, so the result is clipped back to the field
    limits and validated again.
    """
    if isinstance(turn, QuestionTurn):
        updates = {"question": _clean(turn.question)}
        if turn.rationale is not None:
            updates["rationale"] = _clean(turn.rationale)
    else:
        updates = {
            "summary": _clean(turn.summary),
            "assessment": _clean(turn.assessment),
            "plan": [_clean(item) for item in turn.plan],
            "investigations": [_clean(item) for item in turn.investigations],
        }

    cleaned = turn.model_copy(update=updates)
    return interview_turn_adapter.validate_python(
        truncate_overlong(cleaned.model_dump(by_alias=True, exclude_none=True))
    )
