# interview_engine/interview/recovery.py
"""
Recover a valid interview turn from whatever text the completion service
returned.

Strategies run in a fixed order and each one is a pure function of the raw
text: `text -> dict | None`. The first strategy that yields a JSON object
wins; the object is then validated against the turn schema, with one
truncation retry when the only problems are overlong fields.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from interview_engine.errors import UpstreamFormatError
from interview_engine.interview.schema import (
    LIST_FIELDS,
    MAX_LIST_ITEMS,
    STRING_FIELD_LIMITS,
    QuestionTurn,
    SummaryTurn,
    interview_turn_adapter,
)

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_TRUNCATABLE_ERRORS = {"string_too_long", "too_long"}
_VALUE_END = set('"}]') | set("0123456789") | set("eul")  # true/false/null


# ---------------------------------------------------------------------------
# Shared transforms
# ---------------------------------------------------------------------------


def _balanced_end(text: str, start: int) -> Optional[int]:
    """
    Index of the brace closing the object opened at `start`, skipping over
    string literals. None if the object never closes.
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def extract_candidate(text: str) -> str:
    """Strip a markdown fence, or cut out the first JSON object in prose."""
    fenced = _FENCE.search(text)
    candidate = fenced.group(1).strip() if fenced else text.strip()

    start = candidate.find("{")
    if start == -1:
        return candidate
    end = _balanced_end(candidate, start)
    if end is None:
        last = candidate.rfind("}")
        return candidate[start:last + 1] if last > start else candidate[start:]
    return candidate[start:end + 1]


def _drop_trailing_comma(out: List[str]) -> None:
    i = len(out) - 1
    while i >= 0 and out[i].isspace():
        i -= 1
    if i >= 0 and out[i] == ",":
        del out[i]


def _last_significant(out: List[str]) -> str:
    for ch in reversed(out):
        if not ch.isspace():
            return ch
    return ""


def structural_cleanup(text: str) -> str:
    """
    Fix structure outside string literals: trailing commas, `//` and `/* */`
    comments, stray control characters and missing commas between adjacent
    values.
    """
    out: List[str] = []
    in_string = False
    escaped = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]

        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            i += 1
            continue

        if ch == "/" and i + 1 < n and text[i + 1] == "/":
            newline = text.find("\n", i)
            i = n if newline == -1 else newline
            continue
        if ch == "/" and i + 1 < n and text[i + 1] == "*":
            close = text.find("*/", i + 2)
            i = n if close == -1 else close + 2
            continue
        if ch not in "\n\r\t" and (ord(ch) < 0x20 or ord(ch) == 0x7F):
            i += 1
            continue

        if ch in "}]":
            _drop_trailing_comma(out)
        elif ch in '"{' and _last_significant(out) in _VALUE_END:
            out.append(",")

        if ch == '"':
            in_string = True
        out.append(ch)
        i += 1

    return "".join(out)


def string_repair(text: str) -> str:
    """Raw newlines and tabs inside string literals become spaces."""
    out: List[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch in "\n\r\t":
                ch = " "
            elif ord(ch) < 0x20 or ord(ch) == 0x7F:
                continue
        elif ch == '"':
            in_string = True
        out.append(ch)
    return "".join(out)


def first_bracket_span(text: str) -> Optional[str]:
    """Plain depth count from the first `{`, ignoring string literals."""
    depth = 0
    start = -1
    for i, ch in enumerate(text):
        if ch == "{":
            if start == -1:
                start = i
            depth += 1
        elif ch == "}" and start != -1:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _loads_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    try:
        value = json.loads(text)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def try_extract(text: str) -> Optional[Dict[str, Any]]:
    return _loads_object(extract_candidate(text))


def try_structural_cleanup(text: str) -> Optional[Dict[str, Any]]:
    return _loads_object(structural_cleanup(extract_candidate(text)))


def try_string_repair(text: str) -> Optional[Dict[str, Any]]:
    return _loads_object(string_repair(structural_cleanup(extract_candidate(text))))


def try_bracket_extraction(text: str) -> Optional[Dict[str, Any]]:
    repaired = string_repair(structural_cleanup(text))
    span = first_bracket_span(repaired)
    return _loads_object(structural_cleanup(span) if span else None)


Strategy = Callable[[str], Optional[Dict[str, Any]]]

STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("extract", try_extract),
    ("structural_cleanup", try_structural_cleanup),
    ("string_repair", try_string_repair),
    ("bracket_extraction", try_bracket_extraction),
)


def recover_object(text: str) -> Tuple[Optional[Dict[str, Any]], str]:
    """
    Run the strategies in order. Returns the parsed object (or None) and the
    name of the last stage attempted.
    """
    stage = "empty"
    for stage, strategy in STRATEGIES:
        parsed = strategy(text)
        if parsed is not None:
            return parsed, stage
    return None, stage


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", name).lower()


def _infer_type(data: Dict[str, Any]) -> Dict[str, Any]:
    if "type" in data:
        return data
    if "question" in data:
        return {**data, "type": "question"}
    if "summary" in data and ("plan" in data or "assessment" in data):
        return {**data, "type": "summary"}
    return data


def truncate_overlong(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Clip overlong strings (ending them in "...") and long arrays to the
    documented limits.
    """
    fixed = dict(data)
    for name, limit in STRING_FIELD_LIMITS.items():
        for key in {name, _snake(name)}:
            value = fixed.get(key)
            if isinstance(value, str) and len(value) > limit:
                fixed[key] = value[: limit - 3] + "..."
    for name in LIST_FIELDS:
        for key in {name, _snake(name)}:
            value = fixed.get(key)
            if isinstance(value, list) and len(value) > MAX_LIST_ITEMS:
                fixed[key] = value[:MAX_LIST_ITEMS]
    return fixed


def _only_length_errors(exc: ValidationError) -> bool:
    errors = exc.errors()
    return bool(errors) and all(e["type"] in _TRUNCATABLE_ERRORS for e in errors)


@dataclass(frozen=True)
class RecoveryResult:
    turn: QuestionTurn | SummaryTurn
    stage: str
    truncated: bool = False


def parse_interview_turn(text: str) -> RecoveryResult:
    """
    Raises UpstreamFormatError when no strategy yields an object that
    validates, even after truncation.
    """
    raw = text or ""
    if not raw.strip():
        raise UpstreamFormatError(stage="empty", text_length=0, reason="empty completion")

    parsed, stage = recover_object(raw)
    if parsed is None:
        raise UpstreamFormatError(stage=stage, text_length=len(raw), reason="no JSON object")

    data = _infer_type(parsed)
    try:
        turn = interview_turn_adapter.validate_python(data)
        return RecoveryResult(turn=turn, stage=stage)
    except ValidationError as exc:
        if not _only_length_errors(exc):
            raise UpstreamFormatError(
                stage="validation",
                text_length=len(raw),
                reason=f"{exc.error_count()} schema errors",
            ) from exc

    try:
        turn = interview_turn_adapter.validate_python(truncate_overlong(data))
    except ValidationError as exc:
        raise UpstreamFormatError(
            stage="truncation",
            text_length=len(raw),
            reason=f"{exc.error_count()} schema errors after truncation",
        ) from exc

    logger.info("Recovered interview turn by truncation (stage=%s)", stage)
    return RecoveryResult(turn=turn, stage=stage, truncated=True)
