# interview_engine/interview/phase.py
"""
Phase, escalation and question-budget decisions.

Everything is recomputed from the request on every call; nothing here is
stored between turns.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Pattern, Sequence, Tuple

from interview_engine.interview.complaints import Category, ComplaintProgress
from interview_engine.interview.topics import TranscriptAnalysis


class Phase(str, Enum):
    HPI_FIRST = "hpi_first"
    FORM_CATCHUP = "form_catchup"


PER_EXTRA_COMPLAINT = 4
FORM_TARGET_SINGLE = 14
FORM_TARGET_MULTIPLE = 18
MIN_MIDPOINT = 4
MULTI_SYSTEM_THRESHOLD = 3

RED_FLAG_PATTERN = re.compile(
    r"\b(chest pain|shortness of breath|dyspnea|can't breathe|difficulty breathing"
    r"|loss of consciousness|passed out|fainted|unconscious|blacked out"
    r"|uncontrolled bleeding|coughing (up )?blood|vomiting blood|black stools?"
    r"|worst headache|thunderclap|slurred speech|facial droop|paralysis"
    r"|confus(ed|ion)|seizure|suicid(e|al)|stiff neck|drooling|stridor)\b",
    re.IGNORECASE,
)

MEDICO_LEGAL_PATTERN = re.compile(
    r"\b(insurance|insurer|claim|wsib|worksafe|workers'? comp(ensation)?|lawyer"
    r"|legal|litigation|disability|accident benefits?|ocf[- ]?\d*|adjuster)\b",
    re.IGNORECASE,
)

# Body systems a patient can report symptoms in.
BODY_SYSTEM_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("cardiovascular", re.compile(r"\b(chest|palpitations?|heart)\b", re.IGNORECASE)),
    ("respiratory", re.compile(r"\b(breath(ing)?|cough(ing)?|wheez(e|ing))\b", re.IGNORECASE)),
    ("neurological", re.compile(r"\b(headaches?|dizz(y|iness)|numb(ness)?|tingling|weakness)\b", re.IGNORECASE)),
    ("gastrointestinal", re.compile(r"\b(nausea|vomit(ing)?|diarrh(o)?ea|stomach|abdominal)\b", re.IGNORECASE)),
    ("musculoskeletal", re.compile(r"\b(back|neck|joints?|muscles?|shoulder|knee|ankle|wrist|hip)\b", re.IGNORECASE)),
    ("ent", re.compile(r"\b(throat|ears?|sinus|nose|swallow(ing)?)\b", re.IGNORECASE)),
    ("dermatological", re.compile(r"\b(rash|itch(y|ing)?|hives|lesion)\b", re.IGNORECASE)),
    ("constitutional", re.compile(r"\b(fevers?|chills|night sweats|weight loss|fatigue)\b", re.IGNORECASE)),
)


@dataclass(frozen=True)
class FormCoverageHint:
    label: str
    patterns: Tuple[Pattern[str], ...]
    topic_hints: Tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


def _hint(label: str, patterns: Sequence[str], topic_hints: Sequence[str] = ()) -> FormCoverageHint:
    return FormCoverageHint(
        label=label,
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
        topic_hints=tuple(topic_hints),
    )


FORM_COVERAGE_HINTS: Tuple[FormCoverageHint, ...] = (
    _hint(
        "symptom onset and timeline",
        (r"\bonset\b", r"\bwhen\b", r"\bstart(?:ed)?\b", r"\bduration\b", r"\btimeline\b"),
        ("duration/onset",),
    ),
    _hint(
        "symptom severity and functional impact",
        (r"\bseverity\b", r"\bhow bad\b", r"\bscale\b", r"\bfunctional\b", r"\blimit(?:ed|ation)\b"),
        ("severity", "range of motion"),
    ),
    _hint(
        "work and activity limitations",
        (r"\bwork\b", r"\bdut(?:y|ies)\b", r"\bactivity\b", r"\brestriction\b", r"\bmodified duty\b"),
    ),
    _hint(
        "accident details and mechanism",
        (r"\baccident\b", r"\bmva\b", r"\bmotor vehicle\b", r"\bcollision\b", r"\bmechanism\b"),
        ("accident details", "accident response"),
    ),
    _hint(
        "previous injuries and baseline status",
        (r"\bprevious injur(?:y|ies)\b", r"\bprior injur(?:y|ies)\b", r"\bpre[- ]?existing\b", r"\bbaseline\b"),
        ("previous injuries",),
    ),
    _hint(
        "medications and allergies relevant to the form",
        (r"\bmedication\b", r"\bcurrent meds?\b", r"\ballerg(?:y|ies)\b", r"\bdrug reaction\b"),
    ),
    _hint(
        "insurance/employer/claim details",
        (r"\binsurance\b", r"\bclaim\b", r"\bemployer\b", r"\bworksafe\b", r"\bwsib\b"),
    ),
    _hint(
        "treating provider and follow-up details",
        (r"\bfamily doctor\b", r"\bphysician\b", r"\bprovider\b", r"\bfollow[- ]?up\b", r"\breferral\b"),
    ),
)


def form_coverage_hints(form_summary: Optional[str]) -> List[FormCoverageHint]:
    if not form_summary or not form_summary.strip():
        return []
    text = form_summary.lower()
    return [hint for hint in FORM_COVERAGE_HINTS if hint.matches(text)]


def remaining_form_items(
    hints: Sequence[FormCoverageHint],
    analysis: TranscriptAnalysis,
) -> List[str]:
    """
    Labels of form topics that nothing asked or answered so far touches.
    """
    if not hints:
        return []
    asked_and_answered = " ".join(analysis.questions_asked + analysis.patient_answers).lower()
    covered_topics = set(analysis.topics_covered) | set(
        analysis.patient_information.mentioned_topics
    )

    remaining: List[str] = []
    for hint in hints:
        covered_by_text = hint.matches(asked_and_answered)
        covered_by_topic = any(t in covered_topics for t in hint.topic_hints)
        if not (covered_by_text or covered_by_topic):
            remaining.append(hint.label)
    return remaining


def reported_body_systems(chief_complaint: str, analysis: TranscriptAnalysis) -> List[str]:
    text = " ".join([chief_complaint] + analysis.patient_answers)
    return [name for name, pattern in BODY_SYSTEM_PATTERNS if pattern.search(text)]


@dataclass(frozen=True)
class EscalationState:
    reasons: List[str] = field(default_factory=list)

    @property
    def escalated(self) -> bool:
        return bool(self.reasons)


def assess_escalation(
    chief_complaint: str,
    analysis: TranscriptAnalysis,
    progress: ComplaintProgress,
    form_summary: Optional[str],
) -> EscalationState:
    reasons: List[str] = []

    search_text = " ".join([chief_complaint] + analysis.questions_asked + analysis.patient_answers)
    if RED_FLAG_PATTERN.search(search_text):
        reasons.append("red_flag")
    if progress.has_multiple:
        reasons.append("multiple_complaints")
    if Category.TRAUMA_MVA in progress.categories:
        reasons.append("trauma_mva")
    if form_summary:
        reasons.append("form_attached")
        if MEDICO_LEGAL_PATTERN.search(form_summary):
            reasons.append("medico_legal")
    if len(reported_body_systems(chief_complaint, analysis)) >= MULTI_SYSTEM_THRESHOLD:
        reasons.append("multi_system")

    return EscalationState(reasons=reasons)


def compute_budget(
    complaint_count: int,
    escalation: EscalationState,
    has_form: bool,
    base_budget: int = 10,
    escalation_factor: float = 1.5,
) -> Optional[int]:
    """
    Question budget for the whole interview; None means unlimited.
    """
    if has_form:
        return None
    budget = base_budget + PER_EXTRA_COMPLAINT * max(0, complaint_count - 1)
    if escalation.escalated:
        budget = math.ceil(budget * escalation_factor)
    return budget


def compute_midpoint(budget: Optional[int], has_multiple: bool) -> int:
    if budget is None:
        target = FORM_TARGET_MULTIPLE if has_multiple else FORM_TARGET_SINGLE
    else:
        target = budget
    return max(MIN_MIDPOINT, math.ceil(target / 2))


@dataclass(frozen=True)
class PhaseDecision:
    phase: Phase
    escalation: EscalationState
    budget: Optional[int]
    question_count: int
    midpoint: int
    remaining_form_items: List[str]
    ready_to_summarize: bool
    budget_exhausted: bool

    @property
    def unlimited(self) -> bool:
        return self.budget is None


def decide_phase(
    chief_complaint: str,
    analysis: TranscriptAnalysis,
    progress: ComplaintProgress,
    form_summary: Optional[str] = None,
    force_summary: bool = False,
    base_budget: int = 10,
    escalation_factor: float = 1.5,
) -> PhaseDecision:
    """
    Pure function of its inputs: calling it twice on the same request gives
    the same decision.
    """
    has_form = bool(form_summary and form_summary.strip())
    form_text = form_summary.strip() if has_form else None

    escalation = assess_escalation(chief_complaint, analysis, progress, form_text)
    budget = compute_budget(
        len(progress.complaints),
        escalation,
        has_form,
        base_budget=base_budget,
        escalation_factor=escalation_factor,
    )
    count = analysis.question_count
    midpoint = compute_midpoint(budget, progress.has_multiple)

    phase = Phase.FORM_CATCHUP if has_form and count >= midpoint else Phase.HPI_FIRST
    remaining = remaining_form_items(form_coverage_hints(form_text), analysis)

    within_budget = budget is None or count <= budget
    ready = progress.all_completed and not remaining and (within_budget or force_summary)

    return PhaseDecision(
        phase=phase,
        escalation=escalation,
        budget=budget,
        question_count=count,
        midpoint=midpoint,
        remaining_form_items=remaining,
        ready_to_summarize=ready,
        budget_exhausted=budget is not None and count >= budget,
    )
