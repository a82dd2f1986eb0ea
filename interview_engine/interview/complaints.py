# interview_engine/interview/complaints.py
"""
Chief-complaint parsing, categorisation and category-scoped red-flag
checklists.

Categories and checklist items are plain rule tables so new keywords can be
added without touching the control flow below.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional, Pattern, Sequence, Tuple

from interview_engine.interview.topics import TranscriptAnalysis


class Category(str, Enum):
    CARDIAC = "cardiac"
    RESPIRATORY = "respiratory"
    NEURO = "neuro"
    MSK = "msk"
    ABDOMINAL = "abdominal"
    ENT_THROAT = "ent_throat"
    TRAUMA_MVA = "trauma_mva"
    OTHER = "other"


def _rx(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


# First matching category wins, so vehicle trauma is checked before the
# body-region categories it would otherwise fall into.
CATEGORY_RULES: Tuple[Tuple[Category, Pattern[str]], ...] = (
    (Category.TRAUMA_MVA, _rx(r"\b(mva|mvc|motor vehicle|car accident|vehicle|collision|crash|whiplash|rear[- ]ended)\b")),
    (Category.CARDIAC, _rx(r"\b(chest|heart|palpitations?|cardiac|angina)\b")),
    (Category.RESPIRATORY, _rx(r"\b(breath(ing|less)?|short of breath|dyspnea|cough(ing)?|wheez(e|ing)|asthma|respiratory|lungs?)\b")),
    (Category.NEURO, _rx(r"\b(head|headaches?|migraines?|dizz(y|iness)|vertigo|numbness|tingling|seizures?|faint(ing)?|concussion)\b")),
    (Category.ENT_THROAT, _rx(r"\b(throat|tonsils?|ears?|earache|sinus(es)?|nose|nasal|hoarse(ness)?|swallow(ing)?|strep)\b")),
    (Category.ABDOMINAL, _rx(r"\b(abdomen|abdominal|stomach|belly|nausea|vomit(ing)?|diarrh(o)?ea|constipation|heartburn)\b")),
    (Category.MSK, _rx(r"\b(back|neck|shoulders?|knees?|ankles?|wrists?|hips?|elbows?|joints?|sprain(ed)?|twist(ed)?|strain(ed)?|muscles?|foot|feet|legs?|arms?|hands?|fractures?)\b")),
)


@dataclass(frozen=True)
class SafetyChecklistItem:
    name: str
    categories: FrozenSet[Category]
    pattern: Pattern[str]

    def is_referenced(self, text: str) -> bool:
        return bool(self.pattern.search(text))


def _item(name: str, categories: Sequence[Category], pattern: str) -> SafetyChecklistItem:
    return SafetyChecklistItem(name=name, categories=frozenset(categories), pattern=_rx(pattern))


BASELINE_CHECKLIST: Tuple[SafetyChecklistItem, ...] = (
    _item("Loss of consciousness", (), r"\b(loss of consciousness|passed out|faint(ed)?|black(ed)? out|unconscious)\b"),
    _item("Severe or uncontrolled bleeding", (), r"\b(bleed(ing)?|blood)\b"),
    _item("Signs of sepsis", (), r"\b(sepsis|fevers?|chills|rigors|shaking)\b"),
    _item("Mental status changes", (), r"\b(confus(ed|ion)|disorient(ed|ation)|drowsy|mental status|hard to wake)\b"),
)

CATEGORY_CHECKLIST: Tuple[SafetyChecklistItem, ...] = (
    # Cardiac
    _item("Radiation to arm or jaw", (Category.CARDIAC,), r"\b(radiat(e|es|ing)|spread(s|ing)?|arm|jaw)\b"),
    _item("Chest pain with exertion", (Category.CARDIAC,), r"\b(exertion|exercise|stairs|walking)\b"),
    _item("Sweating or shortness of breath with pain", (Category.CARDIAC,), r"\b(sweat(ing|y)?|diaphoresis|short(ness)? of breath)\b"),
    _item("Cardiac risk factors", (Category.CARDIAC,), r"\b(cholesterol|diabetes|smok(e|ing|er)|family history of heart)\b"),
    # Respiratory
    _item("Severe shortness of breath at rest", (Category.RESPIRATORY,), r"\b(at rest|severe(ly)? short|can'?t breathe)\b"),
    _item("Inability to speak in full sentences", (Category.RESPIRATORY,), r"\b(full sentences|speak|talk)\b"),
    _item("Blue lips or cyanosis", (Category.RESPIRATORY,), r"\b(blue|cyanosis|lips)\b"),
    _item("Coughing up blood", (Category.RESPIRATORY,), r"\b(coughing (up )?blood|hemoptysis|blood in (your )?(sputum|phlegm))\b"),
    # Neuro
    _item("Sudden thunderclap onset or worst headache of life", (Category.NEURO,), r"\b(sudden|thunderclap|worst headache|came on (suddenly|all at once))\b"),
    _item("Focal neurological deficits", (Category.NEURO,), r"\b(weakness|numbness|slurred|facial droop|one side)\b"),
    _item("Vision changes", (Category.NEURO,), r"\b(vision|double vision|blurr(y|ed))\b"),
    _item("Neck stiffness with fever", (Category.NEURO,), r"\b(stiff neck|neck stiffness)\b"),
    # MSK
    _item("Inability to bear weight", (Category.MSK,), r"\b(bear(ing)? weight|weight[- ]bearing|walk(ing)? on it|put weight)\b"),
    _item("Numbness, coldness or colour change below the injury", (Category.MSK,), r"\b(numb(ness)?|cold|pale|tingling|circulation)\b"),
    _item("Obvious deformity", (Category.MSK,), r"\b(deform(ed|ity)|out of place|crooked)\b"),
    _item("Open wound over the injury", (Category.MSK,), r"\b(open wound|cut|bone (sticking|visible))\b"),
    # Abdominal
    _item("Severe or rigid abdominal pain", (Category.ABDOMINAL,), r"\b(rigid|severe abdominal|worst pain|can'?t stand up)\b"),
    _item("Blood in vomit or stool", (Category.ABDOMINAL,), r"\b(blood in (your )?(vomit|stool)|black stools?|tarry)\b"),
    _item("Persistent vomiting", (Category.ABDOMINAL,), r"\b(keep (anything|fluids) down|persistent vomiting|vomiting)\b"),
    # ENT / throat
    _item("Difficulty breathing or noisy breathing", (Category.ENT_THROAT,), r"\b(breath(ing|e)?|stridor|noisy)\b"),
    _item("Drooling or unable to swallow saliva", (Category.ENT_THROAT,), r"\b(drool(ing)?|saliva|swallow)\b"),
    _item("Difficulty opening the mouth", (Category.ENT_THROAT,), r"\b(open(ing)? (your )?mouth|trismus|jaw)\b"),
    _item("Muffled voice or one-sided neck swelling", (Category.ENT_THROAT,), r"\b(muffled|voice|neck swelling|one side)\b"),
    # Trauma / motor vehicle
    _item("Loss of consciousness at the scene", (Category.TRAUMA_MVA,), r"\b(knocked out|lose consciousness|lost consciousness|at the scene)\b"),
    _item("Amnesia of the accident", (Category.TRAUMA_MVA,), r"\b(remember|amnesia|memory)\b"),
    _item("High-speed collision or major vehicle damage", (Category.TRAUMA_MVA,), r"\b(speed|km/h|mph|damage|written off|totaled)\b"),
    _item("Airbag deployment or ejection", (Category.TRAUMA_MVA,), r"\b(airbags?|eject(ed|ion)|seatbelt)\b"),
    _item("Head, chest or abdominal trauma", (Category.TRAUMA_MVA,), r"\b(hit (your|my) head|head injury|chest|abdomen|belly)\b"),
    _item("Spinal cord injury signs", (Category.TRAUMA_MVA,), r"\b(numbness|tingling|weakness|bladder|bowel)\b"),
)


@dataclass(frozen=True)
class Complaint:
    text: str
    position: int
    category: Category


_SPLIT_PATTERN = re.compile(r"[,;\n]|\band\b", re.IGNORECASE)

# Words long enough to pass the length filter but carrying no complaint
# identity of their own.
_FILLER_WORDS = frozenset({
    "days", "weeks", "months", "years", "hours", "since", "with", "after",
    "about", "from", "have", "having", "left", "right", "both", "some",
    "very", "really", "past", "last", "this", "that", "today",
})


def classify(text: str) -> Category:
    for category, pattern in CATEGORY_RULES:
        if pattern.search(text):
            return category
    return Category.OTHER


def split_complaints(chief_complaint: str) -> List[Complaint]:
    fragments = [f.strip() for f in _SPLIT_PATTERN.split(chief_complaint)]
    fragments = [f for f in fragments if f]
    if not fragments:
        return [Complaint(text=chief_complaint.strip(), position=0, category=Category.OTHER)]
    return [
        Complaint(text=fragment, position=index, category=classify(fragment))
        for index, fragment in enumerate(fragments)
    ]


def checklist_for(complaint: Complaint) -> List[SafetyChecklistItem]:
    """
    Category items first, then the baseline items every complaint carries.
    """
    scoped = [item for item in CATEGORY_CHECKLIST if complaint.category in item.categories]
    return scoped + list(BASELINE_CHECKLIST)


def complaint_keywords(complaint: Complaint) -> List[str]:
    words = re.findall(r"[a-z][a-z'-]*", complaint.text.lower())
    keywords: List[str] = []
    for word in words:
        if len(word) > 3 and word not in _FILLER_WORDS and word not in keywords:
            keywords.append(word)
    return keywords


@dataclass(frozen=True)
class CompletionThresholds:
    coverage: float = 0.5
    min_questions: int = 8


@dataclass(frozen=True)
class ComplaintCoverage:
    complaint: Complaint
    keyword_ratio: float
    questions_about: int
    safety_referenced: bool
    is_complete: bool


@dataclass(frozen=True)
class ComplaintProgress:
    complaints: List[Complaint]
    coverage: List[ComplaintCoverage]
    current_index: int

    @property
    def current(self) -> Complaint:
        return self.complaints[self.current_index]

    @property
    def has_multiple(self) -> bool:
        return len(self.complaints) > 1

    @property
    def completed(self) -> List[Complaint]:
        return [c.complaint for c in self.coverage if c.is_complete]

    @property
    def remaining(self) -> List[Complaint]:
        return self.complaints[self.current_index + 1:]

    @property
    def all_completed(self) -> bool:
        return all(c.is_complete for c in self.coverage)

    @property
    def categories(self) -> List[Category]:
        return [c.category for c in self.complaints]

    def current_checklist(self) -> List[SafetyChecklistItem]:
        return checklist_for(self.current)


def _measure(
    complaint: Complaint,
    analysis: TranscriptAnalysis,
    thresholds: CompletionThresholds,
) -> ComplaintCoverage:
    text = analysis.transcript_text
    keywords = complaint_keywords(complaint)
    covered = sum(1 for kw in keywords if kw in text)
    ratio = covered / len(keywords) if keywords else 0.0

    questions_about = sum(
        1
        for question in analysis.questions_asked
        if any(kw in question.lower() for kw in keywords)
    )
    safety_referenced = any(item.is_referenced(text) for item in checklist_for(complaint))

    is_complete = (
        ratio >= thresholds.coverage
        and questions_about >= thresholds.min_questions
        and safety_referenced
    )
    return ComplaintCoverage(
        complaint=complaint,
        keyword_ratio=ratio,
        questions_about=questions_about,
        safety_referenced=safety_referenced,
        is_complete=is_complete,
    )


def assess_complaints(
    chief_complaint: str,
    analysis: TranscriptAnalysis,
    thresholds: Optional[CompletionThresholds] = None,
) -> ComplaintProgress:
    """
    Split, classify and measure every complaint against the transcript.

    The current complaint is the first one not yet completed; complaints are
    worked through in the order the patient listed them.
    """
    thresholds = thresholds or CompletionThresholds()
    complaints = split_complaints(chief_complaint)
    coverage = [_measure(c, analysis, thresholds) for c in complaints]

    current_index = len(complaints) - 1
    for entry in coverage:
        if not entry.is_complete:
            current_index = entry.complaint.position
            break

    return ComplaintProgress(
        complaints=complaints,
        coverage=coverage,
        current_index=current_index,
    )
