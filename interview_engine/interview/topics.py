# interview_engine/interview/topics.py
"""
Topic & duplicate tracking over a transcript.

Everything here is a pure function of the transcript it is given. Topics are
always derived from the *whole* history; only the raw message window sent to
the model is bounded.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Pattern, Sequence, Tuple

from interview_engine.interview.schema import InterviewMessage


@dataclass(frozen=True)
class TopicRule:
    tag: str
    pattern: Pattern[str]


def _rule(tag: str, pattern: str) -> TopicRule:
    return TopicRule(tag=tag, pattern=re.compile(pattern, re.IGNORECASE))


# Topics recognised in assistant questions.
QUESTION_TOPIC_RULES: Tuple[TopicRule, ...] = (
    # Core symptom characteristics
    _rule("severity", r"\b(severity|severe|pain level|scale|0-10|how bad|intensity)\b"),
    _rule("location", r"\b(location|where|which area|which part|site)\b"),
    _rule("duration/onset", r"\b(duration|how long|when did it start|onset|started|began)\b"),
    _rule("quality", r"\b(quality|what does it feel like|describe|type of pain|character)\b"),
    _rule("triggers", r"\b(triggers?|what makes it worse|worsens|aggravates|provokes)\b"),
    _rule("relieving factors", r"\b(relieving|what makes it better|improves|helps|relief)\b"),
    _rule("associated symptoms", r"\b(associated|other symptoms|also|in addition|accompanied)\b"),
    _rule("upper respiratory symptoms", r"\b(nasal|congestion|runny nose|post[- ]?nasal drip|sneez(ing)?|sinus)\b"),
    _rule("voice/swallowing", r"\b(voice|hoarse|hoarseness|dysphonia|difficulty speaking|difficulty swallowing|dysphagia|swallow(ing)?)\b"),
    _rule("cough characteristics", r"\b(cough|coughing fits|whooping|barking)\b"),
    _rule("respiratory", r"\b(shortness of breath|dyspnea|breathless|difficulty breathing|wheez(e|ing)|chest tightness|breathing|respiratory)\b"),
    _rule("constitutional symptoms", r"\b(fevers?|chills|night sweats|sweats|fatigue|weight loss|appetite)\b"),
    _rule("travel/exposures", r"\b(travel|recent travel|flight|flew|airport|exposure|sick contacts?|close contact|covid)\b"),
    _rule("environmental exposures", r"\b(irritant|smoke|allergen|chemical|pollution|cold air|dry air|environment)\b"),
    _rule("lymph nodes", r"\b(lymph nodes?|lump|swollen glands?|swelling in (your )?neck)\b"),
    _rule("sleep/positional", r"\b(sleep|at night|lying down|when you lie|bedtime)\b"),
    # Virtual physical exam
    _rule("range of motion", r"\b(range of motion|rom|move|bend|straighten|flex|extend)\b"),
    _rule("tenderness", r"\b(tenderness|tender|palpation|press|touch)\b"),
    _rule("swelling", r"\b(swelling|swollen|edema)\b"),
    _rule("redness", r"\b(redness|red|inflammation)\b"),
    _rule("exudate", r"\b(exudate|discharge|pus|white spots|drainage)\b"),
    # Red flags
    _rule("blood pressure", r"\b(blood pressure|bp|hypertension|elevated)\b"),
    _rule("cardiac symptoms", r"\b(chest pain|cardiac|heart)\b"),
    _rule("neurological", r"\b(neurological|weakness|numbness|tingling|paralysis)\b"),
    _rule("loss of consciousness", r"\b(loss of consciousness|passed out|fainted|unconscious)\b"),
    # Motor vehicle accidents
    _rule("accident details", r"\b(accident|mva|motor vehicle|car accident|collision)\b"),
    _rule("accident response", r"\b(seatbelt|airbags?|ambulance|er|emergency room)\b"),
    _rule("previous injuries", r"\b(previous injur(y|ies)|prior injur(y|ies)|before|had you ever)\b"),
)

# Topics a patient can volunteer without being asked.
ANSWER_TOPIC_RULES: Tuple[TopicRule, ...] = (
    _rule("severity", r"\b(severity|severe|pain level|scale|0-10|how bad|intensity|mild|moderate|\d+\s*/\s*10|\d+ out of 10)"),
    _rule("location", r"\b(location|where|which area|which part|site|here|there)\b"),
    _rule("duration/onset", r"\b(duration|how long|when did it start|onset|started|began|days?|weeks?|months?|hours?)\b"),
    _rule("quality", r"\b(quality|what does it feel like|describe|type of pain|character|sharp|dull|aching|burning|throbbing)\b"),
    _rule("triggers", r"\b(triggers?|what makes it worse|worsens|aggravates|provokes|when|during|after)\b"),
    _rule("relieving factors", r"\b(relieving|what makes it better|improves|helps|relief|medication|rest|ice|heat)\b"),
    _rule("associated symptoms", r"\b(associated|other symptoms|also|in addition|accompanied|nausea|fever|chills|dizziness)\b"),
    _rule("range of motion", r"\b(range of motion|rom|move|bend|straighten|flex|extend|can't move|limited)\b"),
    _rule("tenderness", r"\b(tenderness|tender|palpation|press|touch|hurts when|painful when)\b"),
    _rule("swelling", r"\b(swelling|swollen|edema|puffy|enlarged)\b"),
    _rule("redness", r"\b(redness|red|inflammation|inflamed)\b"),
    _rule("exudate", r"\b(exudate|discharge|pus|white spots|drainage|draining)\b"),
    _rule("accident details", r"\b(accident|mva|motor vehicle|car accident|collision|crash)\b"),
    _rule("accident response", r"\b(seatbelt|airbags?|ambulance|er|emergency room|hospital)\b"),
    _rule("previous injuries", r"\b(previous injur(y|ies)|prior injur(y|ies)|before|had you ever|in the past)\b"),
)

ANSWER_RED_FLAG_RULES: Tuple[TopicRule, ...] = (
    _rule("blood pressure", r"\b(blood pressure|bp|hypertension|elevated|high blood pressure)\b"),
    _rule("cardiac symptoms", r"\b(chest pain|cardiac|heart|heart attack|angina)\b"),
    _rule("respiratory", r"\b(shortness of breath|dyspnea|breathing|respiratory|can't breathe|difficulty breathing)\b"),
    _rule("neurological", r"\b(neurological|weakness|numbness|tingling|paralysis|can't move|loss of sensation)\b"),
    _rule("loss of consciousness", r"\b(loss of consciousness|passed out|fainted|unconscious|blacked out)\b"),
)

_SEVERITY_SNIPPET = re.compile(
    r"\b(\d+\s*/\s*10|\d+ out of 10|very severe|mild|moderate|severe)\b", re.IGNORECASE
)
_DURATION_SNIPPET = re.compile(r"\b(\d+\s*(?:minute|hour|day|week|month|year)s?)\b", re.IGNORECASE)


def _ordered_unique(items: Iterable[str]) -> List[str]:
    seen = set()
    result: List[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def _match_rules(text: str, rules: Sequence[TopicRule]) -> List[str]:
    return [rule.tag for rule in rules if rule.pattern.search(text)]


def extract_topics(question: str) -> List[str]:
    """
    TopicTags for a single assistant question, in rule-table order.
    """
    return _ordered_unique(_match_rules(question, QUESTION_TOPIC_RULES))


@dataclass(frozen=True)
class PatientInformation:
    mentioned_topics: List[str] = field(default_factory=list)
    symptom_details: List[str] = field(default_factory=list)
    red_flags_mentioned: List[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        lines: List[str] = []
        if self.mentioned_topics:
            lines.append(f"Topics mentioned: {', '.join(self.mentioned_topics)}")
        lines.extend(self.symptom_details)
        if self.red_flags_mentioned:
            lines.append(f"Red flags addressed: {', '.join(self.red_flags_mentioned)}")
        return "\n".join(lines)


def extract_information_from_answers(answers: Sequence[str]) -> PatientInformation:
    """
    Work out what the patient has already told us, so the model does not
    ask for it again.
    """
    if not answers:
        return PatientInformation()

    text = " ".join(answers).lower()

    topics = _match_rules(text, ANSWER_TOPIC_RULES)
    details: List[str] = []

    if "severity" in topics:
        match = _SEVERITY_SNIPPET.search(text)
        if match:
            details.append(f"Severity: {match.group(0)}")
    if "duration/onset" in topics:
        match = _DURATION_SNIPPET.search(text)
        if match:
            details.append(f"Duration: {match.group(0)}")

    return PatientInformation(
        mentioned_topics=_ordered_unique(topics),
        symptom_details=details,
        red_flags_mentioned=_ordered_unique(_match_rules(text, ANSWER_RED_FLAG_RULES)),
    )


@dataclass(frozen=True)
class TranscriptAnalysis:
    questions_asked: List[str]
    patient_answers: List[str]
    topics_covered: frozenset
    patient_information: PatientInformation
    recent_messages: List[InterviewMessage]
    total_messages: int

    @property
    def question_count(self) -> int:
        return len(self.questions_asked)

    @property
    def is_truncated(self) -> bool:
        return len(self.recent_messages) < self.total_messages

    @property
    def transcript_text(self) -> str:
        return " ".join(self.questions_asked + self.patient_answers).lower()


def analyze_transcript(
    transcript: Sequence[InterviewMessage],
    window: int = 20,
) -> TranscriptAnalysis:
    questions = [
        m.content.strip()
        for m in transcript
        if m.role == "assistant" and m.content.strip()
    ]
    answers = [
        m.content.strip()
        for m in transcript
        if m.role == "patient" and m.content.strip()
    ]

    topics = set()
    for question in questions:
        topics.update(extract_topics(question))

    recent = list(transcript[-window:]) if window > 0 else []

    return TranscriptAnalysis(
        questions_asked=questions,
        patient_answers=answers,
        topics_covered=frozenset(topics),
        patient_information=extract_information_from_answers(answers),
        recent_messages=recent,
        total_messages=len(transcript),
    )
