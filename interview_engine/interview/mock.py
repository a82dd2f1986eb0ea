# interview_engine/interview/mock.py
"""
Deterministic scripted interview used when MOCK_AI is on. No completion
service is contacted.
"""
from __future__ import annotations

from typing import List, Sequence, Tuple

from interview_engine.interview.schema import (
    InterviewMessage,
    PatientProfile,
    QuestionTurn,
    SummaryTurn,
)


FOLLOW_UPS: List[Tuple[str, str]] = [
    (
        "Have you noticed fevers or chills over the last few days?",
        "Fever pattern clarifies infectious severity and red flags.",
    ),
    (
        "Any difficulty swallowing saliva, breathing, or opening your mouth?",
        "Airway compromise symptoms require urgent escalation.",
    ),
    (
        "Have you experienced any associated symptoms like nausea, vomiting, or changes in appetite?",
        "Associated symptoms help complete the clinical picture and identify red flags.",
    ),
    (
        "Are there any factors that make your symptoms better or worse?",
        "Identifying triggers and relieving factors aids in diagnosis and management.",
    ),
    (
        "Have you tried any medications or treatments for this, and if so, what was the response?",
        "Treatment response provides diagnostic clues and informs management.",
    ),
    (
        "Is there anything else about your symptoms or your health that you think might be relevant?",
        "Final check for any missed red flags or important details.",
    ),
]


def _opening_question(chief_complaint: str) -> QuestionTurn:
    complaint = chief_complaint.lower()
    if "shortness of breath" in complaint or "dyspnea" in complaint:
        return QuestionTurn(
            question="How does the shortness of breath vary with exertion or lying flat?",
            rationale="Helps stratify pulmonary vs. cardiac causes and severity.",
        )
    if "chest pain" in complaint or "pressure" in complaint:
        return QuestionTurn(
            question="Can you describe the chest discomfort? Does it spread anywhere, and what brings it on or eases it?",
            rationale="Character and radiation clarify ischemic vs. non-cardiac causes.",
        )
    if "fever" in complaint or "sore throat" in complaint:
        return QuestionTurn(
            question="Tell me about your throat symptoms. Have you noticed any cough or nasal congestion with them?",
            rationale="Helps differentiate localized pharyngitis from broader respiratory infection.",
        )
    return QuestionTurn(
        question="Can you tell me more about what has been bothering you and how it started?",
        rationale="Establishes context when the intake does not match a common template.",
    )


def mock_interview_step(
    transcript: Sequence[InterviewMessage],
    profile: PatientProfile,
    chief_complaint: str,
) -> QuestionTurn | SummaryTurn:
    patient_turns = sum(1 for m in transcript if m.role == "patient")

    if patient_turns == 0:
        return _opening_question(chief_complaint)
    if patient_turns <= len(FOLLOW_UPS):
        question, rationale = FOLLOW_UPS[patient_turns - 1]
        return QuestionTurn(question=question, rationale=rationale)

    return SummaryTurn(
        positives=[
            "Two-day history of worsening sore throat with painful swallowing",
            "Subjective fevers responsive to acetaminophen",
            "Reports tender anterior cervical lymph nodes",
        ],
        negatives=[
            "Denies drooling, trismus, or voice changes",
            "No cough, rhinorrhea, or lower respiratory complaints",
            "No recent travel, new medications, or known sick contacts",
        ],
        summary=(
            "Patient describes a progressively painful sore throat with low-grade fevers and "
            "tender anterior nodes but no airway compromise or lower respiratory symptoms. "
            f"Baseline: {profile.sex} patient, age {profile.age}, PMH {profile.pmh}, current "
            f"medications {profile.current_medications}, family doctor {profile.family_doctor}."
        )[:1500],
        investigations=[
            "Rapid antigen detection test for Group A Streptococcus",
            "Consider throat culture if the rapid test is negative but suspicion remains high",
        ],
        assessment=(
            "Clinical features suggest uncomplicated pharyngitis in a stable adult without "
            "airway compromise; streptococcal and viral causes remain on the differential."
        ),
        plan=[
            "Consider antibiotic therapy if the rapid antigen test is positive",
            "Symptomatic relief with NSAIDs or acetaminophen and adequate hydration",
            "Return precautions for worsening swallowing, breathing difficulty, or neck swelling",
        ],
    )
