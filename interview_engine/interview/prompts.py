# interview_engine/interview/prompts.py
"""
Builds the system and user prompts for one interview turn.

The user prompt is a stack of optional sections; each helper returns an
empty string when its section does not apply.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from interview_engine.interview.complaints import ComplaintProgress
from interview_engine.interview.phase import Phase, PhaseDecision
from interview_engine.interview.schema import InterviewMessage, InterviewRequest, PatientProfile
from interview_engine.interview.topics import TranscriptAnalysis


SUPPORTED_LANGUAGES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "zh": "Chinese (Simplified)",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
    "hi": "Hindi",
    "fa": "Farsi (Persian)",
}

QUESTION_SHAPE = '{"type":"question","question":"...","rationale":"..."}'
SUMMARY_SHAPE = (
    '{"type":"summary","positives":[],"negatives":[],"physicalFindings":[],'
    '"summary":"","investigations":[],"assessment":"","plan":[]}'
)

SYSTEM_INSTRUCTION = """
You are a Physician Assistant conducting a clinical interview. Gather a
focused history of present illness, perform a virtual physical examination
when appropriate, systematically rule out red flags, and finish with a
clinical summary, assessment and plan for the treating physician to review.

CHIEF COMPLAINT HANDLING:
- Understand the chief complaint and rephrase it into a natural sentence. Never repeat it verbatim.
- Stay on ONE complaint at a time. Do not ask about a later complaint until the current one is complete.
- Move to the next complaint without announcing the transition.

QUESTIONING STRATEGY:
- Open with open-ended questions that let the patient tell their story, then narrow to focused questions
  (onset, duration, severity, quality, location, triggers, relieving factors, associated symptoms).
- Bundle related red flags or associated symptoms into ONE question and allow yes/no or "which apply" answers.
- Every question must serve a clinical purpose: characterising symptoms, ruling out red flags,
  distinguishing differential diagnoses or assessing urgency.
- If an answer is unclear, ambiguous or does not address the question, ask a clarifying question before moving on.

ANTI-DUPLICATE RULES:
- Before asking anything, review the full list of questions already asked, the topics already covered
  and the information the patient has already provided.
- Never ask a question that is the same as, or semantically similar to, one already asked.
- Never ask about information the patient has already volunteered.

VIRTUAL PHYSICAL EXAM:
- For musculoskeletal complaints assess range of motion, tenderness and swelling, one body part per question.
- Record every patient-reported exam finding in physicalFindings.

OUTPUT:
- Respond with a single JSON object and nothing else. No prose before or after it, no markdown fences.
- Keep questions under 1000 characters and rationales under 280 characters.
- Summaries and assessments stay under 1500 characters; each list holds at most 6 items.
- Use assistive language in the assessment and plan; the physician makes the final decision.
""".strip()


def resolve_language(code: Optional[str]) -> str:
    if code and code in SUPPORTED_LANGUAGES:
        return SUPPORTED_LANGUAGES[code]
    return SUPPORTED_LANGUAGES["en"]


def language_instruction(language_name: str) -> str:
    return (
        f"LANGUAGE: Ask all patient-facing questions ONLY in {language_name}. "
        f"Do not mix languages unless {language_name} is English. If you cannot reliably "
        f"produce {language_name}, fall back to English. Keep summary, assessment and plan "
        "in English for the clinician."
    )


def format_transcript(messages: Sequence[InterviewMessage]) -> str:
    if not messages:
        return "Transcript: (no questions have been asked yet)"
    lines = [
        f"{'Assistant' if m.role == 'assistant' else 'Patient'}: {m.content}"
        for m in messages
    ]
    return "Transcript:\n" + "\n".join(lines)


def _profile_section(profile: PatientProfile, background: Optional[str]) -> str:
    lines = [
        f"Patient sex: {profile.sex}",
        f"Patient age: {profile.age}",
        f"Pertinent past medical history: {profile.pmh}",
        f"Family history: {profile.family_history}",
        f"Current medications (include OTC/supplements): {profile.current_medications}",
        f"Family doctor: {profile.family_doctor}",
        f"Documented drug allergies: {profile.allergies}",
    ]
    if background:
        lines.append(f"Physician-provided background: {background}")
    return "\n".join(lines)


def _complaint_sections(progress: ComplaintProgress) -> str:
    current = progress.current
    parts: List[str] = []

    if progress.has_multiple:
        numbered = "\n".join(
            f"{c.position + 1}. {c.text}" for c in progress.complaints
        )
        parts.append(
            f"CHIEF COMPLAINTS ({len(progress.complaints)} total):\n{numbered}\n"
            "Address ALL complaints sequentially and do not summarize until every one is explored."
        )
        completed = [c for c in progress.completed if c.position != current.position]
        if completed:
            parts.append(
                "COMPLETED COMPLAINTS:\n"
                + "\n".join(f"  - {c.text}" for c in completed)
                + "\nThese are fully explored. Only return to them to clarify something critical."
            )

    parts.append(
        f'CURRENT FOCUS: complaint #{current.position + 1}: "{current.text}" '
        f"(category: {current.category.value})\n"
        "Completion criteria: core symptom characteristics gathered, relevant red flags assessed, "
        "associated symptoms identified, virtual exam done where applicable."
    )

    checklist = progress.current_checklist()
    parts.append(
        f'RED FLAG CHECKLIST for "{current.text}":\n'
        + "\n".join(f"  {i}. {item.name}" for i, item in enumerate(checklist, start=1))
        + "\nAssess these before moving on, bundling related items into one question."
    )

    remaining = progress.remaining
    if remaining:
        parts.append(
            "DO NOT ASK ABOUT (until the current complaint is complete):\n"
            + "\n".join(f'  - Complaint #{c.position + 1}: "{c.text}"' for c in remaining)
        )
    return "\n\n".join(parts)


def _lab_section(current: Optional[str], previous: Optional[str]) -> str:
    missing_result = (
        "If the patient asks about a result not in the summary, say it is not in the report "
        "provided and that their physician will discuss it. Never guess at results."
    )
    if current and previous:
        return (
            f"Current Lab Report Summary:\n{current}\n\n"
            f"Previous Lab Report Summary:\n{previous}\n\n"
            "Compare the two reports: values that changed, trends, new abnormalities and "
            "resolved abnormalities. Ask about interventions or lifestyle changes between them. "
            + missing_result
        )
    report = current or previous
    if not report:
        return ""
    label = "Lab Report Summary" if current else "Previous Lab Report Summary"
    return (
        f"{label}:\n{report}\n\n"
        "Use these findings to guide your questions and discuss abnormal results. "
        + missing_result
    )


def _attachment_sections(request: InterviewRequest) -> List[str]:
    sections: List[str] = []
    if request.image_summary:
        sections.append(
            f"Image-based findings (from patient-provided photo): {request.image_summary}\n"
            "A photo has already been analyzed. Do NOT ask for another photo."
        )
    else:
        sections.append(
            "Image-based findings: (no photo provided). If the complaint is visible (rash, lesion, "
            "wound, swelling, bruising, deformity), offer the patient the option to share a photo."
        )

    lab = _lab_section(request.lab_report_summary, request.previous_lab_report_summary)
    if lab:
        sections.append(lab)

    if request.form_summary:
        sections.append(
            f"Form to Complete (from physician-uploaded PDF):\n{request.form_summary}\n\n"
            "Gather everything this form needs, mixing form questions naturally with clinical "
            "questions about the chief complaint. Note the form responses in the final summary."
        )

    if request.med_pmh_summary:
        sections.append(
            f"Medication list / PMH (from uploaded photo):\n{request.med_pmh_summary}\n"
            "Treat these as patient-reported; confirm key items briefly instead of re-asking."
        )

    if request.interview_guidance:
        sections.append(
            "PHYSICIAN-SPECIFIC INTERVIEW GUIDANCE (MANDATORY):\n"
            f"{request.interview_guidance}\n"
            "These instructions take precedence over general guidance."
        )
    return sections


def _history_sections(
    analysis: TranscriptAnalysis,
    max_questions_listed: int,
) -> List[str]:
    sections = [format_transcript(analysis.recent_messages)]
    if analysis.is_truncated:
        sections.append(
            f"Note: transcript truncated to the most recent {len(analysis.recent_messages)} "
            f"messages. Total questions asked: {analysis.question_count}."
        )

    total = analysis.question_count
    if total:
        shown = analysis.questions_asked[-max_questions_listed:] if max_questions_listed > 0 else []
        offset = total - len(shown)
        header = f"QUESTIONS ALREADY ASKED (DO NOT REPEAT THESE - TOTAL: {total}):"
        if offset:
            header += f"\n[Showing last {len(shown)} of {total} questions]"
        numbered = "\n".join(f"{offset + i}. {q}" for i, q in enumerate(shown, start=1))
        sections.append(
            f"{header}\n{numbered}\n"
            f"Do not ask any of these {total} questions again, even rephrased. "
            "Pick a clinical topic that has not been covered."
        )

    if analysis.topics_covered:
        sections.append(
            "TOPICS ALREADY COVERED (DO NOT ASK ABOUT THESE AGAIN):\n"
            + "\n".join(f"  - {t}" for t in sorted(analysis.topics_covered))
        )

    info = analysis.patient_information.summary
    if analysis.patient_answers and info:
        sections.append(
            f"INFORMATION ALREADY PROVIDED BY PATIENT:\n{info}\n"
            "Do not ask about anything the patient has already told you."
        )
    return sections


def _opening_section(chief_complaint: str, question_count: int) -> str:
    if question_count == 0:
        return (
            "This is your FIRST question. Rephrase the chief complaint into a natural sentence; "
            f'do NOT copy "{chief_complaint}" verbatim. Use an open-ended question that invites '
            "the patient to tell their story."
        )
    if question_count < 4:
        return (
            "You are early in the interview. Prefer open-ended questions before moving to focused "
            "clinical questions."
        )
    return ""


def _phase_section(decision: PhaseDecision, has_multiple: bool) -> str:
    lines = [f"QUESTIONS ASKED SO FAR: {decision.question_count}."]
    if decision.budget is None:
        lines.append("Question budget: no fixed limit while a form is being completed.")
    else:
        lines.append(f"Question budget: {decision.budget} questions in total.")
    if decision.escalation.escalated:
        lines.append(
            "Extra care is warranted ("
            + ", ".join(r.replace("_", " ") for r in decision.escalation.reasons)
            + ")."
        )

    if decision.phase is Phase.FORM_CATCHUP:
        lines.append(
            "PHASE: form catch-up. The history of present illness should be mostly complete; "
            "prioritise the form items that are still missing."
        )
    else:
        lines.append("PHASE: history of present illness first.")

    if decision.remaining_form_items:
        lines.append(
            "Form items not yet covered:\n"
            + "\n".join(f"  - {item}" for item in decision.remaining_form_items)
        )
    if decision.budget_exhausted:
        lines.append(
            "The question budget is reached. Wrap up and provide the summary unless a "
            "safety-critical clarification is still needed."
        )
    lines.append(
        "Safety-critical clarification questions are always permitted, whatever the phase or budget."
    )
    per = "per complaint " if has_multiple else ""
    lines.append(f"Aim for 8-20 targeted clinical questions {per}before summarizing.")
    return "\n".join(lines)


def _closing_section(force_summary: bool, decision: PhaseDecision, has_multiple: bool) -> str:
    scope = "ALL complaints" if has_multiple else "this complaint"
    if force_summary:
        return (
            "The patient has asked to end the interview. Provide the summary NOW based on what has "
            f"been gathered: a one-paragraph narrative covering {scope}, an assessment with "
            f"differential diagnoses and a specific plan.\nRespond with {SUMMARY_SHAPE}."
        )

    readiness = (
        "Coverage checks indicate you may summarize if you have enough information."
        if decision.ready_to_summarize
        else f"Coverage checks indicate {scope} still need(s) more questions or red flag assessment."
    )
    return (
        f"Only summarize once you have fully explored {scope}, assessed every relevant red flag, "
        "and can form an assessment with differential diagnoses and a treatment plan.\n"
        f"{readiness}\n"
        f"If you need more information, respond with {QUESTION_SHAPE}. The rationale explains the "
        "clinical purpose of the question.\n"
        f"If you have enough information, respond with {SUMMARY_SHAPE}."
    )


@dataclass(frozen=True)
class BuiltPrompt:
    system: str
    user: str
    language_name: str


def build_prompt(
    request: InterviewRequest,
    analysis: TranscriptAnalysis,
    progress: ComplaintProgress,
    decision: PhaseDecision,
    max_questions_listed: int = 50,
) -> BuiltPrompt:
    language_name = resolve_language(request.language)
    sections: List[str] = [
        f"Chief complaint(s): {request.chief_complaint}",
        _complaint_sections(progress),
        _profile_section(request.patient_profile, request.patient_background),
    ]
    sections.extend(_attachment_sections(request))
    sections.extend(_history_sections(analysis, max_questions_listed))
    sections.append(_opening_section(request.chief_complaint, analysis.question_count))
    sections.append(_phase_section(decision, progress.has_multiple))
    sections.append(_closing_section(request.force_summary, decision, progress.has_multiple))
    sections.append(
        "Respond with valid JSON only. Escape all strings properly and do not add text outside the object."
    )
    sections.append(
        f"LANGUAGE PREFERENCE: Conduct all patient-facing questions in {language_name}."
    )

    user = "\n\n".join(s for s in sections if s)
    system = f"{SYSTEM_INSTRUCTION}\n\n{language_instruction(language_name)}"
    return BuiltPrompt(system=system, user=user, language_name=language_name)
