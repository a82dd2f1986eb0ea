"""
Tests for prompt assembly.
"""

from interview_engine.interview.complaints import assess_complaints
from interview_engine.interview.phase import decide_phase
from interview_engine.interview.prompts import build_prompt, format_transcript, resolve_language
from interview_engine.interview.schema import InterviewRequest
from interview_engine.interview.topics import analyze_transcript

from conftest import interview_payload, transcript_of


def _build(pairs=(), max_questions_listed=50, **overrides):
    transcript = [m.model_dump() for m in transcript_of(*pairs)]
    request = InterviewRequest.model_validate(interview_payload(transcript=transcript, **overrides))
    analysis = analyze_transcript(request.transcript)
    progress = assess_complaints(request.chief_complaint, analysis)
    decision = decide_phase(
        request.chief_complaint,
        analysis,
        progress,
        form_summary=request.form_summary,
        force_summary=request.force_summary,
    )
    return build_prompt(request, analysis, progress, decision, max_questions_listed=max_questions_listed)


def test_first_question_asks_for_a_rephrase():
    prompt = _build()
    assert "This is your FIRST question" in prompt.user
    assert 'do NOT copy "3 days of sore throat" verbatim' in prompt.user
    assert "Transcript: (no questions have been asked yet)" in prompt.user
    assert "QUESTIONS ALREADY ASKED" not in prompt.user


def test_language_selection():
    french = _build(language="FR")
    assert french.language_name == "French"
    assert "ONLY in French" in french.system

    assert _build(language="xx").language_name == "English"
    assert resolve_language(None) == "English"


def test_multiple_complaints_are_fenced_off():
    prompt = _build(chiefComplaint="sore throat and headache")
    assert "CHIEF COMPLAINTS (2 total)" in prompt.user
    assert 'CURRENT FOCUS: complaint #1: "sore throat"' in prompt.user
    assert 'Complaint #2: "headache"' in prompt.user
    assert "DO NOT ASK ABOUT" in prompt.user


def test_checklist_is_scoped_to_current_complaint():
    prompt = _build(chiefComplaint="severe headache")
    assert "Sudden thunderclap onset or worst headache of life" in prompt.user
    assert "Inability to bear weight" not in prompt.user


def test_long_history_lists_only_recent_questions():
    pairs = [(f"Q-{i:03d} anything else?", "no") for i in range(1, 61)]
    prompt = _build(pairs, max_questions_listed=50)

    assert "TOTAL: 60" in prompt.user
    assert "[Showing last 50 of 60 questions]" in prompt.user
    assert "11. Q-011 anything else?" in prompt.user
    assert "60. Q-060 anything else?" in prompt.user
    assert "Q-010" not in prompt.user
    assert "transcript truncated to the most recent 20 messages" in prompt.user


def test_topics_and_volunteered_information():
    prompt = _build([("On a scale of 0-10, how severe is it?", "About 7/10, and I passed out once")])
    assert "TOPICS ALREADY COVERED" in prompt.user
    assert "  - severity" in prompt.user
    assert "INFORMATION ALREADY PROVIDED BY PATIENT" in prompt.user


def test_force_summary():
    prompt = _build([("How long has it hurt?", "Three days")], forceSummary=True)
    assert "Provide the summary NOW" in prompt.user


def test_two_lab_reports_are_compared():
    prompt = _build(labReportSummary="WBC 12.1 (high)", previousLabReportSummary="WBC 8.0")
    assert "Compare the two reports" in prompt.user

    single = _build(labReportSummary="WBC 12.1 (high)")
    assert "Lab Report Summary:\nWBC 12.1 (high)" in single.user
    assert "Compare the two reports" not in single.user


def test_form_items_and_unlimited_budget():
    prompt = _build(formSummary="WSIB claim form. Sections: onset of symptoms, work restrictions.")
    assert "Form to Complete" in prompt.user
    assert "Question budget: no fixed limit" in prompt.user
    assert "  - work and activity limitations" in prompt.user


def test_photo_and_guidance_sections():
    without = _build()
    assert "offer the patient the option to share a photo" in without.user

    prompt = _build(
        imageSummary="Red, swollen tonsils with white exudate.",
        interviewGuidance="Always ask about recent travel.",
    )
    assert "Do NOT ask for another photo" in prompt.user
    assert "PHYSICIAN-SPECIFIC INTERVIEW GUIDANCE (MANDATORY)" in prompt.user
    assert "Always ask about recent travel." in prompt.user


def test_format_transcript_labels_roles():
    text = format_transcript(transcript_of(("How are you?", "Not great")))
    assert text == "Transcript:\nAssistant: How are you?\nPatient: Not great"
