from interview_engine.interview.safety import enforce_assistive_language, sanitize_assistive_text
from interview_engine.interview.schema import (
    QUESTION_MAX_CHARS,
    SUMMARY_MAX_CHARS,
    QuestionTurn,
    SummaryTurn,
)


def test_directive_phrases_are_rewritten():
    text, changed = sanitize_assistive_text("The diagnosis is strep throat.")
    assert changed
    assert text == "Differential considerations include strep throat."


def test_neutral_text_is_untouched():
    text, changed = sanitize_assistive_text("Consider a rapid strep test.")
    assert not changed
    assert text == "Consider a rapid strep test."


def test_summary_fields_are_cleaned():
    turn = SummaryTurn(
        positives=["Sore throat"],
        negatives=["No fever"],
        summary="Patient has a three day sore throat.",
        assessment="Most likely diagnosis is viral pharyngitis.",
        plan=["Start treatment with analgesics", "Fluids"],
    )
    cleaned = enforce_assistive_language(turn)

    assert cleaned.summary.startswith("Findings may be consistent with")
    assert cleaned.assessment == "Clinical features suggest viral pharyngitis."
    assert cleaned.plan[0] == "Consider treatment options such as analgesics"
    assert cleaned.positives == ["Sore throat"]


def test_question_without_rationale():
    turn = QuestionTurn(question="Does the patient have a fever?")
    assert enforce_assistive_language(turn).rationale is None


def test_rewrites_near_the_limit_are_clipped():
    summary = ("patient has sore throat. " * 60)[:SUMMARY_MAX_CHARS]
    turn = SummaryTurn(
        positives=["Sore throat"],
        negatives=["No fever"],
        summary=summary,
        assessment="Viral pharyngitis is possible.",
        plan=["Fluids"],
    )
    cleaned = enforce_assistive_language(turn)

    assert len(cleaned.summary) == SUMMARY_MAX_CHARS
    assert cleaned.summary.startswith("Findings may be consistent with sore throat.")
    assert cleaned.summary.endswith("...")
    assert "patient has" not in cleaned.summary.lower()


def test_long_question_stays_within_limit():
    question = "x" * 980 + " the patient has?"
    assert len(question) <= QUESTION_MAX_CHARS
    cleaned = enforce_assistive_language(QuestionTurn(question=question))

    assert isinstance(cleaned, QuestionTurn)
    assert len(cleaned.question) == QUESTION_MAX_CHARS
    assert cleaned.question.endswith("...")
