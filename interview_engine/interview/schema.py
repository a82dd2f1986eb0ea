# interview_engine/interview/schema.py
from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
)


# Documented limits of the turn contract. The recovery pipeline truncates
# to these when the model overshoots.
QUESTION_MAX_CHARS = 1000
RATIONALE_MAX_CHARS = 280
SUMMARY_MAX_CHARS = 1500
ASSESSMENT_MAX_CHARS = 1500
FINAL_COMMENTS_MAX_CHARS = 2000
MAX_LIST_ITEMS = 6

STRING_FIELD_LIMITS = {
    "question": QUESTION_MAX_CHARS,
    "rationale": RATIONALE_MAX_CHARS,
    "summary": SUMMARY_MAX_CHARS,
    "assessment": ASSESSMENT_MAX_CHARS,
    "patientFinalQuestionsComments": FINAL_COMMENTS_MAX_CHARS,
}
LIST_FIELDS = ("positives", "negatives", "physicalFindings", "investigations", "plan")


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


MessageText = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)
]
ProfileText = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=3, max_length=600)
]


def _optional_text(max_length: int):
    return Annotated[
        Optional[
            Annotated[
                str,
                StringConstraints(strip_whitespace=True, min_length=1, max_length=max_length),
            ]
        ],
        BeforeValidator(_blank_to_none),
    ]


AttachmentText = _optional_text(10000)
ImageSummaryText = _optional_text(800)
GuidanceText = _optional_text(50000)
IdentityHintText = _optional_text(320)


class InterviewMessage(BaseModel):
    role: Literal["assistant", "patient"]
    content: MessageText


class PatientProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    sex: Literal["female", "male", "nonbinary", "unspecified"]
    age: int = Field(..., ge=0, le=120)
    pmh: ProfileText
    family_history: ProfileText = Field(..., alias="familyHistory")
    family_doctor: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=3, max_length=200)
    ] = Field(..., alias="familyDoctor")
    current_medications: ProfileText = Field(..., alias="currentMedications")
    allergies: ProfileText


class InterviewRequest(BaseModel):
    """
    One interview call. The caller replays the whole transcript every time;
    nothing about the conversation is kept server-side.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    chief_complaint: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=3, max_length=500)
    ] = Field(..., alias="chiefComplaint")
    patient_profile: PatientProfile = Field(..., alias="patientProfile")
    transcript: List[InterviewMessage] = Field(default_factory=list, max_length=200)

    image_summary: ImageSummaryText = Field(None, alias="imageSummary")
    lab_report_summary: AttachmentText = Field(None, alias="labReportSummary")
    previous_lab_report_summary: AttachmentText = Field(
        None, alias="previousLabReportSummary"
    )
    form_summary: AttachmentText = Field(None, alias="formSummary")
    med_pmh_summary: AttachmentText = Field(None, alias="medPmhSummary")
    patient_background: AttachmentText = Field(None, alias="patientBackground")
    interview_guidance: GuidanceText = Field(None, alias="interviewGuidance")

    force_summary: bool = Field(False, alias="forceSummary")
    language: Optional[
        Annotated[
            str,
            StringConstraints(strip_whitespace=True, to_lower=True, min_length=2, max_length=12),
        ]
    ] = None

    # Identity hints are advisory only; the invitation session is authoritative.
    patient_email: IdentityHintText = Field(None, alias="patientEmail")
    physician_id: IdentityHintText = Field(None, alias="physicianId")


class QuestionTurn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["question"] = "question"
    question: str = Field(..., min_length=4, max_length=QUESTION_MAX_CHARS)
    rationale: Optional[str] = Field(None, min_length=5, max_length=RATIONALE_MAX_CHARS)


class SummaryTurn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: Literal["summary"] = "summary"
    positives: List[str] = Field(..., min_length=1, max_length=MAX_LIST_ITEMS)
    negatives: List[str] = Field(..., min_length=1, max_length=MAX_LIST_ITEMS)
    physical_findings: List[str] = Field(
        default_factory=list, max_length=MAX_LIST_ITEMS, alias="physicalFindings"
    )
    summary: str = Field(..., min_length=10, max_length=SUMMARY_MAX_CHARS)
    investigations: List[str] = Field(default_factory=list, max_length=MAX_LIST_ITEMS)
    assessment: str = Field(..., min_length=10, max_length=ASSESSMENT_MAX_CHARS)
    plan: List[str] = Field(..., min_length=1, max_length=MAX_LIST_ITEMS)
    patient_final_questions_comments: Optional[str] = Field(
        None,
        min_length=1,
        max_length=FINAL_COMMENTS_MAX_CHARS,
        alias="patientFinalQuestionsComments",
    )
    interview_language: Optional[str] = Field(
        None, min_length=2, max_length=12, alias="interviewLanguage"
    )


InterviewTurn = Annotated[Union[QuestionTurn, SummaryTurn], Field(discriminator="type")]

interview_turn_adapter: TypeAdapter[InterviewTurn] = TypeAdapter(InterviewTurn)


def dump_turn(turn: QuestionTurn | SummaryTurn) -> dict:
    """Wire form of a turn: camelCase keys, unset optionals left out."""
    return turn.model_dump(by_alias=True, exclude_none=True)
