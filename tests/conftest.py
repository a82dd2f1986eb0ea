"""
Shared fixtures.

The database URL is pointed at a throwaway SQLite file before anything from
interview_engine is imported, since the engine is built at import time.
"""

import json
import os
import tempfile
import threading
from datetime import datetime, timedelta

_TEST_DB_DIR = tempfile.mkdtemp(prefix="interview-engine-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'app.db')}"
os.environ["INVITATION_SESSION_SECRET"] = "test-invitation-secret"
os.environ["HIPAA_MODE"] = "false"
os.environ["MOCK_AI"] = "false"
os.environ["APP_ENV"] = "test"

import pytest
from fastapi.testclient import TestClient

from interview_engine.api.deps import get_interview_service
from interview_engine.config import Settings
from interview_engine.interview.schema import InterviewMessage
from interview_engine.llm import LLMClient
from interview_engine.main import app
from interview_engine.security.invitations import InvitationRecord, hash_value
from interview_engine.security.store import InMemoryInvitationStore
from interview_engine.services.interview_service import InterviewService


RAW_TOKEN = "a" * 64
INVITATION_ID = "inv-0001"
PHYSICIAN_ID = "phys-0001"
PATIENT_EMAIL = "pat@example.com"

PROFILE = {
    "sex": "female",
    "age": 30,
    "pmh": "None reported",
    "familyHistory": "Non-contributory",
    "familyDoctor": "Dr. Lee",
    "currentMedications": "None",
    "allergies": "No known allergies",
}

QUESTION_JSON = json.dumps(
    {
        "type": "question",
        "question": "I understand your throat has been sore for the past three days. Can you tell me more about it?",
        "rationale": "Open-ended start to gather the history of present illness.",
    }
)

SUMMARY_JSON = json.dumps(
    {
        "type": "summary",
        "positives": ["Three days of sore throat", "Painful swallowing"],
        "negatives": ["No drooling", "No difficulty breathing"],
        "physicalFindings": ["Self-reported tender anterior neck nodes"],
        "summary": "30 year old female with three days of sore throat and painful swallowing without airway symptoms.",
        "investigations": ["Rapid strep antigen test"],
        "assessment": "Differential includes viral pharyngitis and streptococcal pharyngitis.",
        "plan": ["Rapid strep test", "Analgesia and fluids", "Return if breathing becomes difficult"],
    }
)


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 5, 9, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class ScriptedLLM(LLMClient):
    """
    Returns a summary when the prompt asks for one, a question otherwise.
    `error` is raised instead when set; `reply` overrides both.
    """

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []
        self._lock = threading.Lock()

    def chat(self, messages, temperature=None, model=None):
        with self._lock:
            self.calls.append(messages)
        if self.error is not None:
            raise self.error
        if self.reply is not None:
            return self.reply
        user_prompt = messages[-1]["content"]
        if "Provide the summary NOW" in user_prompt:
            return SUMMARY_JSON
        return QUESTION_JSON

    @property
    def last_user_prompt(self):
        return self.calls[-1][-1]["content"]


def transcript_of(*pairs):
    """[(question, answer), ...] -> alternating assistant/patient messages."""
    messages = []
    for question, answer in pairs:
        messages.append(InterviewMessage(role="assistant", content=question))
        if answer is not None:
            messages.append(InterviewMessage(role="patient", content=answer))
    return messages


def interview_payload(transcript=None, **overrides):
    payload = {
        "chiefComplaint": "3 days of sore throat",
        "patientProfile": dict(PROFILE),
        "transcript": transcript or [],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryInvitationStore()


@pytest.fixture
def invitation(store, settings):
    record = InvitationRecord(
        id=INVITATION_ID,
        physician_id=PHYSICIAN_ID,
        patient_email=PATIENT_EMAIL,
        patient_name="Pat Example",
        token_hash=hash_value(RAW_TOKEN, settings.invitation_session_secret),
    )
    store.add_invitation(record)
    return record


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def service(store, settings, llm, invitation):
    return InterviewService(store=store, settings=settings, llm_client=llm)


@pytest.fixture
def client(service):
    app.dependency_overrides[get_interview_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def opened_client(client):
    res = client.post("/api/invitations/open", json={"token": RAW_TOKEN})
    assert res.status_code == 200, res.text
    return client
