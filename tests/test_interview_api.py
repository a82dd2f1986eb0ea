"""
End-to-end tests for /api/interview and /api/invitations/open.
"""

import json
import threading
from dataclasses import replace
from datetime import timedelta

import pytest

from interview_engine.api.deps import get_interview_service
from interview_engine.errors import InvitationForbiddenError, InvitationRequiredError
from interview_engine.interview.schema import InterviewRequest
from interview_engine.main import app
from interview_engine.models import utcnow
from interview_engine.services.interview_service import InterviewService, RequestContext

from conftest import (
    INVITATION_ID,
    PHYSICIAN_ID,
    RAW_TOKEN,
    SUMMARY_JSON,
    ScriptedLLM,
    interview_payload,
)


def _use(service):
    app.dependency_overrides[get_interview_service] = lambda: service


def _open(client):
    res = client.post("/api/invitations/open", json={"token": RAW_TOKEN})
    assert res.status_code == 200, res.text
    return res


class TestBasics:
    def test_root(self, client):
        res = client.get("/", headers={"X-Request-ID": "req-123"})
        assert res.status_code == 200
        assert res.json() == {"message": "Interview Engine API is running"}
        assert res.headers["X-Request-ID"] == "req-123"

    def test_open_sets_session_cookie(self, client, store):
        res = _open(client)
        assert res.json()["invitationId"] == INVITATION_ID
        assert "expiresAt" in res.json()
        assert "invitation_session" in res.cookies
        assert len(store.events_of_type("invitation_opened")) == 1

    def test_open_with_unknown_token(self, client):
        res = client.post("/api/invitations/open", json={"token": "b" * 64})
        assert res.status_code == 403
        assert res.json() == {"error": "You weren't invited to complete this form."}

    def test_no_session_cookie(self, client, llm):
        res = client.post("/api/interview", json=interview_payload())
        assert res.status_code == 401
        assert res.json()["error"] == "Invitation verification is required."
        assert llm.calls == []

    def test_tampered_cookie(self, client):
        client.cookies.set("invitation_session", "e30.bm90LWEtc2lnbmF0dXJl")
        res = client.post("/api/interview", json=interview_payload())
        assert res.status_code == 401

    def test_invalid_payload(self, opened_client):
        res = opened_client.post("/api/interview", json=interview_payload(chiefComplaint="ab"))
        assert res.status_code == 400
        body = res.json()
        assert body["error"] == "Invalid payload."
        assert "chiefComplaint" in body["message"]

    def test_invalid_json(self, opened_client):
        res = opened_client.post(
            "/api/interview",
            content="{not json",
            headers={"content-type": "application/json"},
        )
        assert res.status_code == 400
        assert res.json()["error"] == "Invalid JSON body."

    def test_assistant_turn_last_is_rejected(self, opened_client, llm):
        transcript = [{"role": "assistant", "content": "How long has it hurt?"}]
        res = opened_client.post("/api/interview", json=interview_payload(transcript=transcript))
        assert res.status_code == 422
        assert llm.calls == []


class TestInterviewFlow:
    def test_sore_throat_interview_to_summary(self, opened_client, llm):
        res = opened_client.post("/api/interview", json=interview_payload())
        assert res.status_code == 200, res.text
        first = res.json()
        assert first["type"] == "question"
        assert first["question"].strip().lower() != "3 days of sore throat"
        assert "This is your FIRST question" in llm.last_user_prompt

        transcript = []
        turn = first
        for i in range(7):
            transcript += [
                {"role": "assistant", "content": turn["question"]},
                {"role": "patient", "content": f"Answer number {i + 1}"},
            ]
            res = opened_client.post("/api/interview", json=interview_payload(transcript=transcript))
            assert res.status_code == 200, res.text
            turn = res.json()
            assert turn["type"] == "question"

        res = opened_client.post(
            "/api/interview",
            json=interview_payload(transcript=transcript, forceSummary=True),
        )
        assert res.status_code == 200, res.text
        summary = res.json()
        assert summary["type"] == "summary"
        assert summary["plan"]
        assert summary["positives"] and summary["negatives"]
        assert "physicalFindings" in summary
        assert len(summary["summary"]) > 10

    def test_first_turn_consumes_invitation_once(self, opened_client, store):
        for _ in range(2):
            assert opened_client.post("/api/interview", json=interview_payload()).status_code == 200

        assert store.get_invitation(INVITATION_ID).used_at is not None
        assert len(store.events_of_type("interview_started")) == 1

        # A used invitation cannot be opened again, but the bound session keeps working.
        again = opened_client.post("/api/invitations/open", json={"token": RAW_TOKEN})
        assert again.status_code == 403
        assert opened_client.post("/api/interview", json=interview_payload()).status_code == 200

    def test_concurrent_first_turns(self, service, store):
        opened = service.open_invitation(RAW_TOKEN, "10.0.0.1", "pytest")
        context = RequestContext(session_cookie=opened.cookie_value, ip_address="10.0.0.1")
        request = InterviewRequest.model_validate(interview_payload())

        barrier = threading.Barrier(10)
        errors = []

        def worker():
            barrier.wait()
            try:
                service.handle(request, context)
            except Exception as exc:  # surfaced by the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(store.events_of_type("interview_started")) == 1

    def test_invitation_form_reaches_prompt(self, client, store, invitation, llm):
        store.add_invitation(replace(invitation, form_summary="WSIB claim form: work restrictions"))
        _open(client)

        res = client.post("/api/interview", json=interview_payload())
        assert res.status_code == 200
        assert "Form to Complete" in llm.last_user_prompt
        assert "WSIB claim form: work restrictions" in llm.last_user_prompt

    def test_directive_language_is_softened(self, opened_client, llm):
        data = json.loads(SUMMARY_JSON)
        data["assessment"] = "The diagnosis is streptococcal pharyngitis."
        llm.reply = json.dumps(data)

        res = opened_client.post(
            "/api/interview",
            json=interview_payload(
                transcript=[
                    {"role": "assistant", "content": "Anything else?"},
                    {"role": "patient", "content": "No."},
                ]
            ),
        )
        assert res.status_code == 200
        assert res.json()["assessment"] == "Differential considerations include streptococcal pharyngitis."


class TestInvitationState:
    def test_expired_invitation_is_forbidden(self, store, settings, llm, invitation, clock):
        store.add_invitation(replace(invitation, expires_at=clock() + timedelta(hours=2)))
        long_sessions = settings.model_copy(update={"invitation_session_ttl_hours": 48})
        service = InterviewService(store=store, settings=long_sessions, llm_client=llm, clock=clock)
        opened = service.open_invitation(RAW_TOKEN, "10.0.0.1", None)
        context = RequestContext(session_cookie=opened.cookie_value, ip_address="10.0.0.1")
        request = InterviewRequest.model_validate(interview_payload())

        assert service.handle(request, context)["type"] == "question"

        clock.advance(hours=3)
        with pytest.raises(InvitationForbiddenError):
            service.handle(request, context)

    def test_revoked_invitation_is_forbidden(self, opened_client, store, invitation):
        store.add_invitation(replace(invitation, revoked_at=utcnow()))
        res = opened_client.post("/api/interview", json=interview_payload())
        assert res.status_code == 403

    def test_session_expiry_requires_new_open(self, store, settings, llm, invitation, clock):
        service = InterviewService(store=store, settings=settings, llm_client=llm, clock=clock)
        opened = service.open_invitation(RAW_TOKEN, "10.0.0.1", None)
        context = RequestContext(session_cookie=opened.cookie_value)
        request = InterviewRequest.model_validate(interview_payload())

        clock.advance(hours=settings.invitation_session_ttl_hours, seconds=1)
        with pytest.raises(InvitationRequiredError):
            service.handle(request, context)

    def test_rate_limited(self, store, settings, llm, invitation, client):
        _use(InterviewService(
            store=store,
            settings=settings.model_copy(update={"interview_rate_limit_max": 2}),
            llm_client=llm,
        ))
        _open(client)

        for _ in range(2):
            assert client.post("/api/interview", json=interview_payload()).status_code == 200
        res = client.post("/api/interview", json=interview_payload())
        assert res.status_code == 429
        assert res.json()["retryAfterSeconds"] > 0

    def test_identity_hints_are_audited_not_trusted(self, opened_client, store):
        res = opened_client.post(
            "/api/interview",
            json=interview_payload(patientEmail="PAT@example.com", physicianId=PHYSICIAN_ID),
        )
        assert res.status_code == 200
        assert store.events_of_type("identity_override_attempt") == []

        res = opened_client.post(
            "/api/interview",
            json=interview_payload(patientEmail="someone.else@example.com"),
        )
        assert res.status_code == 200
        events = store.events_of_type("identity_override_attempt")
        assert len(events) == 1
        assert events[0].invitation_id == INVITATION_ID
        assert events[0].metadata == {"route": "/api/interview", "fields": ["patientEmail"]}


class TestModes:
    def test_hipaa_mode_blocks_generation(self, store, settings, llm, invitation, client):
        _use(InterviewService(
            store=store,
            settings=settings.model_copy(update={"hipaa_mode": True}),
            llm_client=llm,
        ))
        _open(client)

        res = client.post("/api/interview", json=interview_payload())
        assert res.status_code == 503
        assert res.json()["hipaaMode"] is True
        assert llm.calls == []

    def test_mock_mode_needs_no_completion_service(self, store, settings, invitation, client):
        scripted = ScriptedLLM(error=AssertionError("completion service must not be called"))
        _use(InterviewService(
            store=store,
            settings=settings.model_copy(update={"mock_ai": True, "hipaa_mode": True}),
            llm_client=scripted,
        ))
        _open(client)

        res = client.post("/api/interview", json=interview_payload())
        assert res.status_code == 200
        assert res.json()["question"].startswith("Tell me about your throat symptoms")

        transcript = []
        for i in range(7):
            transcript += [
                {"role": "assistant", "content": f"Mock question {i}"},
                {"role": "patient", "content": "yes"},
            ]
        res = client.post("/api/interview", json=interview_payload(transcript=transcript))
        assert res.json()["type"] == "summary"
        assert scripted.calls == []


class TestUpstreamFailures:
    ANSWERED = [
        {"role": "assistant", "content": "How long has it hurt?"},
        {"role": "patient", "content": "Three days."},
    ]

    def _post(self, client):
        return client.post("/api/interview", json=interview_payload(transcript=self.ANSWERED))

    def test_quota_error(self, opened_client, llm):
        llm.error = RuntimeError("Error code: 429 - You exceeded your current quota")
        res = self._post(opened_client)
        assert res.status_code == 429
        assert "request limit" in res.json()["error"]
        assert "retryAfterSeconds" not in res.json()

    def test_service_error(self, opened_client, llm):
        llm.error = RuntimeError("connection reset by peer")
        res = self._post(opened_client)
        assert res.status_code == 502
        assert "connection reset" not in res.text

    def test_unrecoverable_output(self, opened_client, llm):
        llm.reply = "I'm not able to continue with patient Jane Doe right now."
        res = self._post(opened_client)
        assert res.status_code == 502
        assert "Jane" not in res.text

    def test_malformed_output_is_recovered(self, opened_client, llm):
        llm.reply = '```json\n{"type": "question", "question": "Any fever or chills?",}\n```'
        res = self._post(opened_client)
        assert res.status_code == 200
        assert res.json() == {"type": "question", "question": "Any fever or chills?"}
    def test_missing_completion_client(self, store, settings, invitation, client):
        unconfigured = settings.model_copy(
            update={"openai_api_key": None, "azure_openai_endpoint": None}
        )
        _use(InterviewService(store=store, settings=unconfigured, llm_client=None))
        _open(client)

        res = self._post(client)
        assert res.status_code == 502
        assert res.json()["error"] == "The AI service is not configured."
