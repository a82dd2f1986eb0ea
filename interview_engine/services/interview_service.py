# interview_engine/services/interview_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from interview_engine.config import Settings
from interview_engine.errors import (
    InterviewError,
    InvitationForbiddenError,
    InvitationRequiredError,
    RateLimitedError,
    ServiceDisabledError,
    TurnOrderError,
    UpstreamServiceError,
)
from interview_engine.interview.complaints import CompletionThresholds, assess_complaints
from interview_engine.interview.mock import mock_interview_step
from interview_engine.interview.phase import decide_phase
from interview_engine.interview.prompts import build_prompt
from interview_engine.interview.recovery import parse_interview_turn
from interview_engine.interview.safety import enforce_assistive_language
from interview_engine.interview.schema import InterviewRequest, dump_turn
from interview_engine.interview.topics import analyze_transcript
from interview_engine.llm import LLMClient, OpenAILLMClient, classify_upstream_error
from interview_engine.models import utcnow
from interview_engine.security.invitations import (
    InvitationRecord,
    create_session_cookie,
    create_session_token,
    get_session_secret,
    hash_value,
    identity_mismatches,
    is_invitation_active,
    is_invitation_openable,
    parse_session_cookie,
    rate_limit_key,
)
from interview_engine.security.store import InvitationStore

logger = logging.getLogger(__name__)

INTERVIEW_ROUTE = "/api/interview"


@dataclass(frozen=True)
class RequestContext:
    """What the route knows about the caller, independent of the payload."""

    session_cookie: Optional[str] = None
    ip_address: str = "unknown"
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(frozen=True)
class OpenedInvitation:
    invitation_id: str
    cookie_value: str
    expires_at: datetime


def _epoch_ms(moment: datetime) -> int:
    return int(moment.replace(tzinfo=timezone.utc).timestamp() * 1000)


class InterviewService:
    """
    Drives one interview turn end to end:
      - invitation session, rate limit and single-use checks
      - transcript analysis, complaint progress and phase decision
      - prompt assembly, completion call and response recovery

    Nothing about the conversation is kept between calls.
    """

    def __init__(
        self,
        store: InvitationStore,
        settings: Settings,
        llm_client: Optional[LLMClient] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.settings = settings
        self._llm_client = llm_client
        self.clock = clock
        self.secret = get_session_secret(settings)

    # ------------------------------------------------------------------
    # Invitation sessions
    # ------------------------------------------------------------------

    def open_invitation(
        self,
        raw_token: str,
        ip_address: str,
        user_agent: Optional[str],
    ) -> OpenedInvitation:
        """
        Exchange a raw invite token for a signed session cookie.
        """
        now = self.clock()
        invite = self.store.find_invitation_by_token_hash(hash_value(raw_token, self.secret))
        if invite is None or not is_invitation_openable(invite, now):
            raise InvitationForbiddenError()

        session_token = create_session_token()
        expires_at = now + timedelta(hours=self.settings.invitation_session_ttl_hours)
        self.store.create_session(
            invitation_id=invite.id,
            session_token_hash=hash_value(session_token, self.secret),
            expires_at=expires_at,
            ip_address=ip_address,
            user_agent=user_agent,
            now=now,
        )
        self._audit(invite.id, "invitation_opened", ip_address, user_agent)

        cookie = create_session_cookie(invite.id, session_token, _epoch_ms(expires_at), self.secret)
        return OpenedInvitation(invitation_id=invite.id, cookie_value=cookie, expires_at=expires_at)

    def resolve_invitation(self, cookie_value: Optional[str]) -> InvitationRecord:
        """
        The invitation bound to a valid, unexpired session cookie. Anything
        else is a 401.
        """
        now = self.clock()
        cookie = parse_session_cookie(cookie_value, self.secret, _epoch_ms(now))
        if cookie is None:
            raise InvitationRequiredError()

        token_hash = hash_value(cookie.session_token, self.secret)
        if not self.store.session_is_active(cookie.invitation_id, token_hash, now):
            raise InvitationRequiredError()

        invite = self.store.get_invitation(cookie.invitation_id)
        if invite is None:
            raise InvitationRequiredError()
        return invite

    def _audit(
        self,
        invitation_id: Optional[str],
        event_type: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
        metadata: Optional[dict] = None,
    ) -> None:
        # Audit failures never block the interview.
        try:
            self.store.append_audit(
                invitation_id,
                event_type,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata=metadata,
                now=self.clock(),
            )
        except Exception:
            logger.exception("Failed to write audit event %s", event_type)

    # ------------------------------------------------------------------
    # Interview turns
    # ------------------------------------------------------------------

    @property
    def llm_client(self) -> LLMClient:
        if self._llm_client is None:
            try:
                self._llm_client = OpenAILLMClient(settings=self.settings)
            except RuntimeError as exc:
                logger.error("Completion client unavailable: %s", exc)
                raise UpstreamServiceError("The AI service is not configured.") from exc
        return self._llm_client

    def handle(self, request: InterviewRequest, context: RequestContext) -> dict:
        """
        Produce the next turn for `request`. Raises an InterviewError subclass
        for every non-200 outcome.
        """
        transcript = request.transcript
        if transcript and transcript[-1].role != "patient" and not request.force_summary:
            raise TurnOrderError()

        invite = self.resolve_invitation(context.session_cookie)

        decision = self.store.try_acquire_rate_slot(
            rate_limit_key(invite.id, context.ip_address),
            self.settings.interview_rate_limit_max,
            self.settings.interview_rate_limit_window_seconds,
            self.clock(),
        )
        if not decision.allowed:
            raise RateLimitedError(retry_after_seconds=decision.retry_after_seconds)

        if not is_invitation_active(invite, self.clock()):
            raise InvitationForbiddenError()

        mismatched = identity_mismatches(invite, request.patient_email, request.physician_id)
        if mismatched:
            self._audit(
                invite.id,
                "identity_override_attempt",
                context.ip_address,
                context.user_agent,
                {"route": INTERVIEW_ROUTE, "fields": mismatched},
            )

        if self.settings.hipaa_mode and not self.settings.mock_ai:
            raise ServiceDisabledError()

        if not transcript:
            if self.store.try_consume_once(invite.id, self.clock()):
                self._audit(invite.id, "interview_started", context.ip_address, context.user_agent)

        if self.settings.mock_ai:
            turn = mock_interview_step(transcript, request.patient_profile, request.chief_complaint)
            return dump_turn(turn)

        return self._generate_turn(self._with_invitation_context(request, invite), context)

    def _with_invitation_context(
        self,
        request: InterviewRequest,
        invite: InvitationRecord,
    ) -> InterviewRequest:
        """
        Fill attachments the client did not send from the invitation record.
        """
        updates = {}
        if not request.form_summary and invite.form_summary:
            updates["form_summary"] = invite.form_summary
        if not request.patient_background and invite.patient_background:
            updates["patient_background"] = invite.patient_background
        if not request.interview_guidance and invite.interview_guidance:
            updates["interview_guidance"] = invite.interview_guidance
        return request.model_copy(update=updates) if updates else request

    def _generate_turn(self, request: InterviewRequest, context: RequestContext) -> dict:
        settings = self.settings
        analysis = analyze_transcript(request.transcript, window=settings.transcript_window)
        progress = assess_complaints(
            request.chief_complaint,
            analysis,
            CompletionThresholds(
                coverage=settings.complaint_coverage_threshold,
                min_questions=settings.complaint_min_questions,
            ),
        )
        decision = decide_phase(
            request.chief_complaint,
            analysis,
            progress,
            form_summary=request.form_summary,
            force_summary=request.force_summary,
            base_budget=settings.base_question_budget,
            escalation_factor=settings.escalation_budget_factor,
        )
        prompt = build_prompt(
            request,
            analysis,
            progress,
            decision,
            max_questions_listed=settings.max_questions_listed,
        )

        if settings.debug_logging:
            logger.debug(
                "Interview prompt metadata request_id=%s messages=%d questions=%d complaints=%d "
                "phase=%s budget=%s escalation=%s prompt_chars=%d",
                context.request_id,
                analysis.total_messages,
                analysis.question_count,
                len(progress.complaints),
                decision.phase.value,
                decision.budget,
                ",".join(decision.escalation.reasons) or "-",
                len(prompt.user),
            )

        try:
            text = self.llm_client.complete(prompt.system, prompt.user)
        except InterviewError:
            raise
        except Exception as exc:
            logger.error(
                "Completion call failed request_id=%s error=%s",
                context.request_id,
                type(exc).__name__,
            )
            raise classify_upstream_error(exc) from exc

        try:
            result = parse_interview_turn(text)
        except InterviewError as exc:
            logger.error("Unrecoverable model output request_id=%s: %s", context.request_id, exc)
            raise

        if result.stage != "extract":
            logger.info(
                "Model output recovered request_id=%s stage=%s truncated=%s",
                context.request_id,
                result.stage,
                result.truncated,
            )
        return dump_turn(enforce_assistive_language(result.turn))
