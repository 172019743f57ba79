# This project was developed with assistance from AI tools.
"""Loan workflow service.

Single entry point for every workflow operation. A mutating call holds the
loan's lock, loads the loan inside a unit of work, applies one of the pure
domain functions, saves the result, and only after the commit dispatches
the notifications that function asked for.
"""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from db.enums import (
    EmailAction,
    IntakeStatus,
    PreApprovalDecision,
    PreviewGroup,
    WorkflowEvent,
    WorkflowStage,
)

from ..core.config import Settings
from ..core.errors import (
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
    ValidationFailedError,
    WorkflowError,
)
from ..schemas.decision import DecisionSummary, UnderwritingRules
from ..schemas.loan import (
    ConditionsForm,
    IntakeSubmission,
    LoanApplication,
    PackageFile,
    TitleAgentForm,
    UploadedFile,
)
from ..schemas.notifications import NotificationPlan
from ..schemas.valuation import PropertyValuation
from ..schemas.workflow import (
    CreateApplicationRequest,
    EvaluatorResponse,
    LoanView,
    ValuationResponse,
    WorkflowResponse,
)
from . import conditions, decision, intake, messaging, origination, valuation, workflow
from .cache import SlidingWindowRateLimiter
from .decision_engine import build_decision_summary
from .document_store import DocumentStore, parse_data_url
from .notifications import NotificationDispatcher
from .repository import InMemoryBackend, LoanLocks, SqlBackend, UnitOfWork
from .signing import INVALID_LINK_MESSAGE, ActionLinkSigner
from .valuation_provider import AttomValuationProvider

logger = logging.getLogger(__name__)

APPLICATION_NOT_FOUND = "Application not found"
NEW_LOAN_LOCK = "__new-loan-id__"
LENDER_EMAIL_AUTHOR = "LENDER_EMAIL"


@dataclass(frozen=True)
class PreviewDocument:
    name: str
    content_type: str
    data: bytes


@dataclass
class _Outcome:
    loan: LoanApplication
    plan: NotificationPlan
    related: list[LoanApplication]
    rules: UnderwritingRules


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _split(result) -> tuple[LoanApplication, NotificationPlan]:
    if isinstance(result, tuple):
        return result
    return result, NotificationPlan()


class LoanWorkflowService:
    """Serializes, persists and notifies around the pure workflow functions."""

    def __init__(
        self,
        backend: InMemoryBackend | SqlBackend,
        dispatcher: NotificationDispatcher,
        documents: DocumentStore,
        valuations: AttomValuationProvider,
        signer: ActionLinkSigner,
        autofill_limiter: SlidingWindowRateLimiter,
        api_base_url: str,
        locks: LoanLocks | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._backend = backend
        self._dispatcher = dispatcher
        self._documents = documents
        self._valuations = valuations
        self._signer = signer
        self._autofill_limiter = autofill_limiter
        self._api_base_url = api_base_url
        self._locks = locks or LoanLocks()
        self._clock = clock

    # -- Internals --

    async def _load(self, uow: UnitOfWork, loan_id: str, *, for_update: bool = False) -> LoanApplication:
        loan = await uow.loans.get(loan_id, for_update=for_update)
        if loan is None:
            raise NotFoundError(APPLICATION_NOT_FOUND)
        return loan

    async def _mutate(self, loan_id: str, change: Callable[..., Any]) -> _Outcome:
        """Run ``change(loan, related, rules, now)`` under the loan's lock and save the result.

        ``change`` returns the updated loan or ``(loan, plan)`` and may be a coroutine.
        """
        now = self._clock()
        async with self._locks.hold(loan_id), self._backend() as uow:
            loan = await self._load(uow, loan_id, for_update=True)
            related = await uow.loans.list_by_email(loan.borrower_email)
            rules = await uow.rules.load()
            result = change(loan, related, rules, now)
            if inspect.isawaitable(result):
                result = await result
            updated, plan = _split(result)
            await uow.loans.save(updated)
        await self._dispatcher.dispatch(updated, plan)
        return _Outcome(updated, plan, [item for item in related if item.id != loan_id] + [updated], rules)

    def _view(self, loan: LoanApplication, applications: list[LoanApplication], rules: UnderwritingRules) -> LoanView:
        return workflow.build_loan_view(
            loan, applications, now=self._clock(), annual_rate=rules.assumed_annual_interest_rate
        )

    def _response(self, outcome: _Outcome, *, with_summary: bool = False) -> WorkflowResponse:
        summary = None
        if with_summary:
            summary = build_decision_summary(
                outcome.loan, outcome.related, outcome.rules, now=self._clock()
            )
        return WorkflowResponse(
            application=self._view(outcome.loan, outcome.related, outcome.rules),
            decision_summary=summary,
        )

    # -- Reads --

    async def list_applications(self) -> list[LoanView]:
        async with self._backend() as uow:
            applications = await uow.loans.list_all()
            rules = await uow.rules.load()
        return [self._view(loan, applications, rules) for loan in applications]

    async def get_application(self, loan_id: str) -> LoanView:
        async with self._backend() as uow:
            loan = await self._load(uow, loan_id)
            related = await uow.loans.list_by_email(loan.borrower_email)
            rules = await uow.rules.load()
        return self._view(loan, related, rules)

    async def get_decision_summary(self, loan_id: str) -> DecisionSummary:
        async with self._backend() as uow:
            loan = await self._load(uow, loan_id)
            related = await uow.loans.list_by_email(loan.borrower_email)
            rules = await uow.rules.load()
        return build_decision_summary(loan, related, rules, now=self._clock())

    async def list_underwriting_summaries(self) -> list[DecisionSummary]:
        """Decision summaries for every loan that has reached underwriting."""
        async with self._backend() as uow:
            applications = await uow.loans.list_all()
            rules = await uow.rules.load()
        now = self._clock()
        return [
            build_decision_summary(loan, applications, rules, now=now)
            for loan in applications
            if loan.current_stage_index >= WorkflowStage.UNDERWRITING_REVIEW
            or loan.underwriting_intake.status is not IntakeStatus.LOCKED
        ]

    # -- Origination and stage events --

    async def submit_application(self, request: CreateApplicationRequest) -> WorkflowResponse:
        now = self._clock()
        async with self._locks.hold(NEW_LOAN_LOCK), self._backend() as uow:
            loan, plan = origination.create_application(
                request, await uow.loans.all_ids(), now=now
            )
            await uow.loans.save(loan)
            related = await uow.loans.list_by_email(loan.borrower_email)
            rules = await uow.rules.load()
        await self._dispatcher.dispatch(loan, plan)
        return self._response(_Outcome(loan, plan, related, rules))

    async def advance_workflow_event(self, loan_id: str, event: WorkflowEvent | str) -> WorkflowResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, related, _rules, now: workflow.advance(
                loan, event, applications=related, now=now
            ),
        )
        return self._response(outcome)

    async def apply_lender_decision(
        self, loan_id: str, decision_value: PreApprovalDecision | str, notes: str | None
    ) -> WorkflowResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, related, _rules, now: decision.apply_decision(
                loan, decision_value, notes, applications=related, now=now
            ),
        )
        return self._response(outcome, with_summary=True)

    # -- Messages and comments --

    async def add_lender_comment(
        self, loan_id: str, comment: str, *, created_by: str = "LENDER"
    ) -> WorkflowResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, _related, _rules, now: messaging.add_lender_comment(
                loan, comment, now=now, created_by=created_by
            ),
        )
        return self._response(outcome)

    async def send_lender_message(self, loan_id: str, message: str, subject: str = "") -> WorkflowResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, _related, _rules, now: messaging.send_lender_message(
                loan, message, subject=subject, now=now
            ),
        )
        return self._response(outcome)

    async def lender_reply(
        self,
        loan_id: str,
        message: str,
        *,
        thread_id: str | None = None,
        attachments: list[UploadedFile] | None = None,
    ) -> WorkflowResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, _related, _rules, now: messaging.lender_reply(
                loan, message, thread_id=thread_id, attachments=attachments, now=now
            ),
        )
        return self._response(outcome)

    async def borrower_reply(
        self,
        loan_id: str,
        message: str,
        *,
        thread_id: str | None = None,
        attachments: list[UploadedFile] | None = None,
    ) -> WorkflowResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, _related, _rules, now: messaging.borrower_reply(
                loan, message, thread_id=thread_id, attachments=attachments, now=now
            ),
        )
        return self._response(outcome)

    async def borrower_message(
        self,
        loan_id: str,
        message: str,
        *,
        subject: str = "",
        attachments: list[UploadedFile] | None = None,
    ) -> WorkflowResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, _related, _rules, now: messaging.borrower_message(
                loan, message, subject=subject, attachments=attachments, now=now
            ),
        )
        return self._response(outcome)

    async def create_borrower_access(self, loan_id: str, email: str) -> WorkflowResponse:
        def change(loan, _related, _rules, now):
            return messaging.create_borrower_access(
                loan, email or loan.borrower_access.email or loan.borrower_email, now=now
            )

        return self._response(await self._mutate(loan_id, change))

    # -- Underwriting intake and conditions --

    async def submit_underwriting_intake(
        self, loan_id: str, form: IntakeSubmission
    ) -> WorkflowResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, related, rules, now: intake.submit_intake(
                loan,
                form,
                applications=related,
                now=now,
                annual_rate=rules.assumed_annual_interest_rate,
            ),
        )
        return self._response(outcome, with_summary=True)

    async def submit_conditions_form(self, loan_id: str, form: ConditionsForm) -> WorkflowResponse:
        """Validate, store the document package, then record the form.

        The package is written before anything is saved; a storage failure
        leaves the loan untouched.
        """

        async def change(loan, _related, _rules, now):
            conditions.ensure_conditions_unlocked(loan)
            errors = conditions.validate_conditions(form)
            if errors:
                raise ValidationFailedError(errors)
            package = await self._documents.persist_conditions_package(loan.id, form, now=now)
            return conditions.record_conditions(loan, form, package, now=now)

        return self._response(await self._mutate(loan_id, change), with_summary=True)

    async def get_conditions_document(
        self, loan_id: str, package_id: str, file_id: str
    ) -> tuple[PackageFile, bytes]:
        async with self._backend() as uow:
            loan = await self._load(uow, loan_id)
        package = loan.conditions_form.document_package if loan.conditions_form else None
        if package is None or package.id != package_id:
            raise NotFoundError("Conditions document package not found.")
        try:
            return await self._documents.read_package_file(package, file_id)
        except KeyError:
            raise NotFoundError("Conditions document not found.") from None

    # -- Valuation, evaluator, title agent --

    async def _valuation_response(
        self, outcome: _Outcome, fields: PropertyValuation | None = None
    ) -> ValuationResponse:
        return ValuationResponse(
            application=self._view(outcome.loan, outcome.related, outcome.rules),
            valuation_input=valuation.build_valuation_snapshot(outcome.loan),
            attom_fields=fields,
        )

    async def get_valuation_input(self, loan_id: str) -> ValuationResponse:
        async with self._backend() as uow:
            loan = await self._load(uow, loan_id)
            related = await uow.loans.list_by_email(loan.borrower_email)
            rules = await uow.rules.load()
        return await self._valuation_response(_Outcome(loan, NotificationPlan(), related, rules))

    async def update_valuation_input(
        self, loan_id: str, role: str, values: dict
    ) -> ValuationResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, _related, _rules, now: valuation.update_valuation_input(
                loan, role, values, now=now
            ),
        )
        return await self._valuation_response(outcome)

    async def autofill_valuation(
        self, loan_id: str, *, address_override: str = "", client_key: str = "anonymous"
    ) -> ValuationResponse:
        """Pull assessor, market and sale fields from the property-data provider."""
        if not self._autofill_limiter.allow(client_key):
            raise RateLimitedError("Too many autofill requests. Please try again later.")
        async with self._backend() as uow:
            loan = await self._load(uow, loan_id)
        address = address_override.strip() or loan.property.strip()
        if not address:
            raise ValidationFailedError(["Property address not available for this loan."])
        fields = await self._valuations.fetch(address)
        outcome = await self._mutate(
            loan_id,
            lambda current, _related, _rules, now: valuation.apply_property_valuation(
                current, fields, now=now
            ),
        )
        return await self._valuation_response(outcome, fields)

    async def get_evaluator_input(self, loan_id: str) -> EvaluatorResponse:
        async with self._backend() as uow:
            loan = await self._load(uow, loan_id)
            related = await uow.loans.list_by_email(loan.borrower_email)
            rules = await uow.rules.load()
        return EvaluatorResponse(
            application=self._view(loan, related, rules),
            evaluator_input=valuation.build_evaluator_snapshot(loan),
        )

    async def update_evaluator_input(self, loan_id: str, role: str, values: dict) -> EvaluatorResponse:
        outcome = await self._mutate(
            loan_id,
            lambda loan, _related, _rules, now: valuation.update_evaluator_input(
                loan, role, values, now=now
            ),
        )
        return EvaluatorResponse(
            application=self._view(outcome.loan, outcome.related, outcome.rules),
            evaluator_input=valuation.build_evaluator_snapshot(outcome.loan),
        )

    async def get_title_agent_form(self, loan_id: str) -> TitleAgentForm:
        async with self._backend() as uow:
            loan = await self._load(uow, loan_id)
        return loan.title_agent_form or TitleAgentForm()

    async def update_title_agent_form(self, loan_id: str, form: TitleAgentForm) -> TitleAgentForm:
        outcome = await self._mutate(
            loan_id,
            lambda loan, _related, _rules, now: valuation.update_title_agent_form(loan, form, now=now),
        )
        return outcome.loan.title_agent_form

    # -- Signed lender links --

    def sign_email_action(self, loan_id: str, action: EmailAction | str) -> str:
        return self._signer.email_action_url(self._api_base_url, loan_id, action)

    def verify_email_action(
        self, loan_id: str, action: str, exp: str | None, sig: str | None
    ) -> EmailAction:
        return self._signer.require_valid(loan_id, action, exp, sig)

    async def perform_email_action(
        self,
        loan_id: str,
        action: EmailAction,
        *,
        comment: str = "",
        subject: str = "",
        message: str = "",
        notes: str = "",
    ) -> WorkflowResponse:
        """Carry out an already-verified lender email action."""
        if action is EmailAction.APPROVE:
            return await self.apply_lender_decision(loan_id, PreApprovalDecision.PRE_APPROVE, "")
        if action is EmailAction.COMMENT:
            return await self.add_lender_comment(loan_id, comment, created_by=LENDER_EMAIL_AUTHOR)
        if action is EmailAction.MESSAGE:
            return await self.send_lender_message(loan_id, message, subject)
        if not notes.strip():
            raise ValidationFailedError(["Notes are required to deny this request."])
        return await self.apply_lender_decision(loan_id, PreApprovalDecision.DECLINE, notes)

    async def get_document_preview(
        self, loan_id: str, group: str, index: int, exp: str | None, sig: str | None
    ) -> PreviewDocument:
        try:
            preview_group = PreviewGroup(group)
        except ValueError:
            raise WorkflowError("Unsupported document group.") from None
        if not self._signer.verify_preview(loan_id, preview_group.value, index, exp, sig):
            raise UnauthorizedError(INVALID_LINK_MESSAGE)
        async with self._backend() as uow:
            loan = await self._load(uow, loan_id)
        files = loan.purchase_details.files_for(preview_group) if loan.purchase_details else []
        if not 0 <= index < len(files):
            raise NotFoundError("Document not found.")
        document = files[index]
        parsed = parse_data_url(document.data_url)
        if parsed is None:
            raise ValidationFailedError(["Document preview is unavailable."])
        mime_type, data = parsed
        return PreviewDocument(
            name=document.name or "document",
            content_type=mime_type or document.content_type,
            data=data,
        )

    # -- Underwriting settings --

    async def get_underwriting_settings(self) -> UnderwritingRules:
        async with self._backend() as uow:
            return await uow.rules.load()

    async def update_underwriting_settings(self, partial: dict[str, Any]) -> UnderwritingRules:
        async with self._backend() as uow:
            return await uow.rules.update(partial)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_service: LoanWorkflowService | None = None


def init_loan_workflow_service(
    cfg: Settings,
    *,
    backend: InMemoryBackend | SqlBackend,
    dispatcher: NotificationDispatcher,
    documents: DocumentStore,
    valuations: AttomValuationProvider,
    signer: ActionLinkSigner,
) -> LoanWorkflowService:
    """Initialise the singleton (called once from app lifespan)."""
    global _service  # noqa: PLW0603
    _service = LoanWorkflowService(
        backend=backend,
        dispatcher=dispatcher,
        documents=documents,
        valuations=valuations,
        signer=signer,
        autofill_limiter=SlidingWindowRateLimiter(
            cfg.AUTOFILL_RATE_LIMIT, cfg.AUTOFILL_RATE_WINDOW_SECONDS
        ),
        api_base_url=cfg.API_BASE_URL,
    )
    return _service


def get_loan_workflow_service() -> LoanWorkflowService:
    if _service is None:
        raise RuntimeError(
            "LoanWorkflowService not initialised -- call init_loan_workflow_service() first"
        )
    return _service
