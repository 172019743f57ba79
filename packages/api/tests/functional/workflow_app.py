# This project was developed with assistance from AI tools.
"""In-memory workflow wiring for functional tests.

Builds a ``LoanWorkflowService`` over the in-memory backend and document
store with a recording dispatcher, and points the real app's dependencies
at it for a given persona.
"""

from db.enums import WorkflowStage
from fastapi import FastAPI

from src.middleware.auth import get_current_user
from src.schemas.auth import UserContext
from src.schemas.notifications import NotificationKind
from src.services.cache import SlidingWindowRateLimiter, TTLCache
from src.services.document_store import InMemoryDocumentStore
from src.services.loan_workflow import LoanWorkflowService, get_loan_workflow_service
from src.services.repository import InMemoryBackend, InMemoryLoanRepository
from src.services.signing import ActionLinkSigner
from src.services.valuation_provider import AttomValuationProvider

from ..factories import NOW

API_BASE = "http://testserver"
SIGNING_SECRET = "functional-test-secret"


class RecordingDispatcher:
    """Collects dispatched plans instead of sending email."""

    def __init__(self):
        self.dispatched: list[tuple[str, list[NotificationKind]]] = []

    async def dispatch(self, loan, plan):
        self.dispatched.append((loan.id, plan.kinds))

    @property
    def kinds(self) -> list[NotificationKind]:
        return [kind for _, kinds in self.dispatched for kind in kinds]


def make_signer() -> ActionLinkSigner:
    return ActionLinkSigner(SIGNING_SECRET, ttl_seconds=3600, clock=lambda: NOW.timestamp())


def build_service(*loans) -> LoanWorkflowService:
    """Service seeded with ``loans``; its dispatcher is exposed as ``service.recorder``."""
    recorder = RecordingDispatcher()
    service = LoanWorkflowService(
        backend=InMemoryBackend(InMemoryLoanRepository(list(loans))),
        dispatcher=recorder,
        documents=InMemoryDocumentStore(),
        valuations=AttomValuationProvider(
            None, "https://attom.test/property/detail", TTLCache(ttl_seconds=60)
        ),
        signer=make_signer(),
        autofill_limiter=SlidingWindowRateLimiter(limit=5, window_seconds=60),
        api_base_url=API_BASE,
        clock=lambda: NOW,
    )
    service.recorder = recorder
    return service


def configure_app_for_persona(
    app: FastAPI, user: UserContext | None, service: LoanWorkflowService
) -> None:
    """Override auth and the workflow service; ``user=None`` leaves auth untouched."""
    if user is not None:
        app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_loan_workflow_service] = lambda: service


def path_of(url: str) -> str:
    """Strip the API origin from a signed link so TestClient can follow it."""
    return url.removeprefix(API_BASE)


def stage(response_json: dict) -> WorkflowStage:
    return WorkflowStage(response_json["application"]["application"]["current_stage_index"])
