# This project was developed with assistance from AI tools.
"""Loan application storage and per-loan serialization.

Mutating workflow operations run as::

    async with locks.hold(loan_id), unit_of_work() as uow:
        loan = await uow.loans.get(loan_id, for_update=True)
        ...
        await uow.loans.save(updated)

``LoanLocks`` serializes writers inside one process; the SQL backend also
loads the row with ``SELECT ... FOR UPDATE`` so concurrent processes queue
on the database. The unit of work commits when the block exits cleanly and
rolls back when it raises.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from db import LoanApplicationRecord, SessionLocal
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings
from ..schemas.loan import LoanApplication
from .identity import normalize_email
from .underwriting_settings import (
    InMemorySettingsStore,
    SqlSettingsStore,
    UnderwritingSettingsStore,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-loan locks
# ---------------------------------------------------------------------------


class LoanLocks:
    """One ``asyncio.Lock`` per loan id, dropped once nobody holds or awaits it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, loan_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(loan_id, asyncio.Lock())
        self._holders[loan_id] = self._holders.get(loan_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[loan_id] -= 1
            if self._holders[loan_id] == 0:
                del self._holders[loan_id]
                del self._locks[loan_id]

    def __len__(self) -> int:
        return len(self._locks)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class LoanRepository:
    async def get(self, loan_id: str, *, for_update: bool = False) -> LoanApplication | None:
        raise NotImplementedError

    async def save(self, loan: LoanApplication) -> None:
        raise NotImplementedError

    async def list_all(self) -> list[LoanApplication]:
        """Every application, most recent activity first."""
        raise NotImplementedError

    async def list_by_email(self, email: str) -> list[LoanApplication]:
        raise NotImplementedError

    async def all_ids(self) -> list[str]:
        raise NotImplementedError


class InMemoryLoanRepository(LoanRepository):
    """Process-local store for demos and tests. Values are copied in and out."""

    def __init__(self, loans: list[LoanApplication] | None = None):
        self._loans: dict[str, LoanApplication] = {
            loan.id: loan.model_copy(deep=True) for loan in loans or []
        }

    async def get(self, loan_id: str, *, for_update: bool = False) -> LoanApplication | None:
        loan = self._loans.get(loan_id)
        return loan.model_copy(deep=True) if loan else None

    async def save(self, loan: LoanApplication) -> None:
        self._loans[loan.id] = loan.model_copy(deep=True)

    async def list_all(self) -> list[LoanApplication]:
        loans = sorted(self._loans.values(), key=lambda loan: loan.last_event_at, reverse=True)
        return [loan.model_copy(deep=True) for loan in loans]

    async def list_by_email(self, email: str) -> list[LoanApplication]:
        target = normalize_email(email)
        return [loan for loan in await self.list_all() if normalize_email(loan.borrower_email) == target]

    async def all_ids(self) -> list[str]:
        return list(self._loans)


class SqlLoanRepository(LoanRepository):
    """Stores each aggregate as a JSON payload in ``loan_applications``."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_domain(record: LoanApplicationRecord) -> LoanApplication:
        return LoanApplication.model_validate(record.payload)

    async def get(self, loan_id: str, *, for_update: bool = False) -> LoanApplication | None:
        stmt = select(LoanApplicationRecord).where(LoanApplicationRecord.id == loan_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        record = result.scalar_one_or_none()
        return self._to_domain(record) if record else None

    async def save(self, loan: LoanApplication) -> None:
        record = await self._session.get(LoanApplicationRecord, loan.id)
        if record is None:
            record = LoanApplicationRecord(id=loan.id, created_at=loan.created_at)
            self._session.add(record)
        record.borrower_email = normalize_email(loan.borrower_email)
        record.current_stage_index = loan.current_stage_index
        record.pre_approval_decision = loan.pre_approval_decision.value
        record.last_event_at = loan.last_event_at
        record.payload = loan.model_dump(mode="json")
        await self._session.flush()

    async def list_all(self) -> list[LoanApplication]:
        stmt = select(LoanApplicationRecord).order_by(LoanApplicationRecord.last_event_at.desc())
        result = await self._session.execute(stmt)
        return [self._to_domain(record) for record in result.scalars().all()]

    async def list_by_email(self, email: str) -> list[LoanApplication]:
        stmt = (
            select(LoanApplicationRecord)
            .where(LoanApplicationRecord.borrower_email == normalize_email(email))
            .order_by(LoanApplicationRecord.last_event_at.desc())
        )
        result = await self._session.execute(stmt)
        return [self._to_domain(record) for record in result.scalars().all()]

    async def all_ids(self) -> list[str]:
        result = await self._session.execute(select(LoanApplicationRecord.id))
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


@dataclass
class UnitOfWork:
    loans: LoanRepository
    rules: UnderwritingSettingsStore


class InMemoryBackend:
    def __init__(
        self,
        loans: InMemoryLoanRepository | None = None,
        rules: InMemorySettingsStore | None = None,
    ):
        self.loans = loans or InMemoryLoanRepository()
        self.rules = rules or InMemorySettingsStore()

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[UnitOfWork]:
        yield UnitOfWork(loans=self.loans, rules=self.rules)


class SqlBackend:
    def __init__(self, session_factory=SessionLocal):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[UnitOfWork]:
        async with self._session_factory() as session, session.begin():
            yield UnitOfWork(loans=SqlLoanRepository(session), rules=SqlSettingsStore(session))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_backend: InMemoryBackend | SqlBackend | None = None


def init_repository(cfg: Settings) -> InMemoryBackend | SqlBackend:
    """Initialise the singleton (called once from app lifespan)."""
    global _backend  # noqa: PLW0603
    if cfg.REPOSITORY_BACKEND == "memory":
        _backend = InMemoryBackend()
    else:
        _backend = SqlBackend()
    logger.info("Loan repository initialised (backend=%s)", cfg.REPOSITORY_BACKEND)
    return _backend


def get_repository() -> InMemoryBackend | SqlBackend:
    if _backend is None:
        raise RuntimeError("Loan repository not initialised -- call init_repository() first")
    return _backend
