# This project was developed with assistance from AI tools.
"""Tests for per-loan locks, the in-memory repository, and underwriting settings."""

import asyncio
import typing
from datetime import timedelta

import pytest

from src.schemas.decision import UnderwritingRules
from src.schemas.loan import LoanApplication
from src.services.repository import (
    InMemoryBackend,
    InMemoryLoanRepository,
    LoanLocks,
    LoanRepository,
    SqlLoanRepository,
)
from src.services.underwriting_settings import InMemorySettingsStore, merge_rules

from .factories import NOW, make_loan


@pytest.mark.asyncio
async def test_locks_serialize_holders_of_the_same_loan():
    locks = LoanLocks()
    order = []

    async def worker(name: str):
        async with locks.hold("LA-1"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_locks_on_different_loans_do_not_block():
    locks = LoanLocks()
    release = asyncio.Event()

    async def holder():
        async with locks.hold("LA-1"):
            await release.wait()

    task = asyncio.create_task(holder())
    await asyncio.sleep(0)
    async with locks.hold("LA-2"):
        assert len(locks) == 2
    release.set()
    await task
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_released_when_body_raises():
    locks = LoanLocks()
    with pytest.raises(RuntimeError):
        async with locks.hold("LA-1"):
            raise RuntimeError("boom")
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_in_memory_repository_copies_values():
    repo = InMemoryLoanRepository([make_loan()])
    loan = await repo.get("LA-2026-1501")
    loan.borrower_name = "Changed"
    assert (await repo.get("LA-2026-1501")).borrower_name == "Jordan Lee"

    await repo.save(loan)
    loan.borrower_name = "Changed again"
    assert (await repo.get("LA-2026-1501")).borrower_name == "Changed"


@pytest.mark.asyncio
async def test_in_memory_repository_listing():
    older = make_loan(id="LA-2026-1501", last_event_at=NOW - timedelta(days=1))
    newer = make_loan(id="LA-2026-1502", last_event_at=NOW)
    other = make_loan(id="LA-2026-1503", borrower_email="other@example.com")
    repo = InMemoryLoanRepository([older, newer, other])

    assert await repo.get("LA-missing") is None
    assert [loan.id for loan in await repo.list_by_email(" JORDAN@example.com")] == [
        "LA-2026-1502",
        "LA-2026-1501",
    ]
    assert sorted(await repo.all_ids()) == ["LA-2026-1501", "LA-2026-1502", "LA-2026-1503"]
    assert [loan.id for loan in await repo.list_all()][-1] == "LA-2026-1501"


@pytest.mark.parametrize("repository", [LoanRepository, InMemoryLoanRepository, SqlLoanRepository])
def test_repository_listing_annotations_resolve(repository):
    hints = typing.get_type_hints(repository.list_by_email)
    assert hints["return"] == list[LoanApplication]
    assert typing.get_type_hints(repository.list_all)["return"] == list[LoanApplication]


@pytest.mark.asyncio
async def test_in_memory_backend_shares_state_across_units_of_work():
    backend = InMemoryBackend()
    async with backend() as uow:
        await uow.loans.save(make_loan())
    async with backend() as uow:
        assert await uow.loans.get("LA-2026-1501") is not None


# ---------------------------------------------------------------------------
# Underwriting settings
# ---------------------------------------------------------------------------


def test_merge_rules_normalizes_partial_payload():
    merged = merge_rules(UnderwritingRules(), {"max_ltv": 80, "min_credit_score": "700"})
    assert merged.max_ltv == 0.8
    assert merged.min_credit_score == 700
    assert merged.max_ltc == UnderwritingRules().max_ltc


def test_merge_rules_falls_back_on_garbage():
    merged = merge_rules(UnderwritingRules(), {"max_ltv": "lots", "liquidity_months": None})
    assert merged.max_ltv == 0.75
    assert merged.liquidity_months == 6


@pytest.mark.asyncio
async def test_settings_store_update_persists():
    store = InMemorySettingsStore()
    assert (await store.load()) == UnderwritingRules()
    updated = await store.update({"decline_credit_score": 600})
    assert updated.decline_credit_score == 600
    assert (await store.load()).decline_credit_score == 600
