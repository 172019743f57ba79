# This project was developed with assistance from AI tools.
"""Persisted underwriting rule set.

There is exactly one rule set. Reads fall back to the defaults when nothing
is stored yet; updates merge a partial payload over the current rules and
re-normalize every field.
"""

import logging
from typing import Any

from db import UnderwritingSettingsRecord
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.decision import UnderwritingRules

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1


def merge_rules(current: UnderwritingRules, partial: dict[str, Any]) -> UnderwritingRules:
    return UnderwritingRules.normalize({**current.model_dump(), **partial})


class UnderwritingSettingsStore:
    async def load(self) -> UnderwritingRules:
        raise NotImplementedError

    async def save(self, rules: UnderwritingRules) -> None:
        raise NotImplementedError

    async def update(self, partial: dict[str, Any]) -> UnderwritingRules:
        rules = merge_rules(await self.load(), partial)
        await self.save(rules)
        logger.info("Underwriting settings updated (%s)", ", ".join(sorted(partial)) or "no fields")
        return rules


class InMemorySettingsStore(UnderwritingSettingsStore):
    def __init__(self, rules: UnderwritingRules | None = None):
        self.rules = rules or UnderwritingRules()

    async def load(self) -> UnderwritingRules:
        return self.rules.model_copy()

    async def save(self, rules: UnderwritingRules) -> None:
        self.rules = rules.model_copy()


class SqlSettingsStore(UnderwritingSettingsStore):
    """Reads and writes the single ``underwriting_settings`` row in the caller's session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _record(self, *, for_update: bool = False) -> UnderwritingSettingsRecord | None:
        stmt = select(UnderwritingSettingsRecord).where(
            UnderwritingSettingsRecord.id == SETTINGS_ROW_ID
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def load(self) -> UnderwritingRules:
        record = await self._record()
        return UnderwritingRules.normalize(record.rules if record else None)

    async def save(self, rules: UnderwritingRules) -> None:
        record = await self._record(for_update=True)
        if record is None:
            self._session.add(UnderwritingSettingsRecord(id=SETTINGS_ROW_ID, rules=rules.model_dump()))
        else:
            record.rules = rules.model_dump()
        await self._session.flush()
