# This project was developed with assistance from AI tools.
"""Valuation, evaluator, and external property-data schemas."""

from datetime import datetime

from db.enums import LoanStatus, ValuationSource
from pydantic import BaseModel, Field


class InputField(BaseModel):
    key: str
    label: str
    optional: bool = False


class ValuationSnapshot(BaseModel):
    """Current valuation values and how complete they are."""

    loan_id: str
    status_label: LoanStatus
    values: dict[str, str]
    missing_fields: list[str] = Field(default_factory=list)
    is_complete: bool = False
    last_updated_at: datetime | None = None
    last_updated_by: ValuationSource | str | None = None


class PropertyValuation(BaseModel):
    """Valuation fields an external property-data provider could resolve."""

    assessor_value: float | None = None
    realtor_com_value: float | None = None
    attom_avm_value: float | None = None
    current_owner: str | None = None
    last_sale_date: str | None = None
    last_sale_price: float | None = None

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())
