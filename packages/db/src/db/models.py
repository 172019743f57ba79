# This project was developed with assistance from AI tools.
"""
Loan workflow -- persistence models

Each loan application is stored as one JSON payload holding the serialized
aggregate. A few scalar columns are copied out of the payload so the
pipeline can be filtered and ordered without decoding it.
"""

from sqlalchemy import JSON, Column, DateTime, Integer, String, func

from .database import Base


class LoanApplicationRecord(Base):
    """One loan request and everything recorded against it."""

    __tablename__ = "loan_applications"

    id = Column(String(32), primary_key=True)
    borrower_email = Column(String(255), nullable=False, default="", index=True)
    current_stage_index = Column(Integer, nullable=False, default=0)
    pre_approval_decision = Column(String(20), nullable=False, default="PENDING")
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_event_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<LoanApplicationRecord(id='{self.id}', stage={self.current_stage_index})>"


class UnderwritingSettingsRecord(Base):
    """The single persisted underwriting rule set (row id 1)."""

    __tablename__ = "underwriting_settings"

    id = Column(Integer, primary_key=True)
    rules = Column(JSON, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<UnderwritingSettingsRecord(id={self.id})>"
