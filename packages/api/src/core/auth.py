# This project was developed with assistance from AI tools.
"""Pure auth utility functions with no FastAPI or HTTP dependencies."""

from db.enums import UserRole

from ..schemas.auth import DataScope


def build_data_scope(role: UserRole, email: str) -> DataScope:
    """Build data scope rules based on the user's role."""
    if role == UserRole.BORROWER:
        return DataScope(own_data_only=True, borrower_email=email.strip().lower())
    if role in (UserRole.LOAN_OFFICER, UserRole.UNDERWRITER, UserRole.EVALUATOR, UserRole.ADMIN):
        return DataScope(full_pipeline=True)
    return DataScope()


def can_view_loan(scope: DataScope, borrower_email: str) -> bool:
    """True when the scope grants visibility of a loan owned by ``borrower_email``."""
    if scope.full_pipeline:
        return True
    if scope.own_data_only and scope.borrower_email:
        return scope.borrower_email == borrower_email.strip().lower()
    return False
