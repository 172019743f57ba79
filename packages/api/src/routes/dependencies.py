# This project was developed with assistance from AI tools.
"""Shared route dependencies and role groups."""

from typing import Annotated

from db.enums import UserRole
from fastapi import Depends

from ..core.auth import can_view_loan
from ..core.errors import NotFoundError
from ..schemas.auth import UserContext
from ..schemas.workflow import LoanView
from ..services.loan_workflow import APPLICATION_NOT_FOUND, LoanWorkflowService, get_loan_workflow_service

LENDER_ROLES = (UserRole.ADMIN, UserRole.LOAN_OFFICER, UserRole.UNDERWRITER, UserRole.EVALUATOR)
PORTAL_ROLES = (UserRole.BORROWER, *LENDER_ROLES)

WorkflowService = Annotated[LoanWorkflowService, Depends(get_loan_workflow_service)]


def ensure_visible(user: UserContext, view: LoanView) -> LoanView:
    """Out-of-scope loans read as missing so their existence is not disclosed."""
    if not can_view_loan(user.data_scope, view.application.borrower_email):
        raise NotFoundError(APPLICATION_NOT_FOUND)
    return view
