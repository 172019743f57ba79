# This project was developed with assistance from AI tools.
"""Notification plans returned by state-changing workflow operations.

A plan describes which emails a committed state change calls for. The
caller saves the loan first and dispatches the plan afterwards, so a failed
send never rolls back workflow state.
"""

import enum

from pydantic import BaseModel, Field


class NotificationKind(str, enum.Enum):
    SUBMISSION_RECEIVED = "submission_received"
    LENDER_NEW_REQUEST = "lender_new_request"
    REQUEST_INFO = "request_info"
    DIRECT_MESSAGE = "direct_message"
    UNDERWRITING_CONDITIONS = "underwriting_conditions"
    BORROWER_ACCESS_SETUP = "borrower_access_setup"
    CONDITIONS_FORM_REQUEST = "conditions_form_request"
    LENDER_INTAKE_SUBMITTED = "lender_intake_submitted"
    LENDER_CONDITIONS_SUBMITTED = "lender_conditions_submitted"
    LENDER_BORROWER_MESSAGE = "lender_borrower_message"


class ScheduledNotification(BaseModel):
    kind: NotificationKind
    subject: str = ""
    message: str = ""


class NotificationPlan(BaseModel):
    notifications: list[ScheduledNotification] = Field(default_factory=list)

    def schedule(self, kind: NotificationKind, subject: str = "", message: str = "") -> None:
        self.notifications.append(
            ScheduledNotification(kind=kind, subject=subject, message=message)
        )

    def has(self, kind: NotificationKind) -> bool:
        return any(item.kind is kind for item in self.notifications)

    @property
    def kinds(self) -> list[NotificationKind]:
        return [item.kind for item in self.notifications]

    def extend(self, other: "NotificationPlan") -> None:
        self.notifications.extend(other.notifications)
