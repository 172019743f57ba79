# This project was developed with assistance from AI tools.
"""Outbound workflow email.

``NotificationDispatcher`` turns a committed ``NotificationPlan`` into
borrower and lender emails and hands them to the SendGrid notifier.
Delivery problems are logged and swallowed: by the time a plan is
dispatched the loan is already saved, and a failed email must not surface
as a failed workflow operation.
"""

import html
import logging
from dataclasses import dataclass, field
from urllib.parse import urlencode

import httpx
from db.enums import EmailAction, PreviewGroup

from ..core.config import Settings
from ..schemas.loan import LoanApplication, is_valid_email
from ..schemas.notifications import NotificationKind, NotificationPlan, ScheduledNotification
from .decision_engine import format_currency
from .signing import MAX_PREVIEW_FILES_PER_GROUP, ActionLinkSigner
from .workflow import access_setup_link, borrower_portal_link

logger = logging.getLogger(__name__)

CONDITIONS_CHECKLIST = (
    "Credit Score",
    "Proof of Liquidity",
    "LLC Documents (EIN, Certificate of Good Standing, Operating Agreement, "
    "and Articles of Organization)",
    "Referral details (name, email, and phone number of the person who referred you)",
    "Past projects (property address and photos)",
    "Current mortgage loans with other lenders (number of loans and total amount)",
)


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    text: str
    html: str


@dataclass
class _Body:
    """Builds matching plain-text and HTML bodies line by line."""

    text_lines: list[str] = field(default_factory=list)
    html_parts: list[str] = field(default_factory=list)

    def para(self, text: str, *, strong: str = "") -> "_Body":
        if self.text_lines:
            self.text_lines.append("")
        self.text_lines.append(f"{strong}: {text}" if strong else text)
        label = f"<strong>{html.escape(strong)}:</strong> " if strong else ""
        self.html_parts.append(f"<p>{label}{html.escape(text)}</p>")
        return self

    def numbered(self, items) -> "_Body":
        self.text_lines.extend(f"{n}) {item}" for n, item in enumerate(items, start=1))
        rows = "".join(f"<li>{html.escape(item)}</li>" for item in items)
        self.html_parts.append(f"<ol>{rows}</ol>")
        return self

    def link(self, prompt: str, url: str) -> "_Body":
        self.text_lines.extend(["", f"{prompt}: {url}"])
        self.html_parts.append(f'<p><a href="{html.escape(url)}">{html.escape(prompt)}</a></p>')
        return self

    def message(self, subject: str) -> EmailMessage:
        return EmailMessage(subject, "\n".join(self.text_lines), "\n".join(self.html_parts))


def _greeting(loan: LoanApplication) -> _Body:
    return _Body().para(f"Hi {loan.borrower_name or 'Borrower'},")


def _property_label(loan: LoanApplication) -> str:
    return loan.property.strip() or "your property"


def _continue_link(loan_id: str) -> str:
    return borrower_portal_link(loan_id, createAccess=1, **{"continue": 1})


# ---------------------------------------------------------------------------
# Borrower emails
# ---------------------------------------------------------------------------


def request_info_email(loan: LoanApplication, question: str, subject: str = "") -> EmailMessage:
    body = _greeting(loan)
    body.para("Your lender requested additional information for your loan application.")
    body.para(question, strong="Question")
    body.link("Please click this link to continue your application", _continue_link(loan.id))
    return body.message(
        subject or f"Action Required: Loan {loan.id} - Additional Information Requested"
    )


def submission_received_email(loan: LoanApplication) -> EmailMessage:
    body = _greeting(loan)
    body.para(f"We received your loan application for {_property_label(loan)}.")
    body.para("Your request is now in pre-approval review.")
    body.para("If pre-approved, your next steps are:")
    body.numbered(["Create borrower portal access", "Complete the borrower information form"])
    return body.message(f"Application received: {loan.id} - Pre-approval review started")


def access_setup_email(loan: LoanApplication) -> EmailMessage:
    body = _greeting(loan)
    body.para(f"Good news. Your loan request for {_property_label(loan)} is pre-approved.")
    body.para("Next steps:")
    body.numbered(
        [
            "Complete borrower information form",
            "Create borrower portal login (email + password)",
            "Submit underwriting continuation details",
        ]
    )
    body.link("Create access", access_setup_link(loan.id))
    return body.message(f"Pre-approved: {loan.id} - Create borrower portal access")


def underwriting_conditions_email(loan: LoanApplication) -> EmailMessage:
    body = _greeting(loan)
    body.para(f"Your loan for {_property_label(loan)} is now in underwriting.")
    body.para("Please provide the following to fulfill underwriting conditions:")
    body.numbered(CONDITIONS_CHECKLIST)
    body.link("Continue in borrower portal", _continue_link(loan.id))
    return body.message(f"Action Required: {loan.id} - Underwriting conditions")


def conditions_form_request_email(loan: LoanApplication) -> EmailMessage:
    body = _greeting(loan)
    body.para(f"We received your underwriting form submission for {_property_label(loan)}.")
    body.para("Please upload and complete the conditions form with the following:")
    body.numbered(CONDITIONS_CHECKLIST)
    body.link(
        "Open conditions form", borrower_portal_link(loan.id, page="conditions", fromApp=1)
    )
    return body.message(f"Action Required: {loan.id} - Complete conditions form")


def direct_message_email(loan: LoanApplication, message: str, subject: str = "") -> EmailMessage:
    body = _greeting(loan)
    body.para("Your lender sent you a message regarding your loan request.")
    body.para(message)
    body.link("Reply in borrower portal", _continue_link(loan.id))
    return body.message(subject or f"Message from lender: Loan {loan.id}")


# ---------------------------------------------------------------------------
# Lender emails
# ---------------------------------------------------------------------------


def lender_portal_link(base_url: str, loan_id: str) -> str:
    return f"{base_url.rstrip('/')}/loan-application-summary?{urlencode({'loanId': loan_id})}"


def _loan_overview(loan: LoanApplication) -> list[tuple[str, str]]:
    return [
        ("Loan ID", loan.id),
        ("Borrower", f"{loan.borrower_name or 'Borrower'} ({loan.borrower_email or 'N/A'})"),
        ("Property", loan.property or "N/A"),
        ("Loan Type", loan.type or "N/A"),
        ("Requested Amount", format_currency(loan.amount) if loan.amount else "N/A"),
    ]


def lender_new_request_email(
    loan: LoanApplication, signer: ActionLinkSigner, api_base_url: str, lender_portal_url: str
) -> EmailMessage:
    """New-request summary with signed approve/comment/message/deny and preview links."""
    body = _Body().para("New loan request submitted.")
    for label, value in _loan_overview(loan):
        body.para(value, strong=label)

    details = loan.purchase_details
    if details:
        body.para("Quick Preview:")
        for label, value in (
            ("Purchase Price", details.purchase_price),
            ("Rehab Budget", details.rehab_budget),
            ("ARV", details.arv),
            ("Exit Strategy", details.exit_strategy),
            ("Target Closing Date", details.target_closing_date),
        ):
            body.para(value or "N/A", strong=label)

        for group in PreviewGroup:
            files = details.files_for(group)
            if not files:
                continue
            body.para(f"{group.label}:")
            for index, file in enumerate(files[:MAX_PREVIEW_FILES_PER_GROUP]):
                name = file.name or f"{group.value}-{index + 1}"
                if file.data_url.startswith("data:"):
                    body.link(name, signer.document_preview_url(api_base_url, loan.id, group, index))
                else:
                    body.para(f"{name}: Preview unavailable")
            hidden = len(files) - MAX_PREVIEW_FILES_PER_GROUP
            if hidden > 0:
                body.para(f"and {hidden} more file{'' if hidden == 1 else 's'}")

    for prompt, action in (
        ("Approve", EmailAction.APPROVE),
        ("Leave Comment", EmailAction.COMMENT),
        ("Message Borrower", EmailAction.MESSAGE),
        ("Deny with Notes", EmailAction.DENY),
    ):
        body.link(prompt, signer.email_action_url(api_base_url, loan.id, action))
    body.link("Open Lender Dashboard", lender_portal_link(lender_portal_url, loan.id))
    return body.message(f"New loan request: {loan.id} - {loan.property}")


def lender_update_email(
    loan: LoanApplication, headline: str, subject: str, lender_portal_url: str, message: str = ""
) -> EmailMessage:
    body = _Body().para(headline)
    for label, value in _loan_overview(loan)[:3]:
        body.para(value, strong=label)
    if message:
        body.para(message, strong="Message")
    body.link("Open Lender Dashboard", lender_portal_link(lender_portal_url, loan.id))
    return body.message(subject)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------


def parse_recipients(value: str) -> list[str]:
    """Comma-separated addresses, invalid ones dropped, de-duplicated case-insensitively."""
    seen: set[str] = set()
    recipients = []
    for item in (value or "").split(","):
        email = item.strip()
        if not is_valid_email(email) or email.lower() in seen:
            continue
        seen.add(email.lower())
        recipients.append(email)
    return recipients


class SendGridNotifier:
    """Sends email through the SendGrid v3 mail API."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str,
        from_email: str | None,
        lender_recipients: list[str],
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._api_url = api_url
        self._from_email = from_email
        self._lender_recipients = lender_recipients
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key and self._from_email)

    async def send_borrower_email(
        self, email: str, name: str, message: EmailMessage, *, loan_id: str
    ) -> bool:
        return await self._send([{"email": email.strip(), "name": name.strip()}], message, loan_id)

    async def send_lender_email(self, message: EmailMessage, *, loan_id: str) -> bool:
        if not self._lender_recipients:
            logger.info("Lender notification skipped for %s (no lender recipient configured)", loan_id)
            return False
        return await self._send([{"email": e} for e in self._lender_recipients], message, loan_id)

    async def _send(self, recipients: list[dict], message: EmailMessage, loan_id: str) -> bool:
        to = [
            {key: value for key, value in recipient.items() if value}
            for recipient in recipients
            if is_valid_email(recipient.get("email"))
        ]
        if not to:
            logger.info("Email skipped for %s (no valid recipients)", loan_id)
            return False
        if not self.configured:
            logger.info("Email skipped for %s (SENDGRID_API_KEY/EMAIL_FROM not configured)", loan_id)
            return False

        payload = {
            "personalizations": [{"to": to}],
            "from": {"email": self._from_email},
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
        except httpx.HTTPError as exc:
            logger.warning("SendGrid request failed for %s: %s", loan_id, exc)
            return False
        if response.is_error:
            logger.warning(
                "SendGrid email failed for %s: %s %s", loan_id, response.status_code, response.text
            )
            return False
        logger.info("Email sent for %s to %d recipient(s)", loan_id, len(to))
        return True


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Renders and sends every notification of a committed plan."""

    def __init__(
        self,
        notifier: SendGridNotifier,
        signer: ActionLinkSigner,
        api_base_url: str,
        lender_portal_url: str,
    ):
        self._notifier = notifier
        self._signer = signer
        self._api_base_url = api_base_url
        self._lender_portal_url = lender_portal_url

    def render(self, loan: LoanApplication, item: ScheduledNotification) -> tuple[bool, EmailMessage]:
        """``(to_lender, message)`` for one scheduled notification."""
        kind = item.kind
        if kind is NotificationKind.LENDER_NEW_REQUEST:
            return True, lender_new_request_email(
                loan, self._signer, self._api_base_url, self._lender_portal_url
            )
        if kind is NotificationKind.LENDER_INTAKE_SUBMITTED:
            return True, lender_update_email(
                loan,
                "Borrower submitted the underwriting continuation form.",
                f"Underwriting form submitted: {loan.id} - {loan.property}",
                self._lender_portal_url,
            )
        if kind is NotificationKind.LENDER_CONDITIONS_SUBMITTED:
            return True, lender_update_email(
                loan,
                "Borrower submitted the conditions form and documents.",
                f"Conditions submitted: {loan.id} - {loan.property}",
                self._lender_portal_url,
            )
        if kind is NotificationKind.LENDER_BORROWER_MESSAGE:
            return True, lender_update_email(
                loan,
                "Borrower sent a message.",
                f"Borrower message: {loan.id} - {item.subject or 'Borrower Inquiry'}",
                self._lender_portal_url,
                message=item.message,
            )
        if kind is NotificationKind.REQUEST_INFO:
            return False, request_info_email(loan, item.message, item.subject)
        if kind is NotificationKind.DIRECT_MESSAGE:
            return False, direct_message_email(loan, item.message, item.subject)
        if kind is NotificationKind.SUBMISSION_RECEIVED:
            return False, submission_received_email(loan)
        if kind is NotificationKind.BORROWER_ACCESS_SETUP:
            return False, access_setup_email(loan)
        if kind is NotificationKind.UNDERWRITING_CONDITIONS:
            return False, underwriting_conditions_email(loan)
        if kind is NotificationKind.CONDITIONS_FORM_REQUEST:
            return False, conditions_form_request_email(loan)
        raise ValueError(f"Unhandled notification kind: {kind}")

    async def dispatch(self, loan: LoanApplication, plan: NotificationPlan) -> None:
        for item in plan.notifications:
            try:
                to_lender, message = self.render(loan, item)
                if to_lender:
                    await self._notifier.send_lender_email(message, loan_id=loan.id)
                else:
                    await self._notifier.send_borrower_email(
                        loan.borrower_email or loan.borrower_access.email,
                        loan.borrower_name or "Borrower",
                        message,
                        loan_id=loan.id,
                    )
            except Exception:
                logger.exception("Notification %s failed for loan %s", item.kind.value, loan.id)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_dispatcher: NotificationDispatcher | None = None


def init_notification_dispatcher(cfg: Settings, signer: ActionLinkSigner) -> NotificationDispatcher:
    """Initialise the singleton (called once from app lifespan)."""
    global _dispatcher  # noqa: PLW0603
    notifier = SendGridNotifier(
        api_key=cfg.SENDGRID_API_KEY,
        api_url=cfg.SENDGRID_API_URL,
        from_email=cfg.EMAIL_FROM,
        lender_recipients=parse_recipients(cfg.LENDER_NOTIFICATION_EMAILS),
        timeout=cfg.EMAIL_TIMEOUT_SECONDS,
    )
    _dispatcher = NotificationDispatcher(notifier, signer, cfg.API_BASE_URL, cfg.LENDER_PORTAL_URL)
    logger.info("Notification dispatcher initialised (email configured=%s)", notifier.configured)
    return _dispatcher


def get_notification_dispatcher() -> NotificationDispatcher:
    if _dispatcher is None:
        raise RuntimeError(
            "NotificationDispatcher not initialised -- call init_notification_dispatcher() first"
        )
    return _dispatcher
