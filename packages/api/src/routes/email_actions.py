# This project was developed with assistance from AI tools.
"""Signed lender links opened from notification emails.

These endpoints carry no bearer token: the HMAC signature in ``exp``/``sig``
is the credential. Action pages are plain HTML so they work from any mail
client; document previews stream the stored file inline.
"""

import html
import logging
from urllib.parse import quote, urlencode

from db.enums import EmailAction
from fastapi import APIRouter, Form, Query
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from ..core.errors import WorkflowError
from .dependencies import WorkflowService
from .lender import content_disposition

logger = logging.getLogger(__name__)

router = APIRouter()

FORM_TITLES = {
    EmailAction.APPROVE: "Approve Loan",
    EmailAction.COMMENT: "Leave Lender Comment",
    EmailAction.MESSAGE: "Message Borrower",
    EmailAction.DENY: "Deny With Notes",
}

PREVIEW_CACHE_CONTROL = "private, max-age=300"

_PAGE = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>{title}</title>
<style>
body {{ font-family: Arial, sans-serif; background: #f4f6f8; color: #1f2933; margin: 0; }}
main {{ max-width: 560px; margin: 48px auto; background: #fff; border-radius: 8px; padding: 24px 28px; }}
label {{ display: block; font-weight: 600; margin: 12px 0 4px; }}
input, textarea {{ width: 100%; box-sizing: border-box; padding: 8px; }}
textarea {{ min-height: 120px; }}
button {{ margin-top: 16px; padding: 10px 18px; background: #1d4ed8; color: #fff; border: 0; border-radius: 4px; }}
button.danger {{ background: #b91c1c; }}
.subtitle {{ color: #52606d; }}
</style>
</head>
<body>
<main>
<h1>{title}</h1>
<p class="subtitle">{subtitle}</p>
{body}
</main>
</body>
</html>
"""


def render_page(title: str, subtitle: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        _PAGE.format(title=html.escape(title), subtitle=html.escape(subtitle), body=body),
        status_code=status_code,
    )


def error_page(message: str, status_code: int) -> HTMLResponse:
    return render_page(
        "Action Unavailable", "This lender action could not be completed.",
        f"<p>{html.escape(message)}</p>", status_code,
    )


def action_form(loan_id: str, action: EmailAction, exp: str, sig: str, **defaults: str) -> str:
    """The POST form for one action; ``defaults`` refill fields after a rejected submit."""
    target = (
        f"/api/workflows/lender/email-actions/{quote(loan_id, safe='')}/{action.value}"
        f"?{urlencode({'exp': exp, 'sig': sig})}"
    )
    loan = f"<strong>{html.escape(loan_id)}</strong>"
    open_form = f'<form method="post" action="{html.escape(target)}">'

    def field(name: str) -> str:
        return html.escape(defaults.get(name, ""))

    if action is EmailAction.APPROVE:
        return (
            f"<p>Approve loan {loan} and move it to pre-approval.</p>"
            f'{open_form}<button type="submit">Approve Loan</button></form>'
        )
    if action is EmailAction.COMMENT:
        return (
            f"<p>Leave an internal lender comment for loan {loan}.</p>{open_form}"
            '<label for="comment">Comment</label>'
            f'<textarea id="comment" name="comment" required>{field("comment")}</textarea>'
            '<button type="submit">Save Comment</button></form>'
        )
    if action is EmailAction.MESSAGE:
        return (
            f"<p>Send a borrower email update for loan {loan}.</p>{open_form}"
            '<label for="subject">Subject (optional)</label>'
            f'<input id="subject" name="subject" value="{field("subject")}" />'
            '<label for="message">Message</label>'
            f'<textarea id="message" name="message" required>{field("message")}</textarea>'
            '<button type="submit">Send Message to Borrower</button></form>'
        )
    return (
        f"<p>Deny loan {loan} and provide notes.</p>{open_form}"
        '<label for="notes">Denial Notes</label>'
        f'<textarea id="notes" name="notes" required>{field("notes")}</textarea>'
        '<button type="submit" class="danger">Deny Loan</button></form>'
    )


_MISSING_TEXT = {
    EmailAction.COMMENT: ("comment", "Please enter a comment before submitting."),
    EmailAction.MESSAGE: ("message", "Please enter a message before submitting."),
    EmailAction.DENY: ("notes", "Notes are required to deny this request."),
}

_DONE = {
    EmailAction.APPROVE: ("Loan Approved", "<p>The decision has been recorded.</p>"),
    EmailAction.COMMENT: ("Comment Saved", "<p>Your lender comment was saved successfully.</p>"),
    EmailAction.MESSAGE: (
        "Message Sent",
        "<p>Your message was sent to the borrower email address.</p>",
    ),
    EmailAction.DENY: (
        "Loan Denied",
        "<p>The denial and notes were saved. Borrower notification email was sent.</p>",
    ),
}


@router.get("/email-actions/{application_id}/{action}", response_class=HTMLResponse)
async def email_action_form(
    application_id: str,
    action: str,
    service: WorkflowService,
    exp: str = Query(default=""),
    sig: str = Query(default=""),
) -> HTMLResponse:
    try:
        verified = service.verify_email_action(application_id, action, exp, sig)
        await service.get_application(application_id)
    except WorkflowError as exc:
        return error_page(exc.detail, exc.status_code)
    return render_page(
        FORM_TITLES[verified],
        f"Loan {application_id}",
        action_form(application_id, verified, exp, sig),
    )


@router.post("/email-actions/{application_id}/{action}", response_class=HTMLResponse)
async def perform_email_action(
    application_id: str,
    action: str,
    service: WorkflowService,
    exp: str = Query(default=""),
    sig: str = Query(default=""),
    comment: str = Form(default=""),
    subject: str = Form(default=""),
    message: str = Form(default=""),
    notes: str = Form(default=""),
) -> HTMLResponse:
    """Apply the signed action; a blank required field re-renders the form with a 400."""
    values = {
        "comment": comment.strip(),
        "subject": subject.strip(),
        "message": message.strip(),
        "notes": notes.strip(),
    }
    try:
        verified = service.verify_email_action(application_id, action, exp, sig)
    except WorkflowError as exc:
        return error_page(exc.detail, exc.status_code)

    required = _MISSING_TEXT.get(verified)
    if required and not values[required[0]]:
        return render_page(
            FORM_TITLES[verified],
            f"Loan {application_id}",
            f"<p>{required[1]}</p>" + action_form(application_id, verified, exp, sig, **values),
            status_code=400,
        )

    try:
        await service.perform_email_action(application_id, verified, **values)
    except WorkflowError as exc:
        logger.warning("Email action %s on %s rejected: %s", verified.value, application_id, exc.detail)
        return error_page(exc.detail, exc.status_code)

    title, body = _DONE[verified]
    subtitle = (
        f"Loan {application_id} has been moved to pre-approval."
        if verified is EmailAction.APPROVE
        else f"Loan {application_id}"
    )
    return render_page(title, subtitle, body)


@router.get("/document-preview/{application_id}/{group}/{index}")
async def document_preview(
    application_id: str,
    group: str,
    index: int,
    service: WorkflowService,
    exp: str = Query(default=""),
    sig: str = Query(default=""),
) -> Response:
    """Serve one purchase document inline from a signed lender email link."""
    try:
        document = await service.get_document_preview(application_id, group, index, exp, sig)
    except WorkflowError as exc:
        return PlainTextResponse(exc.detail, status_code=exc.status_code)
    return Response(
        content=document.data,
        media_type=document.content_type or "application/octet-stream",
        headers={
            "Content-Disposition": content_disposition("inline", document.name),
            "Cache-Control": PREVIEW_CACHE_CONTROL,
        },
    )
