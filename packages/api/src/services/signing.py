# This project was developed with assistance from AI tools.
"""HMAC-signed, expiring action links for lender emails.

Tokens authenticate ``(loan id, action, expiry)`` or, for document previews,
``(loan id, group, index, expiry)``. Verification is pure: no server-side
state, so a link can be embedded in an email long before it is clicked.

Payloads are versioned and length-prefixed so no field value can be
confused with a separator (``"a:b" + "c"`` never collides with ``"a" + "b:c"``).
"""

import hashlib
import hmac
import time
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import quote, urlencode

from db.enums import EmailAction, PreviewGroup

from ..core.config import Settings
from ..core.errors import UnauthorizedError

PAYLOAD_VERSION = "v1"
PREVIEW_ACTION = "document-preview"
MAX_PREVIEW_FILES_PER_GROUP = 10
INVALID_LINK_MESSAGE = "Action link is invalid or expired."


def canonical_payload(*fields: str) -> bytes:
    """Encode fields as ``v1`` followed by ``<len>:<value>`` for each field."""
    parts = [PAYLOAD_VERSION]
    for field in fields:
        parts.append(f"{len(field)}:{field}")
    return "|".join(parts).encode("utf-8")


@dataclass(frozen=True)
class SignedActionToken:
    subject_id: str
    action: str
    expires_at: int
    signature: str


def _signatures_match(expected: str, signature: str) -> bool:
    """Constant-time compare as bytes; a non-ASCII or wrong-length signature is a mismatch."""
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8", "replace"))


def _parse_expiry(value: int | str | None) -> int | None:
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


class ActionLinkSigner:
    """Creates and verifies signed lender action tokens."""

    def __init__(
        self,
        secret: str,
        ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("signing secret must not be empty")
        self._secret = secret.encode("utf-8")
        self._ttl = ttl_seconds
        self._clock = clock

    def _digest(self, *fields: str) -> str:
        return hmac.new(self._secret, canonical_payload(*fields), hashlib.sha256).hexdigest()

    def _default_expiry(self) -> int:
        return int(self._clock()) + self._ttl

    # -- Email actions --

    def sign(
        self, subject_id: str, action: EmailAction | str, expires_at: int | None = None
    ) -> SignedActionToken:
        action_value = EmailAction(action).value
        exp = expires_at if expires_at is not None else self._default_expiry()
        signature = self._digest(subject_id, action_value, str(exp))
        return SignedActionToken(subject_id, action_value, exp, signature)

    def verify(
        self,
        subject_id: str,
        action: str,
        expires_at: int | str | None,
        signature: str | None,
    ) -> bool:
        exp = _parse_expiry(expires_at)
        if exp is None or not signature or not subject_id:
            return False
        if exp < self._clock():
            return False
        expected = self._digest(subject_id, action, str(exp))
        return _signatures_match(expected, signature)

    def require_valid(
        self,
        subject_id: str,
        action: str,
        expires_at: int | str | None,
        signature: str | None,
    ) -> EmailAction:
        normalized = (action or "").strip().lower()
        if normalized not in {item.value for item in EmailAction}:
            raise UnauthorizedError(INVALID_LINK_MESSAGE)
        if not self.verify(subject_id, normalized, expires_at, signature):
            raise UnauthorizedError(INVALID_LINK_MESSAGE)
        return EmailAction(normalized)

    # -- Document previews --

    def sign_preview(
        self,
        subject_id: str,
        group: PreviewGroup | str,
        index: int,
        expires_at: int | None = None,
    ) -> SignedActionToken:
        group_value = PreviewGroup(group).value
        if not 0 <= index < MAX_PREVIEW_FILES_PER_GROUP:
            raise ValueError(f"preview index out of range: {index}")
        exp = expires_at if expires_at is not None else self._default_expiry()
        signature = self._digest(subject_id, PREVIEW_ACTION, group_value, str(index), str(exp))
        return SignedActionToken(subject_id, PREVIEW_ACTION, exp, signature)

    def verify_preview(
        self,
        subject_id: str,
        group: str,
        index: int | str,
        expires_at: int | str | None,
        signature: str | None,
    ) -> bool:
        if group not in {item.value for item in PreviewGroup}:
            return False
        parsed_index = _parse_expiry(index)
        if parsed_index is None or parsed_index >= MAX_PREVIEW_FILES_PER_GROUP:
            return False
        exp = _parse_expiry(expires_at)
        if exp is None or not signature or exp < self._clock():
            return False
        expected = self._digest(subject_id, PREVIEW_ACTION, group, str(parsed_index), str(exp))
        return _signatures_match(expected, signature)

    # -- URLs --

    def email_action_url(self, base_url: str, loan_id: str, action: EmailAction | str) -> str:
        token = self.sign(loan_id, action)
        query = urlencode({"exp": token.expires_at, "sig": token.signature})
        return (
            f"{base_url.rstrip('/')}/api/workflows/lender/email-actions/"
            f"{quote(loan_id, safe='')}/{token.action}?{query}"
        )

    def document_preview_url(
        self, base_url: str, loan_id: str, group: PreviewGroup | str, index: int
    ) -> str:
        group_value = PreviewGroup(group).value
        token = self.sign_preview(loan_id, group_value, index)
        query = urlencode({"exp": token.expires_at, "sig": token.signature})
        return (
            f"{base_url.rstrip('/')}/api/workflows/lender/document-preview/"
            f"{quote(loan_id, safe='')}/{group_value}/{index}?{query}"
        )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_signer: ActionLinkSigner | None = None


def init_action_link_signer(cfg: Settings) -> ActionLinkSigner:
    """Initialise the singleton (called once from app lifespan)."""
    global _signer  # noqa: PLW0603
    _signer = ActionLinkSigner(cfg.LENDER_EMAIL_ACTION_SECRET, cfg.LENDER_EMAIL_ACTION_TTL_SECONDS)
    return _signer


def get_action_link_signer() -> ActionLinkSigner:
    if _signer is None:
        raise RuntimeError("ActionLinkSigner not initialised -- call init_action_link_signer() first")
    return _signer
