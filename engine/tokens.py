"""
Signed one-time action tokens for notification emails.

A token encodes ``userId:taskId:action:expiryMs`` plus an HMAC-SHA256 hex
signature of that payload, and the whole ``payload:signature`` string is
base64url-encoded (no padding) so it can sit in a URL path segment.

These tokens are capability URLs. Anyone holding the link can perform its
one action on its one task until the expiry passes, with no further
authentication. That is what makes one-click email actions work; keep the
expiry short and treat the links like passwords. The action handler still
re-checks that the token's user owns the task at the time it is used.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from models import utcnow

logger = logging.getLogger(__name__)

TOKEN_TTL = timedelta(days=7)
ACTIONS = ("complete", "snooze", "dismiss")


@dataclass(frozen=True)
class ActionClaims:
    """What a verified token allows."""

    user_id: str
    task_id: str
    action: str


def _to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


_B64URL = re.compile(r"[A-Za-z0-9_-]+")


def _b64decode(text: str) -> bytes:
    """
    Strict base64url decode. Only the canonical unpadded encoding of the
    result is accepted, so the unused low bits of the last character cannot
    be changed without the token being rejected.
    """
    if not _B64URL.fullmatch(text):
        raise ValueError("not base64url")
    raw = base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    if _b64encode(raw) != text:
        raise ValueError("non-canonical base64url")
    return raw


class ActionTokenSigner:
    """Generates and verifies action tokens with a server-side secret."""

    def __init__(self, secret: str, ttl: timedelta = TOKEN_TTL):
        if not secret:
            raise ValueError("Action token secret must not be empty")
        self._secret = secret.encode("utf-8")
        self.ttl = ttl

    def _sign(self, payload: str) -> str:
        return hmac.new(self._secret, payload.encode("utf-8"), hashlib.sha256).hexdigest()

    def generate_action_token(
        self,
        user_id: str,
        task_id: str,
        action: str,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or utcnow()
        for name, value in (("user_id", user_id), ("task_id", task_id), ("action", action)):
            if ":" in value:
                raise ValueError(f"{name} must not contain ':'")
        expiry = _to_millis(now + self.ttl)
        payload = f"{user_id}:{task_id}:{action}:{expiry}"
        return _b64encode(f"{payload}:{self._sign(payload)}".encode("utf-8"))

    def verify_action_token(
        self, token: str, now: Optional[datetime] = None
    ) -> Optional[ActionClaims]:
        """
        Return the token's claims, or None if it is malformed, expired, or
        its signature does not match.
        """
        now = now or utcnow()
        try:
            decoded = _b64decode(token).decode("utf-8")
        except (binascii.Error, ValueError):
            logger.debug("Rejected action token: not valid base64url")
            return None

        parts = decoded.split(":")
        if len(parts) != 5:
            logger.debug("Rejected action token: expected 5 fields, got %d", len(parts))
            return None

        user_id, task_id, action, expiry_text, signature = parts
        try:
            expiry = int(expiry_text)
        except ValueError:
            logger.debug("Rejected action token: bad expiry")
            return None

        if _to_millis(now) > expiry:
            logger.info("Rejected action token for task %s: expired", task_id)
            return None

        expected = self._sign(f"{user_id}:{task_id}:{action}:{expiry_text}")
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("Rejected action token for task %s: invalid signature", task_id)
            return None

        return ActionClaims(user_id=user_id, task_id=task_id, action=action)
