import hmac
import hashlib
import time
from dataclasses import dataclass
from typing import Optional
from core.config import settings
from core.logger import logger

ROLES = ("teacher", "student")


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str


def _sign(data: str) -> str:
    return hmac.new(settings.AUTH_SECRET.encode(), data.encode(), hashlib.sha256).hexdigest()


def issue_token(user_id: str, role: str, issued_at: Optional[int] = None) -> str:
    """
    Build a signed token for an authenticated identity.
    Format: {user_id}:{role}:{timestamp}:{signature}
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    timestamp = int(time.time()) if issued_at is None else issued_at
    data = f"{user_id}:{role}:{timestamp}"
    return f"{data}:{_sign(data)}"


def verify_token(token: str) -> Optional[Identity]:
    """Verify a token produced by issue_token and return the identity it carries."""
    if not token:
        return None

    parts = token.rsplit(':', 3)
    if len(parts) != 4:
        return None

    user_id, role, timestamp_str, signature = parts
    if not user_id or role not in ROLES:
        return None

    try:
        issued_at = int(timestamp_str)
    except ValueError:
        return None

    # Check expiration
    if int(time.time()) - issued_at > settings.TOKEN_TTL_SECONDS:
        logger.warning("Token expired", user_id=user_id)
        return None

    expected_signature = _sign(f"{user_id}:{role}:{timestamp_str}")
    if not hmac.compare_digest(expected_signature, signature):
        logger.warning("Token signature mismatch", user_id=user_id)
        return None

    return Identity(user_id=user_id, role=role)
