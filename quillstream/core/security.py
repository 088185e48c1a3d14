"""Security utilities.

Session JWTs, request origin validation, and sanitising of free text
that ends up inside model prompts.
"""

import re
import uuid
from datetime import datetime, timedelta, timezone
from urllib.parse import urlsplit

from jose import JWTError, jwt
from starlette.requests import Request

from quillstream.config import settings

# ============================================================================
# Session tokens
# ============================================================================


def create_access_token(
    user_id: uuid.UUID,
    email: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a session JWT.

    Args:
        user_id: User's unique identifier
        email: User's email address
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(hours=settings.session_expire_hours)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "exp": now + expires_delta,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a session JWT.

    Returns:
        Token payload dict if valid, None if invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None
    return payload


class TokenData:
    """Parsed token data for type safety."""

    def __init__(self, payload: dict):
        self.user_id: uuid.UUID = uuid.UUID(payload["sub"])
        self.email: str = payload["email"]
        self.exp: datetime = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)


# ============================================================================
# Request origin
# ============================================================================


def _origin_of(url: str) -> str | None:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}".lower()


def validate_origin(request: Request) -> bool:
    """Check that a state-changing request comes from our own site.

    The Origin header is compared (scheme and host) against
    ``http(s)://<Host>`` and ``settings.allowed_origins``; when Origin is
    absent the Referer is used instead. Requests carrying neither are
    rejected.
    """
    host = request.headers.get("host")
    allowed = {origin.rstrip("/").lower() for origin in settings.allowed_origins}
    if host:
        allowed.update({f"https://{host}".lower(), f"http://{host}".lower()})

    source = request.headers.get("origin") or request.headers.get("referer")
    if not source:
        return False

    origin = _origin_of(source)
    return origin is not None and origin in allowed


# ============================================================================
# Prompt input sanitising
# ============================================================================

_INJECTION_PATTERNS = [
    re.compile(r"(?:ignore|disregard|forget)\s+(?:all\s+)?(?:previous\s+)?instructions?", re.IGNORECASE),
    re.compile(r"(?:system|assistant|user)\s*:", re.IGNORECASE),
]
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_prompt_input(value: str | None, max_length: int = 500) -> str:
    """Clean user text before it is placed inside a prompt.

    Truncates to ``max_length``, removes instruction-override phrases and
    role prefixes, strips control characters, and collapses whitespace.
    """
    if not value:
        return ""

    text = value[:max_length]
    for pattern in _INJECTION_PATTERNS:
        text = pattern.sub("", text)
    # Newlines and tabs become spaces rather than vanishing
    text = _WHITESPACE.sub(" ", text)
    text = _CONTROL_CHARS.sub("", text)
    return text.strip()
