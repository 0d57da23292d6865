"""
Caller authentication and per-action request tokens.

Two kinds of JWT share the API secret:

- access tokens identify the caller (``sub`` is the user id). They are issued
  by the host application that owns the login session and are sent as
  ``Authorization: Bearer``.
- action tokens are short-lived and bound to one action name (``translate``,
  ``translate-progress``, ``settings``) and to the user they were issued to,
  so a token issued for polling cannot be replayed to start a translation.
"""

from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt

from common.config import settings
from common.utils import DateTimeUtils

TOKEN_ALGORITHM = "HS256"
TOKEN_LIFETIME = timedelta(hours=12)

ACCESS_TOKEN_TYPE = "access"
ACTION_TOKEN_TYPE = "action"

TRANSLATE_ACTION = "translate"
PROGRESS_ACTION = "translate-progress"
SETTINGS_ACTION = "settings"
ACTIONS = (TRANSLATE_ACTION, PROGRESS_ACTION, SETTINGS_ACTION)


def _encode(claims: dict, expires_delta: Optional[timedelta], secret: Optional[str]) -> str:
    now = DateTimeUtils.get_current_utc_datetime()
    claims.update({"iat": now, "exp": now + (expires_delta or TOKEN_LIFETIME)})
    return jwt.encode(claims, secret or settings.api_secret_key, algorithm=TOKEN_ALGORITHM)


def decode_token(token: Optional[str], secret: Optional[str] = None) -> Optional[dict]:
    """
    Decode and validate a JWT.

    Returns:
        Decoded payload if valid and unexpired, None otherwise
    """
    if not token:
        return None
    try:
        return jwt.decode(token, secret or settings.api_secret_key, algorithms=[TOKEN_ALGORITHM])
    except JWTError:
        return None


def create_access_token(
    user_id: int, expires_delta: Optional[timedelta] = None, secret: Optional[str] = None
) -> str:
    """Create a bearer token identifying ``user_id``."""
    return _encode({"type": ACCESS_TOKEN_TYPE, "sub": str(user_id)}, expires_delta, secret)


def verify_access_token(token: Optional[str], secret: Optional[str] = None) -> Optional[int]:
    """
    Verify a bearer token and extract the user id.

    Returns:
        User id from the ``sub`` claim, None when the token is invalid
    """
    payload = decode_token(token, secret)
    if payload is None or payload.get("type") != ACCESS_TOKEN_TYPE:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


def create_action_token(
    action: str,
    user_id: int,
    expires_delta: Optional[timedelta] = None,
    secret: Optional[str] = None,
) -> str:
    """
    Create a token for one action.

    Args:
        action: Action name the token is valid for
        user_id: Authenticated user the token is issued to
        expires_delta: Optional custom lifetime
        secret: Signing key, defaults to settings.api_secret_key

    Returns:
        Encoded JWT string
    """
    claims = {"type": ACTION_TOKEN_TYPE, "action": action, "sub": str(user_id)}
    return _encode(claims, expires_delta, secret)


def verify_action_token(
    token: Optional[str],
    action: str,
    user_id: int,
    secret: Optional[str] = None,
) -> bool:
    """Whether ``token`` is valid, unexpired and issued for this action and user."""
    payload = decode_token(token, secret)
    if payload is None:
        return False
    return (
        payload.get("type") == ACTION_TOKEN_TYPE
        and payload.get("action") == action
        and payload.get("sub") == str(user_id)
    )
