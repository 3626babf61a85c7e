"""
Session manager: opaque, fixed-TTL tokens carried in an HttpOnly cookie.
"""

import hashlib
import logging
import secrets
from typing import Optional, Tuple

from livepoll.core.config import settings
from livepoll.core.exceptions import AuthenticationError
from livepoll.db.client import get_db
from livepoll.models.user import SessionInDB
from livepoll.utils.timezone import expires_in, is_expired, utcnow

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


async def issue_session_service(user_id: str) -> Tuple[str, SessionInDB]:
    token = secrets.token_urlsafe(TOKEN_BYTES)
    db = get_db()
    doc = {
        "_id": hash_token(token),
        "user_id": user_id,
        "created_at": utcnow(),
        "expires_at": expires_in(settings.SESSION_TTL_SECONDS),
    }
    await db.sessions.insert_one(doc)
    logger.info(f"Session issued for user {user_id}")
    return token, SessionInDB.model_validate(doc)


async def validate_session_service(token: Optional[str]) -> str:
    """Return the session's user id, or raise AuthenticationError."""
    if not token:
        raise AuthenticationError("Not signed in")
    db = get_db()
    doc = await db.sessions.find_one({"_id": hash_token(token)})
    if not doc:
        raise AuthenticationError("Session is invalid")
    session = SessionInDB.model_validate(doc)
    if is_expired(session.expires_at):
        await db.sessions.delete_one({"_id": session.token_hash})
        raise AuthenticationError("Session has expired")
    return session.user_id


async def revoke_session_service(token: Optional[str]):
    if not token:
        return
    db = get_db()
    await db.sessions.delete_one({"_id": hash_token(token)})
