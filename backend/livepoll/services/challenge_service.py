import logging
from typing import Optional

from livepoll.core.config import settings
from livepoll.db.client import get_db
from livepoll.models.user import ChallengeInDB
from livepoll.utils.timezone import expires_in, utcnow

logger = logging.getLogger(__name__)

REGISTRATION = "registration"
AUTHENTICATION = "authentication"


async def store_challenge(kind: str, username: str, challenge: str, **extra) -> ChallengeInDB:
    """
    Start a ceremony. Each challenge is its own record, so pending
    ceremonies for the same username do not displace each other.
    """
    db = get_db()
    doc = {
        "_id": challenge,
        "kind": kind,
        "username": username,
        "created_at": utcnow(),
        "expires_at": expires_in(settings.CHALLENGE_TTL_SECONDS),
        **extra,
    }
    await db.challenges.insert_one(doc)
    return ChallengeInDB.model_validate(doc)


async def consume_challenge(kind: str, username: str, challenge: str) -> Optional[ChallengeInDB]:
    """
    Atomically take the pending ``challenge`` issued to ``username``.
    Whoever gets it is the only verification that can run against it,
    successful or not.
    """
    db = get_db()
    doc = await db.challenges.find_one_and_delete({"_id": challenge, "kind": kind, "username": username})
    return ChallengeInDB.model_validate(doc) if doc else None
