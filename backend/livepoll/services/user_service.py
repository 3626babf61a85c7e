"""
Credential store: users and their WebAuthn credentials.
"""

import logging
from typing import List, Optional

from pymongo.errors import DuplicateKeyError

from livepoll.core.exceptions import ConflictError
from livepoll.db.client import get_db
from livepoll.models.user import CredentialInDB, UserInDB
from livepoll.utils.serializers import ensure_objectid
from livepoll.utils.timezone import utcnow

logger = logging.getLogger(__name__)


async def get_user_by_username(username: str) -> Optional[UserInDB]:
    db = get_db()
    doc = await db.users.find_one({"username": username})
    return UserInDB.from_doc(doc) if doc else None


async def get_user_by_id(user_id: str) -> Optional[UserInDB]:
    db = get_db()
    doc = await db.users.find_one({"_id": ensure_objectid(user_id, "User")})
    return UserInDB.from_doc(doc) if doc else None


async def get_or_create_user(username: str, display_name: str, user_handle: str) -> UserInDB:
    """
    Return the user for ``username``, creating it with ``user_handle`` when
    absent. A concurrent insert of the same username resolves to the stored
    user.
    """
    existing = await get_user_by_username(username)
    if existing:
        return existing
    db = get_db()
    doc = {
        "username": username,
        "display_name": display_name,
        "user_handle": user_handle,
        "created_at": utcnow(),
    }
    try:
        res = await db.users.insert_one(doc)
    except DuplicateKeyError:
        existing = await get_user_by_username(username)
        if existing is None:
            raise
        return existing
    doc["_id"] = res.inserted_id
    logger.info(f"User {username} created")
    return UserInDB.from_doc(doc)


async def list_credentials(user_id: str) -> List[CredentialInDB]:
    db = get_db()
    cursor = db.credentials.find({"user_id": user_id}, sort=[("created_at", 1)])
    return [CredentialInDB.model_validate(doc) async for doc in cursor]


async def get_credential(credential_id: str, user_id: str) -> Optional[CredentialInDB]:
    db = get_db()
    doc = await db.credentials.find_one({"_id": credential_id, "user_id": user_id})
    return CredentialInDB.model_validate(doc) if doc else None


async def add_credential(
    user_id: str, credential_id: str, public_key: str, sign_count: int, transports: List[str]
) -> CredentialInDB:
    db = get_db()
    doc = {
        "_id": credential_id,
        "user_id": user_id,
        "public_key": public_key,
        "sign_count": sign_count,
        "transports": transports,
        "created_at": utcnow(),
        "last_used_at": None,
    }
    try:
        await db.credentials.insert_one(doc)
    except DuplicateKeyError:
        raise ConflictError("This passkey is already registered")
    return CredentialInDB.model_validate(doc)


async def update_sign_count(credential_id: str, expected: int, new_count: int) -> bool:
    """Compare-and-swap the stored counter; False if it moved meanwhile."""
    db = get_db()
    result = await db.credentials.update_one(
        {"_id": credential_id, "sign_count": expected},
        {"$set": {"sign_count": new_count, "last_used_at": utcnow()}},
    )
    return result.matched_count == 1
