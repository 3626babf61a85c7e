import logging
import uuid
from typing import List, Tuple

from livepoll.core.config import settings
from livepoll.core.exceptions import NotFoundError, ValidationError
from livepoll.db.client import get_db
from livepoll.models.poll import PollInDB
from livepoll.utils.serializers import ensure_objectid
from livepoll.utils.timezone import utcnow

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


def new_option_id() -> str:
    return str(uuid.uuid4())


def validate_poll_input(question, options) -> Tuple[str, List[str]]:
    """
    Trim and check a poll's question and options.

    Returns the cleaned (question, options). Raises ValidationError whose
    details list every rule that was violated.
    """
    problems = []
    question = (question or "").strip()
    if not question:
        problems.append("Question must not be empty")
    elif len(question) > settings.QUESTION_MAX_LENGTH:
        problems.append(f"Question must be at most {settings.QUESTION_MAX_LENGTH} characters")

    # blank entries are dropped, not rejected
    cleaned = [(opt or "").strip() for opt in (options or [])]
    cleaned = [opt for opt in cleaned if opt]

    if len(cleaned) < settings.MIN_OPTIONS:
        problems.append(f"At least {settings.MIN_OPTIONS} options are required")
    if len(cleaned) > settings.MAX_OPTIONS:
        problems.append(f"At most {settings.MAX_OPTIONS} options are allowed")
    too_long = [opt for opt in cleaned if len(opt) > settings.OPTION_MAX_LENGTH]
    if too_long:
        problems.append(f"Options must be at most {settings.OPTION_MAX_LENGTH} characters")

    seen = set()
    duplicates = []
    for opt in cleaned:
        key = opt.casefold()
        if key in seen:
            duplicates.append(opt)
        seen.add(key)
    if duplicates:
        problems.append(f"Options must be unique (duplicate: {', '.join(duplicates)})")

    if problems:
        raise ValidationError("Invalid poll", details="; ".join(problems))
    return question, cleaned


async def create_poll_service(question: str, options: List[str], creator_id: str) -> PollInDB:
    question, options = validate_poll_input(question, options)
    db = get_db()
    now = utcnow()
    poll_doc = {
        "question": question,
        "creator_id": creator_id,
        "options": [{"id": new_option_id(), "text": text, "voters": []} for text in options],
        "is_closed": False,
        "created_at": now,
        "updated_at": now,
        "version": 0,
    }
    # poll and options are one document, so they are created atomically
    result = await db.polls.insert_one(poll_doc)
    poll_doc["_id"] = result.inserted_id
    poll = PollInDB.from_doc(poll_doc)
    logger.info(f"Poll {poll.id} created by {creator_id} with {len(options)} options")
    return poll


async def get_poll_by_id_service(poll_id: str) -> PollInDB:
    db = get_db()
    poll = await db.polls.find_one({"_id": ensure_objectid(poll_id)})
    if not poll:
        raise NotFoundError("Poll not found")
    return PollInDB.from_doc(poll)


async def list_polls_service() -> List[PollInDB]:
    db = get_db()
    cursor = db.polls.find({}, sort=NEWEST_FIRST)
    return [PollInDB.from_doc(doc) async for doc in cursor]


async def list_polls_by_creator_service(creator_id: str) -> List[PollInDB]:
    db = get_db()
    cursor = db.polls.find({"creator_id": creator_id}, sort=NEWEST_FIRST)
    return [PollInDB.from_doc(doc) async for doc in cursor]


async def replace_poll_service(poll: PollInDB, expected_version: int) -> bool:
    """
    Write ``poll`` only if the stored version is still ``expected_version``.

    A single-document replace is atomic in Mongo, so readers see either the
    old or the new poll, never a mix.
    """
    db = get_db()
    result = await db.polls.replace_one(
        {"_id": ensure_objectid(poll.id), "version": expected_version},
        poll.to_doc(),
    )
    return result.matched_count == 1


async def get_user_vote_service(poll_id: str, user_id: str) -> Tuple[bool, str]:
    poll = await get_poll_by_id_service(poll_id)
    option = poll.option_voted_by(user_id)
    return (option is not None, option.id if option else None)


