"""
Vote engine: cast, change, close and reset, serialized per poll.

Each mutation runs under an in-process lock for its poll id, reloads the
poll, applies the change in memory and writes it back with a version
compare-and-swap. The post-mutation snapshot is published while the lock is
still held, so subscribers see snapshots in commit order.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Dict

from livepoll.core.broadcaster import ALL_POLLS, Subscription, broadcaster, encode_snapshot
from livepoll.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from livepoll.core.logging_config import security_logger
from livepoll.models.poll import PollInDB
from livepoll.schemas.poll import PollOut
from livepoll.services.poll_service import (
    get_poll_by_id_service,
    list_polls_service,
    replace_poll_service,
)
from livepoll.utils.timezone import utcnow

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3


class PollLocks:
    """asyncio locks keyed by poll id, dropped once nobody holds or waits."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, poll_id: str):
        lock = self._locks.setdefault(poll_id, asyncio.Lock())
        self._users[poll_id] = self._users.get(poll_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[poll_id] -= 1
            if not self._users[poll_id]:
                del self._users[poll_id]
                del self._locks[poll_id]

    def __len__(self):
        return len(self._locks)


poll_locks = PollLocks()


def snapshot_of(poll: PollInDB) -> dict:
    return PollOut.from_poll(poll).model_dump(mode="json")


def publish_poll(poll: PollInDB) -> int:
    return broadcaster.publish(poll.id, poll.version, snapshot_of(poll))


async def _mutate(poll_id: str, action: str, mutation: Callable[[PollInDB], bool]) -> PollInDB:
    """
    Apply ``mutation`` to the poll atomically.

    ``mutation`` raises on invalid requests and returns False when the poll
    is already in the requested state, in which case nothing is written or
    published.
    """
    async with poll_locks.hold(poll_id):
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            poll = await get_poll_by_id_service(poll_id)
            if not mutation(poll):
                return poll
            expected_version = poll.version
            poll.version += 1
            poll.updated_at = utcnow()
            if await replace_poll_service(poll, expected_version):
                delivered = publish_poll(poll)
                logger.info(
                    f"{action} on poll {poll.id} committed (version={poll.version}, "
                    f"total_votes={poll.total_votes}, subscribers={delivered})"
                )
                return poll
            # another process wrote in between; reload and reapply
            logger.warning(f"{action} on poll {poll_id} lost a write race (attempt {attempt})")
    raise ConflictError("Poll was modified concurrently, please retry")


def _require_option(poll: PollInDB, option_id: str):
    option = poll.get_option(option_id)
    if option is None:
        raise NotFoundError("Option not found in poll")
    return option


def _require_open(poll: PollInDB):
    if poll.is_closed:
        raise ValidationError("This poll is closed")


def _require_creator(poll: PollInDB, requester_id: str, action: str):
    if requester_id != poll.creator_id:
        security_logger.warning(f"User {requester_id} refused {action} on poll {poll.id} (not the creator)")
        raise ForbiddenError(f"Only the poll creator can {action} this poll")


async def cast_vote_service(poll_id: str, user_id: str, option_id: str) -> PollInDB:
    def cast(poll: PollInDB) -> bool:
        option = _require_option(poll, option_id)
        _require_open(poll)
        if poll.option_voted_by(user_id) is not None:
            raise ConflictError("You have already voted on this poll")
        option.voters.append(user_id)
        return True

    return await _mutate(poll_id, "cast_vote", cast)


async def change_vote_service(poll_id: str, user_id: str, new_option_id: str) -> PollInDB:
    def change(poll: PollInDB) -> bool:
        new_option = _require_option(poll, new_option_id)
        _require_open(poll)
        current = poll.option_voted_by(user_id)
        if current is None:
            raise ValidationError("You have no existing vote on this poll")
        if current.id == new_option.id:
            return False
        current.voters.remove(user_id)
        new_option.voters.append(user_id)
        return True

    return await _mutate(poll_id, "change_vote", change)


async def close_poll_service(poll_id: str, requester_id: str) -> PollInDB:
    def close(poll: PollInDB) -> bool:
        _require_creator(poll, requester_id, "close")
        if poll.is_closed:
            return False
        poll.is_closed = True
        return True

    return await _mutate(poll_id, "close_poll", close)


async def reset_poll_service(poll_id: str, requester_id: str) -> PollInDB:
    # reset clears votes only; a closed poll stays closed
    def reset(poll: PollInDB) -> bool:
        _require_creator(poll, requester_id, "reset")
        if poll.total_votes == 0:
            return False
        for option in poll.options:
            option.voters = []
        return True

    return await _mutate(poll_id, "reset_poll", reset)


async def subscribe_poll_service(poll_id: str) -> Subscription:
    """
    Subscribe to one poll. The current snapshot is queued first; taking the
    poll lock keeps a concurrent mutation from slipping in between.
    """
    async with poll_locks.hold(poll_id):
        poll = await get_poll_by_id_service(poll_id)
        return broadcaster.subscribe(poll.id, initial=[_entry(poll)])


async def subscribe_all_polls_service() -> Subscription:
    polls = await list_polls_service()
    subscription = broadcaster.subscribe(ALL_POLLS, initial=[_entry(poll) for poll in polls])
    # catch up on anything committed between the read and the subscribe;
    # older duplicates are dropped by version when iterated
    seen = {poll.id: poll.version for poll in polls}
    for poll in await list_polls_service():
        if poll.version > seen.get(poll.id, -1) and not subscription.offer(_entry(poll)):
            subscription.close()
            break
    return subscription


def _entry(poll: PollInDB):
    return (poll.id, poll.version, encode_snapshot(snapshot_of(poll)))
