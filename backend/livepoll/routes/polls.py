from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from typing import List

from livepoll.core.broadcaster import Subscription
from livepoll.core.config import settings
from livepoll.routes.auth import ensure_same_user, get_current_user
from livepoll.schemas.poll import PollActionIn, PollCreate, PollOut, VoteCheckOut, VoteIn
from livepoll.services.poll_service import (
    create_poll_service,
    get_poll_by_id_service,
    get_user_vote_service,
    list_polls_by_creator_service,
    list_polls_service,
)
from livepoll.services.vote_service import (
    cast_vote_service,
    change_vote_service,
    close_poll_service,
    publish_poll,
    reset_poll_service,
    subscribe_all_polls_service,
    subscribe_poll_service,
)

router = APIRouter(prefix="/api/polls", tags=["Polls"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def event_stream(request: Request, subscription: Subscription) -> StreamingResponse:
    """Serve a subscription as Server-Sent Events until the client goes away."""

    async def frames():
        try:
            async for data in subscription.events(settings.KEEPALIVE_SECONDS):
                if await request.is_disconnected():
                    break
                yield f"data: {data}\n\n"
        finally:
            subscription.close()

    return StreamingResponse(frames(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/create", response_model=PollOut, status_code=status.HTTP_201_CREATED)
async def create_poll(payload: PollCreate, user_id: str = Depends(get_current_user)):
    ensure_same_user(user_id, payload.creator_id)
    poll = await create_poll_service(payload.question, payload.options, payload.creator_id)
    publish_poll(poll)
    return PollOut.from_poll(poll)


@router.get("", response_model=List[PollOut])
async def list_polls():
    return [PollOut.from_poll(p) for p in await list_polls_service()]


@router.get("/user/{user_id}", response_model=List[PollOut])
async def list_user_polls(user_id: str):
    return [PollOut.from_poll(p) for p in await list_polls_by_creator_service(user_id)]


# declared before /{poll_id}/stream so "results" is not taken for a poll id
@router.get("/results/stream")
async def stream_all_polls(request: Request):
    return event_stream(request, await subscribe_all_polls_service())


@router.get("/{poll_id}", response_model=PollOut)
async def get_poll(poll_id: str):
    return PollOut.from_poll(await get_poll_by_id_service(poll_id))


@router.get("/{poll_id}/stream")
async def stream_poll(poll_id: str, request: Request):
    return event_stream(request, await subscribe_poll_service(poll_id))


# --- Voting endpoints ---

@router.post("/{poll_id}/vote", response_model=PollOut)
async def cast_vote(poll_id: str, payload: VoteIn, user_id: str = Depends(get_current_user)):
    ensure_same_user(user_id, payload.user_id)
    return PollOut.from_poll(await cast_vote_service(poll_id, payload.user_id, payload.option_id))


@router.api_route("/{poll_id}/change/vote", methods=["POST", "PUT"], response_model=PollOut)
async def change_vote(poll_id: str, payload: VoteIn, user_id: str = Depends(get_current_user)):
    ensure_same_user(user_id, payload.user_id)
    return PollOut.from_poll(await change_vote_service(poll_id, payload.user_id, payload.option_id))


@router.get("/{poll_id}/vote/check", response_model=VoteCheckOut, response_model_exclude_none=True)
async def check_vote(poll_id: str, user_id: str = Query(...)):
    has_voted, option_id = await get_user_vote_service(poll_id, user_id)
    return VoteCheckOut(has_voted=has_voted, option_id=option_id)


# --- Lifecycle endpoints ---

@router.post("/{poll_id}/close", response_model=PollOut)
async def close_poll(poll_id: str, payload: PollActionIn, user_id: str = Depends(get_current_user)):
    ensure_same_user(user_id, payload.user_id)
    return PollOut.from_poll(await close_poll_service(poll_id, payload.user_id))


@router.post("/{poll_id}/reset", response_model=PollOut)
async def reset_poll(poll_id: str, payload: PollActionIn, user_id: str = Depends(get_current_user)):
    ensure_same_user(user_id, payload.user_id)
    return PollOut.from_poll(await reset_poll_service(poll_id, payload.user_id))
