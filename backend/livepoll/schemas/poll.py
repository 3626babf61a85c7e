from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from livepoll.models.poll import PollInDB


class PollCreate(BaseModel):
    question: str
    options: List[str]
    creator_id: str


class VoteIn(BaseModel):
    user_id: str
    option_id: str


class PollActionIn(BaseModel):
    user_id: str


class PollOptionOut(BaseModel):
    id: str
    text: str
    votes: int
    voters: List[str]


class PollOut(BaseModel):
    id: str
    question: str
    creator_id: str
    options: List[PollOptionOut]
    is_closed: bool
    created_at: datetime
    updated_at: datetime
    total_votes: int

    @classmethod
    def from_poll(cls, poll: PollInDB) -> "PollOut":
        return cls(
            id=poll.id,
            question=poll.question,
            creator_id=poll.creator_id,
            options=[
                PollOptionOut(id=o.id, text=o.text, votes=o.votes, voters=list(o.voters))
                for o in poll.options
            ],
            is_closed=poll.is_closed,
            created_at=poll.created_at,
            updated_at=poll.updated_at,
            total_votes=poll.total_votes,
        )


class VoteCheckOut(BaseModel):
    has_voted: bool
    option_id: Optional[str] = None
