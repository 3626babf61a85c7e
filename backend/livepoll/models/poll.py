from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from livepoll.utils.serializers import stringify_id


class PollOption(BaseModel):
    id: str
    text: str
    voters: List[str] = Field(default_factory=list)

    @property
    def votes(self) -> int:
        # derived so it can never drift from the voters set
        return len(self.voters)


class PollInDB(BaseModel):
    id: str = Field(..., alias="_id")
    question: str
    creator_id: str
    options: List[PollOption]
    is_closed: bool = False
    created_at: datetime
    updated_at: datetime
    version: int = 0

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_doc(cls, doc: dict) -> "PollInDB":
        return cls.model_validate(stringify_id(doc))

    def to_doc(self) -> dict:
        """Mongo document without `_id`."""
        return self.model_dump(exclude={"id"})

    @property
    def total_votes(self) -> int:
        return sum(option.votes for option in self.options)

    def get_option(self, option_id: str) -> Optional[PollOption]:
        return next((o for o in self.options if o.id == option_id), None)

    def option_voted_by(self, user_id: str) -> Optional[PollOption]:
        return next((o for o in self.options if user_id in o.voters), None)
