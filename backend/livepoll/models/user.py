from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

from livepoll.utils.serializers import stringify_id


class UserInDB(BaseModel):
    id: str = Field(..., alias="_id")
    username: str
    display_name: str
    # WebAuthn user handle (base64url), never the username
    user_handle: str
    created_at: datetime

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_doc(cls, doc: dict) -> "UserInDB":
        return cls.model_validate(stringify_id(doc))


class CredentialInDB(BaseModel):
    credential_id: str = Field(..., alias="_id")
    user_id: str
    public_key: str
    sign_count: int = 0
    transports: List[str] = Field(default_factory=list)
    created_at: datetime
    last_used_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)


class ChallengeInDB(BaseModel):
    # base64url challenge bytes, also the lookup key
    challenge: str = Field(..., alias="_id")
    kind: str
    username: str
    user_handle: Optional[str] = None
    user_id: Optional[str] = None
    display_name: Optional[str] = None
    created_at: datetime
    expires_at: datetime

    model_config = ConfigDict(populate_by_name=True)


class SessionInDB(BaseModel):
    # sha256 of the cookie value; the raw token is never stored
    token_hash: str = Field(..., alias="_id")
    user_id: str
    created_at: datetime
    expires_at: datetime

    model_config = ConfigDict(populate_by_name=True)
