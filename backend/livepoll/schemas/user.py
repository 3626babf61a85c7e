from pydantic import BaseModel


class UserPublic(BaseModel):
    user_id: str
    username: str
    display_name: str
