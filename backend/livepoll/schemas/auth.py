from typing import Any, Dict, Optional

from pydantic import BaseModel


class RegisterStartIn(BaseModel):
    username: str
    display_name: Optional[str] = None


class LoginStartIn(BaseModel):
    username: str


class CeremonyFinishIn(BaseModel):
    username: str
    credential: Dict[str, Any]


class CeremonyOptionsOut(BaseModel):
    publicKey: Dict[str, Any]


class AuthResult(BaseModel):
    success: bool = True
    username: str
    user_id: str
    display_name: str
