from fastapi import APIRouter, Depends, Request, Response

from livepoll.core.config import settings
from livepoll.core.exceptions import AuthenticationError, ForbiddenError
from livepoll.core.logging_config import security_logger
from livepoll.schemas.auth import (
    AuthResult,
    CeremonyFinishIn,
    CeremonyOptionsOut,
    LoginStartIn,
    RegisterStartIn,
)
from livepoll.schemas.user import UserPublic
from livepoll.services import webauthn_service
from livepoll.services.session_service import revoke_session_service, validate_session_service
from livepoll.services.user_service import get_user_by_id


router = APIRouter(prefix="/api/auth", tags=["auth"])


async def get_current_user(request: Request) -> str:
    """Dependency: the user id behind the session cookie."""
    return await validate_session_service(request.cookies.get(settings.SESSION_COOKIE_NAME))


def ensure_same_user(session_user_id: str, claimed_user_id: str):
    if session_user_id != claimed_user_id:
        security_logger.warning(f"Session user {session_user_id} tried to act as {claimed_user_id}")
        raise ForbiddenError("You can only act as the signed-in user")


@router.post("/register/start", response_model=CeremonyOptionsOut)
async def register_start(payload: RegisterStartIn):
    return await webauthn_service.begin_registration(payload.username, payload.display_name)


@router.post("/register/finish", response_model=AuthResult)
async def register_finish(payload: CeremonyFinishIn):
    return await webauthn_service.finish_registration(payload.username, payload.credential)


@router.post("/login/start", response_model=CeremonyOptionsOut)
async def login_start(payload: LoginStartIn):
    return await webauthn_service.begin_authentication(payload.username)


@router.post("/login/finish", response_model=AuthResult)
async def login_finish(payload: CeremonyFinishIn, response: Response):
    result, token = await webauthn_service.finish_authentication(payload.username, payload.credential)
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.COOKIE_SAMESITE,
        path="/",
    )
    return result


@router.post("/logout")
async def logout(request: Request, response: Response):
    # always succeeds, even without a valid session
    await revoke_session_service(request.cookies.get(settings.SESSION_COOKIE_NAME))
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.COOKIE_SAMESITE,
    )
    return {"success": True}


@router.get("/me", response_model=UserPublic)
async def me(user_id: str = Depends(get_current_user)):
    user = await get_user_by_id(user_id)
    if user is None:
        raise AuthenticationError("Session user no longer exists")
    return UserPublic(user_id=user.id, username=user.username, display_name=user.display_name)
