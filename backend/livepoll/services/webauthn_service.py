"""
WebAuthn registration and authentication ceremonies for a single relying
party, built on py_webauthn.

Every finish step looks up the challenge named in the response's
clientDataJSON and consumes it before verifying, so a challenge backs at
most one verification and a replayed response always fails. Starting a new
ceremony never cancels another pending one.
"""

import json
import logging
import secrets
from typing import Any, Dict, List, Optional, Tuple

from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import (
    base64url_to_bytes,
    bytes_to_base64url,
    parse_authenticator_data,
    parse_client_data_json,
)
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from livepoll.core.config import settings
from livepoll.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    WebAuthnError,
)
from livepoll.core.logging_config import security_logger
from livepoll.models.user import CredentialInDB, UserInDB
from livepoll.services.challenge_service import (
    AUTHENTICATION,
    REGISTRATION,
    consume_challenge,
    store_challenge,
)
from livepoll.services.session_service import issue_session_service
from livepoll.services.user_service import (
    add_credential,
    get_credential,
    get_or_create_user,
    get_user_by_username,
    list_credentials,
    update_sign_count,
)
from livepoll.utils.timezone import is_expired

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 32
USER_HANDLE_BYTES = 32
USERNAME_MAX_LENGTH = 64

# same body whether the user or only their passkeys are missing
UNKNOWN_USER_MESSAGE = "No passkey registered for this username"


def _clean_username(username: str) -> str:
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required")
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError(f"Username must be at most {USERNAME_MAX_LENGTH} characters")
    return username


def _user_verification() -> UserVerificationRequirement:
    try:
        return UserVerificationRequirement(settings.USER_VERIFICATION)
    except ValueError:
        return UserVerificationRequirement.PREFERRED


def _descriptors(credentials: List[CredentialInDB]) -> List[PublicKeyCredentialDescriptor]:
    descriptors = []
    for cred in credentials:
        transports = []
        for name in cred.transports:
            try:
                transports.append(AuthenticatorTransport(name))
            except ValueError:
                continue
        descriptors.append(
            PublicKeyCredentialDescriptor(
                id=base64url_to_bytes(cred.credential_id),
                transports=transports or None,
            )
        )
    return descriptors


def _signed_challenge(credential: Dict[str, Any]) -> Optional[str]:
    """The challenge in the response's clientDataJSON, or None if unreadable."""
    try:
        client_data = parse_client_data_json(base64url_to_bytes(credential["response"]["clientDataJSON"]))
    except (WebAuthnException, ValueError, TypeError, KeyError, AttributeError):
        return None
    return bytes_to_base64url(client_data.challenge)


def _asserted_sign_count(credential: Dict[str, Any]) -> Optional[int]:
    try:
        auth_data = parse_authenticator_data(base64url_to_bytes(credential["response"]["authenticatorData"]))
    except (WebAuthnException, ValueError, TypeError, KeyError, AttributeError):
        return None
    return auth_data.sign_count


def _is_sign_count_regression(received: Optional[int], stored: int) -> bool:
    # authenticators that keep no counter report 0 forever
    if received is None or (received == 0 and stored == 0):
        return False
    return received <= stored


async def _take_challenge(kind: str, username: str, credential: Dict[str, Any]):
    signed = _signed_challenge(credential)
    if signed is None:
        return None
    return await consume_challenge(kind, username, signed)


def _result(user: UserInDB) -> Dict[str, Any]:
    return {
        "success": True,
        "username": user.username,
        "user_id": user.id,
        "display_name": user.display_name,
    }


async def begin_registration(username: str, display_name: str = None) -> Dict[str, Any]:
    username = _clean_username(username)
    display_name = (display_name or "").strip() or username

    user = await get_user_by_username(username)
    credentials = await list_credentials(user.id) if user else []
    if credentials:
        raise ConflictError("Username already exists")

    user_handle = base64url_to_bytes(user.user_handle) if user else secrets.token_bytes(USER_HANDLE_BYTES)
    challenge = secrets.token_bytes(CHALLENGE_BYTES)
    options = generate_registration_options(
        rp_id=settings.RP_ID,
        rp_name=settings.RP_NAME,
        user_name=username,
        user_id=user_handle,
        user_display_name=display_name,
        challenge=challenge,
        timeout=settings.WEBAUTHN_TIMEOUT_MS,
        attestation=AttestationConveyancePreference.NONE,
        authenticator_selection=AuthenticatorSelectionCriteria(
            resident_key=ResidentKeyRequirement.PREFERRED,
            user_verification=_user_verification(),
        ),
        exclude_credentials=_descriptors(credentials),
    )
    await store_challenge(
        REGISTRATION,
        username,
        bytes_to_base64url(challenge),
        user_handle=bytes_to_base64url(user_handle),
        display_name=display_name,
    )
    logger.info(f"Registration started for {username}")
    return {"publicKey": json.loads(options_to_json(options))}


async def finish_registration(username: str, credential: Dict[str, Any]) -> Dict[str, Any]:
    username = _clean_username(username)
    challenge = await _take_challenge(REGISTRATION, username, credential)
    if challenge is None:
        security_logger.warning(f"Registration finish for {username} without a pending challenge")
        raise ValidationError("Registration challenge is missing or was already used")
    if is_expired(challenge.expires_at):
        raise ValidationError("Registration challenge has expired")

    try:
        verified = verify_registration_response(
            credential=credential,
            expected_challenge=base64url_to_bytes(challenge.challenge),
            expected_rp_id=settings.RP_ID,
            expected_origin=settings.origins,
            require_user_verification=_user_verification() == UserVerificationRequirement.REQUIRED,
        )
    except (WebAuthnException, ValueError, TypeError, KeyError) as exc:
        security_logger.warning(f"Registration verification failed for {username}: {exc}")
        raise WebAuthnError("Passkey registration could not be verified", details=str(exc))

    user = await get_or_create_user(username, challenge.display_name or username, challenge.user_handle)
    if user.user_handle != challenge.user_handle or await list_credentials(user.id):
        # someone else completed registration for this username first
        raise ConflictError("Username already exists")

    transports = credential.get("response", {}).get("transports") or credential.get("transports") or []
    await add_credential(
        user_id=user.id,
        credential_id=bytes_to_base64url(verified.credential_id),
        public_key=bytes_to_base64url(verified.credential_public_key),
        sign_count=verified.sign_count,
        transports=[str(t) for t in transports],
    )
    logger.info(f"Passkey registered for {username}")
    return _result(user)


async def begin_authentication(username: str) -> Dict[str, Any]:
    username = _clean_username(username)
    user = await get_user_by_username(username)
    credentials = await list_credentials(user.id) if user else []
    if not credentials:
        raise NotFoundError(UNKNOWN_USER_MESSAGE)

    challenge = secrets.token_bytes(CHALLENGE_BYTES)
    options = generate_authentication_options(
        rp_id=settings.RP_ID,
        challenge=challenge,
        timeout=settings.WEBAUTHN_TIMEOUT_MS,
        allow_credentials=_descriptors(credentials),
        user_verification=_user_verification(),
    )
    await store_challenge(AUTHENTICATION, username, bytes_to_base64url(challenge), user_id=user.id)
    return {"publicKey": json.loads(options_to_json(options))}


async def finish_authentication(username: str, credential: Dict[str, Any]) -> Tuple[Dict[str, Any], str]:
    """
    Verify an assertion and open a session.

    Returns the login result and the session token for the cookie.
    """
    username = _clean_username(username)
    challenge = await _take_challenge(AUTHENTICATION, username, credential)
    if challenge is None:
        security_logger.warning(f"Login finish for {username} without a pending challenge (replay?)")
        raise AuthenticationError("Authentication challenge is missing or was already used")
    if is_expired(challenge.expires_at):
        raise AuthenticationError("Authentication challenge has expired")

    user = await get_user_by_username(username)
    if user is None or user.id != challenge.user_id:
        raise AuthenticationError("Authentication failed")

    raw_id = credential.get("rawId") or credential.get("id")
    try:
        credential_id = bytes_to_base64url(base64url_to_bytes(raw_id))
    except (ValueError, TypeError, AttributeError):
        raise WebAuthnError("Malformed credential id")
    stored = await get_credential(credential_id, user.id)
    if stored is None:
        security_logger.warning(f"Login for {username} with unknown credential {credential_id}")
        raise WebAuthnError("Unknown passkey for this user")

    try:
        verified = verify_authentication_response(
            credential=credential,
            expected_challenge=base64url_to_bytes(challenge.challenge),
            expected_rp_id=settings.RP_ID,
            expected_origin=settings.origins,
            credential_public_key=base64url_to_bytes(stored.public_key),
            credential_current_sign_count=stored.sign_count,
            require_user_verification=_user_verification() == UserVerificationRequirement.REQUIRED,
        )
    except (WebAuthnException, ValueError, TypeError, KeyError) as exc:
        received = _asserted_sign_count(credential)
        if _is_sign_count_regression(received, stored.sign_count):
            security_logger.error(
                f"Sign count regression for {username} credential {credential_id} "
                f"(stored={stored.sign_count}, received={received}): possible cloned authenticator"
            )
        else:
            security_logger.warning(f"Login verification failed for {username}: {exc}")
        raise WebAuthnError("Passkey authentication could not be verified", details=str(exc))

    if not await update_sign_count(credential_id, stored.sign_count, verified.new_sign_count):
        security_logger.error(f"Credential {credential_id} for {username} was used concurrently")
        raise WebAuthnError("Passkey was used concurrently, please try again")

    token, _ = await issue_session_service(user.id)
    logger.info(f"User {username} signed in")
    return _result(user), token
