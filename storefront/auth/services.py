from typing import Optional, Tuple

from fastapi import HTTPException, status

from storefront.auth import repository
from storefront.auth.constants import (
    FIRST_NAME_TOO_SHORT_MSG,
    INVALID_CODE_MSG,
    INVALID_PHONE_MSG,
    LAST_NAME_TOO_SHORT_MSG,
    MIN_NAME_LENGTH,
    NOT_LOGGED_IN_MSG,
    logger,
)
from storefront.auth.models import CurrentUser, ProfileUpdateIn
from storefront.auth.utils import (
    code_expiry,
    generate_code,
    hash_token,
    make_session_token_plain,
    normalize_phone,
    session_expiry,
)


async def send_verification_code(session, phone_number: str) -> str:
    phone = normalize_phone(phone_number)
    if phone is None:
        logger.warning("otp.send.invalid_phone")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_PHONE_MSG)

    # one live code per phone
    await repository.delete_unused_codes(session, phone)

    code = generate_code()
    await repository.insert_code(session, phone, hash_token(code), code_expiry())
    await session.commit()

    logger.info("otp.send.success", extra={"phone_number": phone})
    return code


async def verify_code_and_login(session, phone_number: str, code: str) -> Tuple[CurrentUser, str, bool]:
    """Consume the code, create the user on first login and replace their sessions with a fresh one.

    Returns (user, plain session token, needs_profile).
    """
    phone = normalize_phone(phone_number)
    if phone is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_PHONE_MSG)

    code_id = await repository.find_valid_code(session, phone, hash_token(code.strip()))
    if code_id is None:
        logger.warning("otp.verify.invalid", extra={"phone_number": phone})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INVALID_CODE_MSG)

    user = await repository.get_or_create_user(session, phone)
    user_out = CurrentUser.model_validate(user)

    await repository.mark_code_used(session, code_id)
    await repository.delete_user_sessions(session, user_out.id)

    token_plain = make_session_token_plain()
    await repository.insert_session(session, user_out.id, hash_token(token_plain), session_expiry())
    purged = await repository.purge_expired_sessions(session)
    await session.commit()

    needs_profile = not (user_out.first_name and user_out.last_name)
    logger.info("otp.verify.success", extra={"user_id": user_out.id, "needs_profile": needs_profile, "purged_sessions": purged})
    return user_out, token_plain, needs_profile


async def get_current_user(session, session_token: Optional[str]) -> Optional[CurrentUser]:
    """The user behind a session token, or None for a missing, unknown or expired token."""
    if not session_token:
        return None
    user = await repository.user_by_session_hash(session, hash_token(session_token))
    if user is None:
        return None
    return CurrentUser.model_validate(user)


async def update_profile(session, user_id: int, payload: ProfileUpdateIn) -> CurrentUser:
    user = await repository.user_by_id(session, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=NOT_LOGGED_IN_MSG)
    current = CurrentUser.model_validate(user)

    values = {}
    if payload.first_name is not None:
        first = payload.first_name.strip()
        if len(first) < MIN_NAME_LENGTH:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=FIRST_NAME_TOO_SHORT_MSG)
        values["first_name"] = first

    if payload.last_name is not None:
        last = payload.last_name.strip()
        if len(last) < MIN_NAME_LENGTH:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=LAST_NAME_TOO_SHORT_MSG)
        values["last_name"] = last

    if values.get("first_name", current.first_name) and values.get("last_name", current.last_name):
        values["is_profile_complete"] = True

    if values:
        await repository.update_user(session, user_id, values)
        await session.commit()

    logger.info("profile.update.success", extra={"user_id": user_id, "fields": sorted(values)})
    return current.model_copy(update=values)


async def logout_session(session, session_token: Optional[str]) -> int:
    if not session_token:
        return 0
    removed = await repository.delete_session_by_hash(session, hash_token(session_token))
    await session.commit()
    return removed


async def logout_all_sessions(session, user_id: int) -> int:
    removed = await repository.delete_user_sessions(session, user_id)
    await session.commit()
    return removed
