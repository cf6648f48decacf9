from typing import Any, Dict, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError

from storefront.auth.constants import logger
from storefront.common.utils import now
from storefront.schema.full_schema import UserSession, Users, VerificationCode


async def delete_unused_codes(session, phone_number) -> int:
    stmt = delete(VerificationCode).where(
        VerificationCode.phone_number == phone_number,
        VerificationCode.is_used.is_(False),
    )
    res = await session.execute(stmt)
    return res.rowcount or 0


async def insert_code(session, phone_number, code_hash, expires_at) -> int:
    stmt = (
        insert(VerificationCode)
        .values(phone_number=phone_number, code_hash=code_hash, is_used=False,
                expires_at=expires_at, created_at=now())
        .returning(VerificationCode.id)
    )
    res = await session.execute(stmt)
    return res.scalar_one()


async def find_valid_code(session, phone_number, code_hash) -> Optional[int]:
    stmt = (
        select(VerificationCode.id)
        .where(
            VerificationCode.phone_number == phone_number,
            VerificationCode.code_hash == code_hash,
            VerificationCode.is_used.is_(False),
            VerificationCode.expires_at > now(),
        )
        .limit(1)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def mark_code_used(session, code_id) -> None:
    await session.execute(update(VerificationCode).where(VerificationCode.id == code_id).values(is_used=True))


async def user_by_phone(session, phone_number) -> Optional[Users]:
    res = await session.execute(select(Users).where(Users.phone_number == phone_number))
    return res.scalar_one_or_none()


async def user_by_id(session, user_id) -> Optional[Users]:
    res = await session.execute(select(Users).where(Users.id == user_id))
    return res.scalar_one_or_none()


async def get_or_create_user(session, phone_number) -> Users:
    """Must run before any other write in the transaction, a lost insert race rolls it back."""
    user = await user_by_phone(session, phone_number)
    if user is not None:
        return user

    user = Users(phone_number=phone_number, is_profile_complete=False)
    session.add(user)
    try:
        await session.flush()
        logger.info("user.inserted", extra={"user_id": user.id, "phone_number": phone_number})
        return user
    except IntegrityError:
        await session.rollback()
        user = await user_by_phone(session, phone_number)
        if user is None:
            raise
        logger.info("user.duplicate.phone", extra={"user_id": user.id})
        return user


async def delete_user_sessions(session, user_id) -> int:
    res = await session.execute(delete(UserSession).where(UserSession.user_id == user_id))
    return res.rowcount or 0


async def insert_session(session, user_id, token_hash, expires_at) -> int:
    stmt = (
        insert(UserSession)
        .values(user_id=user_id, session_token_hash=token_hash, expires_at=expires_at, created_at=now())
        .returning(UserSession.id)
    )
    res = await session.execute(stmt)
    return res.scalar_one()


async def delete_session_by_hash(session, token_hash) -> int:
    res = await session.execute(delete(UserSession).where(UserSession.session_token_hash == token_hash))
    return res.rowcount or 0


async def purge_expired_sessions(session) -> int:
    res = await session.execute(delete(UserSession).where(UserSession.expires_at < now()))
    return res.rowcount or 0


async def user_by_session_hash(session, token_hash) -> Optional[Users]:
    stmt = (
        select(Users)
        .join(UserSession, UserSession.user_id == Users.id)
        .where(UserSession.session_token_hash == token_hash, UserSession.expires_at > now())
        .limit(1)
    )
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def update_user(session, user_id, values: Dict[str, Any]) -> None:
    values = {**values, "updated_at": now()}
    await session.execute(update(Users).where(Users.id == user_id).values(**values))
