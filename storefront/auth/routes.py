from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.constants import COOKIE_NAME, NOT_LOGGED_IN_MSG, SESSION_TTL_SECONDS, logger
from storefront.auth.dependencies import require_user_id, session_token_plain
from storefront.auth.models import CurrentUser, ProfileUpdateIn, SendCodeIn, VerifyCodeIn
from storefront.auth.services import (
    logout_all_sessions,
    logout_session,
    send_verification_code,
    update_profile,
    verify_code_and_login,
)
from storefront.auth import repository
from storefront.common.utils import success_response
from storefront.config.app_config import app_config
from storefront.config.settings import config_settings
from storefront.db.dependencies import get_session

current_env = app_config.ENV
secure_flag = False if current_env == "dev" else True

auth_router = APIRouter()


@auth_router.post("/send-code")
async def send_code(payload: SendCodeIn, session: AsyncSession = Depends(get_session)):

    logger.info("otp.send.attempt")

    code = await send_verification_code(session, payload.phone_number)

    # no sms gateway yet, the code goes back to the caller
    resp = {"message": "کد تایید ارسال شد"}
    if config_settings.OTP_ECHO_CODE:
        resp["code"] = code
    return success_response(resp, 200)


@auth_router.post("/verify-code")
async def verify_code(payload: VerifyCodeIn, session: AsyncSession = Depends(get_session)):

    user, token_plain, needs_profile = await verify_code_and_login(session, payload.phone_number, payload.code)

    resp = {"user": user.model_dump(), "needs_profile": needs_profile}
    if current_env == "dev":
        resp["session_token"] = token_plain

    response = success_response(resp, 200)
    response.set_cookie(COOKIE_NAME, token_plain, httponly=True, secure=secure_flag, path="/",
                        max_age=SESSION_TTL_SECONDS, samesite="Strict")
    return response


@auth_router.get("/me")
async def me(user_id: int = Depends(require_user_id), session: AsyncSession = Depends(get_session)):
    user = await repository.user_by_id(session, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=NOT_LOGGED_IN_MSG)
    return success_response(CurrentUser.model_validate(user).model_dump(), 200)


@auth_router.patch("/profile")
async def patch_profile(payload: ProfileUpdateIn, user_id: int = Depends(require_user_id),
                        session: AsyncSession = Depends(get_session)):
    user = await update_profile(session, user_id, payload)
    return success_response(user.model_dump(), 200)


@auth_router.post("/logout")
async def logout(request: Request, token: Optional[str] = Depends(session_token_plain),
                 session: AsyncSession = Depends(get_session)):

    removed = await logout_session(session, token)

    res = success_response({"message": "با موفقیت خارج شدید"}, 200)
    res.delete_cookie(key=COOKIE_NAME, path="/")

    logger.info("logout.success", extra={"user_id": getattr(request.state, "user_id", None), "removed": removed})
    return res


@auth_router.post("/logout-all")
async def logout_all(user_id: int = Depends(require_user_id), session: AsyncSession = Depends(get_session)):

    removed = await logout_all_sessions(session, user_id)

    res = success_response({"message": "از همه دستگاه‌ها خارج شدید", "removed": removed}, 200)
    res.delete_cookie(key=COOKIE_NAME, path="/")

    logger.info("logout_all.success", extra={"user_id": user_id, "removed": removed})
    return res
