from typing import Iterable, Optional
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from storefront.auth.constants import COOKIE_NAME
from storefront.auth.services import get_current_user
from storefront.common.constants import request_id_ctx
from storefront.common.utils import build_error, json_error
from storefront.middlewares.constants import logger


def _session_token(request: Request) -> Optional[str]:
    return request.headers.get("X-Session-Token") or request.cookies.get(COOKIE_NAME)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Resolve the session token to `request.state.user_id`.

    `paths` skip authentication entirely, `maybe_auth_paths` attach the user when the token
    is valid and let anonymous callers through otherwise. Everything else requires a session.
    """

    def __init__(self, app, *, session_maker, paths: Iterable[str], maybe_auth_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.session_maker = session_maker
        self.paths = tuple(paths)
        self.maybe_auth_paths = tuple(maybe_auth_paths or ())

    async def dispatch(self, request: Request, call_next):

        path = request.url.path
        request.state.user_id = None

        if any(path.startswith(p) for p in self.paths):
            return await call_next(request)

        optional = any(path.startswith(p) for p in self.maybe_auth_paths)
        token = _session_token(request)

        user = None
        if token:
            async with self.session_maker() as session:
                user = await get_current_user(session, token)

        if user is None and not optional:
            logger.warning("auth.middleware.failed", extra={
                "reason": "missing_token" if not token else "invalid_or_expired_session",
                "path": path,
                "method": request.method,
            })
            payload = build_error(code="INVALID_AUTH", details={"message": "شما وارد نشده‌اید"},
                                  request_id=request_id_ctx.get())
            return json_error(payload, status_code=status.HTTP_401_UNAUTHORIZED)

        if user is not None:
            request.state.user_id = user.id
            logger.debug("auth.middleware.success", extra={"user_id": user.id, "path": path})

        return await call_next(request)
