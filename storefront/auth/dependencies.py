from typing import Optional
from fastapi import Cookie, Header, HTTPException, Request, status
from storefront.auth.constants import COOKIE_NAME, NOT_LOGGED_IN_MSG


# header for non-browser clients and tests, cookie for the web app
def session_token_plain(session_header: Optional[str] = Header(None, alias="X-Session-Token"),
                        session_cookie: Optional[str] = Cookie(None, alias=COOKIE_NAME)):
    return session_header or session_cookie


def optional_user_id(request: Request) -> Optional[int]:
    return getattr(request.state, "user_id", None)


def require_user_id(request: Request) -> int:
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=NOT_LOGGED_IN_MSG)
    return user_id
