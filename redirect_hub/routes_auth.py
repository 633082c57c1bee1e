import logging

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlmodel import Session

from .auth.security import (
    SESSION_COOKIE_NAME,
    clear_session_cookie,
    issue_session_token,
    normalize_username,
    read_session_token,
    session_cookie,
)
from .auth.service import authenticate, record_audit_event
from .auth.throttling import RateLimitState, get_login_rate_limiter
from .database import get_session
from .redirect import RedirectDecider
from .routes_redirect import get_redirect_decider


router = APIRouter()
logger = logging.getLogger(__name__)

AFTER_AUTH_PATH = "/redirect"
TOO_MANY_ATTEMPTS = "Too many login attempts. Try again shortly."


def _reject(message: str, status_code: int) -> JSONResponse:
    return clear_session_cookie(JSONResponse({"detail": message}, status_code=status_code))


def _throttled(state: RateLimitState) -> JSONResponse:
    response = _reject(TOO_MANY_ATTEMPTS, status.HTTP_429_TOO_MANY_REQUESTS)
    response.headers["Retry-After"] = str(state.retry_after)
    return response


@router.post("/login")
def login_submit(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    session: Session = Depends(get_session),
    decider: RedirectDecider = Depends(get_redirect_decider),
):
    login = normalize_username(username)
    client_host = request.client.host if request.client else "unknown"
    limiter = get_login_rate_limiter()
    audit_data = {"login": login, "ip": client_host}

    state = limiter.status(client_host)
    if state.blocked:
        record_audit_event(
            session, "login_rate_limited", f"Rate limit hit for {login}", data=audit_data
        )
        return _throttled(state)

    user = authenticate(session, login, password)
    if user is None:
        state = limiter.register_failure(client_host)
        record_audit_event(
            session,
            "login_failed",
            f"Failed login for {login}",
            data={**audit_data, "rate_limited": state.blocked},
        )
        if state.blocked:
            return _throttled(state)
        return _reject("Invalid username or password", status.HTTP_400_BAD_REQUEST)

    limiter.register_success(client_host)
    record_audit_event(
        session, "login_success", f"{user.username} signed in", actor=user.username, data=audit_data
    )
    logger.info("User %s signed in from %s", user.username, client_host)

    response = RedirectResponse(AFTER_AUTH_PATH, status_code=status.HTTP_303_SEE_OTHER)
    session_cookie(issue_session_token(user.username)).apply(response)
    return decider.attach_preference_cookie(response, user.username)


@router.get("/logout")
def logout(request: Request, session: Session = Depends(get_session)):
    login = read_session_token(request.cookies.get(SESSION_COOKIE_NAME))
    record_audit_event(
        session,
        "logout",
        f"{login or 'anonymous'} signed out",
        actor=login,
        data={"ip": request.client.host if request.client else "unknown"},
    )
    return clear_session_cookie(
        RedirectResponse(AFTER_AUTH_PATH, status_code=status.HTTP_303_SEE_OTHER)
    )
