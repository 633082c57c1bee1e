import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from sqlmodel import Session

from .affiliation import CompanyAffiliation
from .auth.dependencies import SessionAuthContext, require_login
from .auth.service import record_audit_event
from .configuration import ConfigurationStore
from .database import get_session
from .redirect import (
    HASH_LENGTH,
    PREFERRED_COOKIE_HASH,
    PREFERRED_HASH,
    InvalidRedirectURL,
    RedirectDecider,
)
from .user_settings import UserSettingStore


router = APIRouter()
logger = logging.getLogger(__name__)


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_redirect_decider(
    request: Request,
    session: Session = Depends(get_session),
) -> RedirectDecider:
    """Build a decider wired to the request's session and database."""

    store = UserSettingStore(session)

    def _audit_mismatch(login: str, submitted_hash: str) -> None:
        # cookies naming logins without a stored hash are only logged
        if store.find_one(login, PREFERRED_HASH) is None:
            return
        record_audit_event(
            session,
            "preferred_hash_mismatch",
            "Rejected preference cookie",
            data={
                "login": login,
                "hash": submitted_hash[:HASH_LENGTH],
                "ip": _client_host(request),
            },
        )

    return RedirectDecider(
        SessionAuthContext(request),
        store,
        CompanyAffiliation(session),
        ConfigurationStore(session),
        on_hash_mismatch=_audit_mismatch,
    )


async def _url_body(request: Request) -> str:
    body = await request.body()
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "URL must be UTF-8 text") from exc


@router.get("/redirect", include_in_schema=False)
def handle_redirect(
    preferred_hash: Optional[str] = Cookie(default=None, alias=PREFERRED_COOKIE_HASH),
    decider: RedirectDecider = Depends(get_redirect_decider),
):
    return decider.handle_redirect(preferred_hash).to_response()


@router.post("/redirect", status_code=status.HTTP_204_NO_CONTENT)
@router.put("/redirect", status_code=status.HTTP_204_NO_CONTENT)
def save_preferred_url(
    new_url: str = Depends(_url_body),
    login: str = Depends(require_login),
    decider: RedirectDecider = Depends(get_redirect_decider),
):
    try:
        cookie = decider.save_or_update(login, new_url)
    except InvalidRedirectURL as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc)) from exc
    logger.info("Stored preferred URL for %s", login)
    return cookie.apply(Response(status_code=status.HTTP_204_NO_CONTENT))
