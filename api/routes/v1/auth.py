"""
api/routes/v1/auth.py -- Sign-in, invitation and registration REST endpoints.

Routes:
  POST /api/v1/auth/signin             -- email/password sign-in; returns user + JWT
  GET  /api/v1/auth/register/{hash}    -- check an invitation hash; 204 or 403
  POST /api/v1/auth/register/{hash}    -- complete registration for an invited email
  POST /api/v1/auth/invite             -- create an invitation and mail the link
  POST /api/v1/auth/unregister         -- delete the signed-in user (requires auth)
  GET  /api/v1/auth/github             -- GitHub authorize URL as JSON
  GET  /api/v1/auth/github/callback    -- exchange ?code= for a GitHub access token

Error handling:
  Expected failures raise HTTPException(status, message); api/main.py renders
  them as {"status": ..., "error": ...}. Store, bcrypt, SMTP and network
  errors are not caught here -- they reach the catch-all handler.

Collaborators are read from request.app.state (user_store, invitation_store,
cache, mailer, http_client) so tests can swap any of them.

Registration writes the user, then deletes the invitation. The two steps are
not atomic: if the delete fails, the user exists and the hash stays valid.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlencode

from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import PlainTextResponse

from api.models import (
    InvitationRequest,
    RegistrationRequest,
    SigninData,
    SigninRequest,
    SigninResponse,
    SigninUser,
    UrlResponse,
)
from api.routes.v1.users import USER_CACHE_KEY
from auth.dependencies import get_current_user
from auth.models import User, UserInvitation
from auth.store import DEFAULT_ROLE, InvitationStore
from auth.tokens import (
    MAX_PASSWORD_BYTES,
    authenticate_user,
    create_access_token,
    generate_uuid,
    hash_password,
)
from core.config import get_settings

logger = logging.getLogger("userhub.api.auth")

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"  # noqa: S105 -- URL, not a password
GITHUB_SCOPE = "user:email"

# Auth policy:
# - every route is public except POST /auth/unregister (get_current_user)
router = APIRouter()


def _invalid_request() -> HTTPException:
    return HTTPException(status_code=400, detail="Invalid request")


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------


@router.post("/auth/signin", response_model=SigninResponse)
def signin(request: Request, body: SigninRequest) -> SigninResponse:
    """Authenticate with email and password.

    Unknown email, inactive account and wrong password all produce the same
    401 so the response does not reveal which check failed.
    """
    creds = body.user
    if creds is None or not creds.email or not creds.password:
        raise _invalid_request()

    user = authenticate_user(request.app.state.user_store, creds.email, creds.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Wrong email or password")

    token = create_access_token(user.id)
    return SigninResponse(data=SigninData(user=SigninUser.from_user(user), token=token))


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.get("/auth/register/{hash}", status_code=204)
def validate_registration_hash(request: Request, hash: str) -> Response:
    """Report whether hash belongs to an open invitation."""
    if not hash:
        raise _invalid_request()

    invitation = _get_user_invitation(request.app.state.invitation_store, hash)
    if invitation is None:
        raise HTTPException(status_code=403, detail="Invalid hash")
    return Response(status_code=204)


@router.post("/auth/register/{hash}", status_code=204)
def register_user(request: Request, hash: str, body: RegistrationRequest) -> Response:
    """Create the account for an invited email and consume the invitation."""
    payload = body.user
    if payload is None or not payload.email:
        raise _invalid_request()

    user_store = request.app.state.user_store
    invitation_store: InvitationStore = request.app.state.invitation_store

    invitation = _get_user_invitation(invitation_store, hash, payload.email)
    if invitation is None:
        raise HTTPException(status_code=403, detail="Invalid hash")

    if user_store.read({"email": payload.email}) is not None:
        raise HTTPException(status_code=400, detail="Email is already taken")

    if not payload.password or len(payload.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise _invalid_request()

    fields = payload.model_dump(exclude_none=True)
    fields["password"] = hash_password(payload.password)
    fields["role"] = DEFAULT_ROLE
    new_user: User = user_store.save(fields)

    request.app.state.cache.delete(USER_CACHE_KEY)

    new_user.password = None
    logger.info("Registered user %d (%s)", new_user.id, new_user.email)

    invitation_store.delete_user_invitation(invitation)
    return Response(status_code=204)


@router.post("/auth/invite", status_code=204)
def create_user_invitation(request: Request, body: InvitationRequest) -> Response:
    """Invite an email address to register."""
    email = body.email
    if not email or not _is_email(email):
        raise _invalid_request()

    if request.app.state.user_store.read({"email": email}) is not None:
        raise HTTPException(status_code=400, detail="Email is already taken")

    hash = generate_uuid()
    request.app.state.invitation_store.save_user_invitation(UserInvitation(email=email, hash=hash))
    request.app.state.mailer.send_user_invitation(email, hash)
    return Response(status_code=204)


@router.post("/auth/unregister", status_code=204)
def unregister_user(request: Request, current_user: User = Depends(get_current_user)) -> Response:
    """Delete the account of the signed-in user."""
    email = current_user.email
    if not email:
        raise _invalid_request()

    user_store = request.app.state.user_store
    user = user_store.read({"email": email})
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    user_store.delete(user)
    request.app.state.cache.delete(USER_CACHE_KEY)
    logger.info("Unregistered user %d (%s)", user.id, user.email)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# GitHub OAuth
# ---------------------------------------------------------------------------


@router.get("/auth/github", response_model=UrlResponse)
async def github_authorize() -> UrlResponse:
    """Return the GitHub authorize URL; the browser navigates to it itself."""
    query = urlencode(
        {"client_id": get_settings().github_client_id, "scope": GITHUB_SCOPE},
        safe=":",
    )
    return UrlResponse(data=f"{GITHUB_AUTHORIZE_URL}?{query}")


@router.get("/auth/github/callback", response_class=PlainTextResponse)
def github_callback(request: Request, code: str | None = None) -> PlainTextResponse:
    """Exchange the authorization code and return the bare access token.

    GitHub answers with a form-encoded body (access_token=...&scope=...).
    The user profile is not fetched.
    """
    cfg = get_settings()
    result = request.app.state.http_client.request(
        "post",
        GITHUB_ACCESS_TOKEN_URL,
        params={
            "code": code,
            "accept": "json",
            "client_id": cfg.github_client_id,
            "client_secret": cfg.github_client_secret,
        },
    )
    access_token = parse_qs(result.data).get("access_token", [""])[0]
    return PlainTextResponse(access_token)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_user_invitation(store: InvitationStore, hash: str, email: str | None = None) -> UserInvitation | None:
    where = {"hash": hash} if email is None else {"hash": hash, "email": email}
    return store.read_user_invitation(where)


def _is_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True
