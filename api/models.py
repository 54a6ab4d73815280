"""
API request and response models for UserHub REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models are deliberately loose (every field optional): the handlers
perform the shallow presence checks themselves so a missing field yields the
documented `400 Invalid request` rather than a schema error listing.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, StringConstraints

from auth.models import User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

# Passwords are never stripped: surrounding whitespace is part of the credential.
StrippedStr = Annotated[str, StringConstraints(strip_whitespace=True)]


class Credentials(BaseModel):
    email: Optional[StrippedStr] = None
    password: Optional[str] = None


class SigninRequest(BaseModel):
    """Request body for POST /api/v1/auth/signin."""

    user: Optional[Credentials] = None


class RegistrationUser(BaseModel):
    """User payload for POST /api/v1/auth/register/{hash}.

    Extra keys are accepted and dropped; the store only persists known
    columns.
    """

    model_config = ConfigDict(extra="ignore")

    email: Optional[StrippedStr] = None
    password: Optional[str] = None
    firstname: Optional[StrippedStr] = None
    lastname: Optional[StrippedStr] = None


class RegistrationRequest(BaseModel):
    user: Optional[RegistrationUser] = None


class InvitationRequest(BaseModel):
    """Request body for POST /api/v1/auth/invite."""

    email: Optional[StrippedStr] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SigninUser(BaseModel):
    """Sign-in projection of a User. Has no password field by construction."""

    id: int
    email: str
    firstname: Optional[str] = None
    lastname: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "SigninUser":
        return cls(id=user.id, email=user.email, firstname=user.firstname, lastname=user.lastname)


class UserOut(SigninUser):
    """Listing projection of a User."""

    active: bool
    role: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            firstname=user.firstname,
            lastname=user.lastname,
            active=user.active,
            role=user.role.name if user.role else None,
        )


class SigninData(BaseModel):
    user: SigninUser
    token: str


class SigninResponse(BaseModel):
    status: int = 200
    data: SigninData


class UrlResponse(BaseModel):
    status: int = 200
    data: str


class UserListResponse(BaseModel):
    status: int = 200
    data: list[UserOut]


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every exception handler."""

    status: int
    error: str


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str]
