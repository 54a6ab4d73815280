"""
api/routes/v1/users.py -- User listing endpoint.

Routes:
  GET /api/v1/users   -- all users, password-free (requires auth)

The listing is cached in the "user" bucket of app.state.cache. Registration
and unregistration delete that bucket, so the next listing reads the store.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import UserListResponse, UserOut
from auth.dependencies import get_current_user
from auth.models import User

USER_CACHE_KEY = "user"

router = APIRouter()


@router.get("/users", response_model=UserListResponse)
def list_users(request: Request, current_user: User = Depends(get_current_user)) -> UserListResponse:
    """List every account. Served from cache when the bucket is warm."""
    cache = request.app.state.cache
    cached = cache.get(USER_CACHE_KEY)
    if cached is not None:
        return UserListResponse(data=[UserOut(**u) for u in cached])

    users = [UserOut.from_user(u) for u in request.app.state.user_store.list_users()]
    cache.set(USER_CACHE_KEY, [u.model_dump() for u in users])
    return UserListResponse(data=users)
