"""
User endpoints for API v1.

Registration and login are public.  Listing users and changing roles
is reserved for staff.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from repair24_api.app.core.db import ROLE_ADMIN, ROLE_SUPER_ADMIN
from repair24_api.app.core.errors import SERVICE_ERRORS, as_http_error
from repair24_api.app.core.security import create_access_token, get_current_user, require_roles
from repair24_api.app.schemas.user import Token, UserCreate, UserLogin, UserRead
from repair24_api.app.services.user_service import UserService


router = APIRouter()


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def register_user(user: UserCreate) -> UserRead:
    """Register a client or contractor.

    The first user ever registered becomes the super administrator.
    409 when the e‑mail is already taken.
    """
    try:
        return await UserService.create_user(user)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.post("/login", response_model=Token)
async def login_user(credentials: UserLogin) -> Token:
    db_user = await UserService.authenticate(credentials.email, credentials.password)
    if not db_user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return Token(access_token=create_access_token({"sub": db_user.email}))


@router.get("/me", response_model=UserRead)
async def read_me(current_user: dict = Depends(get_current_user)) -> UserRead:
    try:
        return await UserService.get_user(current_user.get("user_id"))
    except SERVICE_ERRORS as e:
        raise as_http_error(e)


@router.get("/", response_model=List[UserRead])
async def list_users(
    role_id: Optional[int] = Query(None, description="Only users with this role"),
    current_user: dict = Depends(require_roles(ROLE_SUPER_ADMIN, ROLE_ADMIN)),
) -> List[UserRead]:
    return await UserService.list_users(role_id=role_id)


@router.patch("/{user_id}/role", response_model=UserRead)
async def set_user_role(
    user_id: int = Path(..., description="User ID"),
    role_id: int = Body(..., embed=True, ge=1, le=4),
    current_user: dict = Depends(require_roles(ROLE_SUPER_ADMIN)),
) -> UserRead:
    try:
        return await UserService.set_role(user_id, role_id)
    except SERVICE_ERRORS as e:
        raise as_http_error(e)
