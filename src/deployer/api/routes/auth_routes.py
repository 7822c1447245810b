"""Authentication API routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    status,
)

from deployer.api.dependencies.auth import (
    get_current_user,
    get_jwt_handler,
    require_permission,
)
from deployer.api.schemas.auth_schemas import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    RoleUpdateRequest,
    TokenResponse,
    UserResponse,
)
from deployer.config import get_settings
from deployer.domain.models.user import Permission, Role, User
from deployer.infrastructure.auth.jwt_handler import InvalidTokenError, JWTHandler, REFRESH
from deployer.infrastructure.persistence.repositories.in_memory import (
    InMemoryUserRepository,
)


router = APIRouter(prefix="/auth", tags=["auth"])

# Use the shared module-level user store via the repository.
_user_repo = InMemoryUserRepository()


def _issue_tokens(jwt_handler: JWTHandler, user: User) -> TokenResponse:
    return TokenResponse(
        access_token=jwt_handler.create_access_token(
            subject=user.id,
            role=user.role.value,
            username=user.username,
            email=user.email,
        ),
        refresh_token=jwt_handler.create_refresh_token(subject=user.id),
        expires_in=get_settings().auth.access_token_expire_minutes * 60,
    )


def _to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
) -> UserResponse:
    """Register a new user.

    The first account becomes the administrator; later accounts start as
    viewers until an administrator grants them a role.
    """
    existing = await _user_repo.get_by_username(request.username)
    if existing:
        raise HTTPException(status_code=409, detail="Username already exists")

    user = User(
        username=request.username,
        email=request.email,
        hashed_password=JWTHandler.hash_password(request.password),
        role=Role.ADMIN if await _user_repo.count() == 0 else Role.VIEWER,
    )
    await _user_repo.save(user)
    return _to_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    jwt_handler: Annotated[JWTHandler, Depends(get_jwt_handler)],
) -> TokenResponse:
    """Authenticate and return JWT tokens."""
    user = await _user_repo.get_by_username(request.username)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not JWTHandler.verify_password(request.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return _issue_tokens(jwt_handler, user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    request: RefreshRequest,
    jwt_handler: Annotated[JWTHandler, Depends(get_jwt_handler)],
) -> TokenResponse:
    """Exchange a refresh token for a fresh pair.

    The role is read from the user store again, so a role granted since
    login takes effect here.
    """
    try:
        payload = jwt_handler.decode_token(request.refresh_token, expected_type=REFRESH)
    except InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user = await _user_repo.get_by_id(payload["sub"])
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _issue_tokens(jwt_handler, user)


@router.get("/me", response_model=UserResponse)
async def get_me(
    user: Annotated[User, Depends(get_current_user)],
) -> UserResponse:
    """Get current user info."""
    return _to_response(user)


@router.put("/users/{username}/role", response_model=UserResponse)
async def update_role(
    username: str,
    request: RoleUpdateRequest,
    _admin: Annotated[User, Depends(require_permission(Permission.USER_MANAGE))],
) -> UserResponse:
    """Grant a role to an existing user."""
    user = await _user_repo.get_by_username(username)
    if not user:
        raise HTTPException(status_code=404, detail=f"User {username} not found")
    user.role = request.role
    user.touch()
    await _user_repo.save(user)
    return _to_response(user)
