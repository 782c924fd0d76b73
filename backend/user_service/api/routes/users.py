from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from user_service.api.dependencies import (
    get_auth_service,
    get_current_user,
    get_user_service,
    require_roles,
)
from user_service.models.user import Role
from user_service.schemas.user import (
    AuthData,
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    Pagination,
    ProfileUpdate,
    TokensResponse,
    UserCreate,
    UserData,
    UserEnvelope,
    UserListData,
    UserListResponse,
    UserResponse,
)
from user_service.services.auth_service import AuthResult, AuthService
from user_service.services.token_service import TokenClaims
from user_service.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(data=AuthData(
        user=UserResponse.model_validate(result.user),
        tokens=TokensResponse(
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
        ),
    ))


def _user_envelope(user) -> UserEnvelope:
    return UserEnvelope(data=UserData(user=UserResponse.model_validate(user)))


# Public
# -----------------------------

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, auth: AuthService = Depends(get_auth_service)):
    """Register a new user and return it with a token pair"""
    return _auth_response(auth.register(user_data))


@router.post("/login", response_model=AuthResponse)
def login(credentials: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    """Login and get access and refresh tokens"""
    return _auth_response(auth.login(credentials.email, credentials.password))


# Authenticated
# -----------------------------

@router.get("/profile", response_model=UserEnvelope)
def get_profile(
    current_user: TokenClaims = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    return _user_envelope(users.get_user(current_user.id))


@router.put("/profile", response_model=UserEnvelope)
def update_profile(
    profile: ProfileUpdate,
    current_user: TokenClaims = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    """Update the caller's profile fields"""
    return _user_envelope(users.update_profile(current_user.id, profile.changes()))


@router.delete("/account", response_model=MessageResponse)
def delete_account(
    current_user: TokenClaims = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
):
    """Deactivate the caller's account (soft delete)"""
    users.deactivate(current_user.id)
    return MessageResponse(message="Account deactivated successfully")


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    passwords: ChangePasswordRequest,
    current_user: TokenClaims = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
):
    auth.change_password(current_user.id, passwords.current_password, passwords.new_password)
    return MessageResponse(message="Password changed successfully")


# Admin
# -----------------------------

@router.get("/users", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[Role] = None,
    search: Optional[str] = Query(None, max_length=100),
    _admin: TokenClaims = Depends(require_roles(Role.ADMIN)),
    users: UserService = Depends(get_user_service),
):
    """List users, newest first, with optional role filter and text search"""
    result = users.list_users(page=page, limit=limit, role=role, search=search)
    return UserListResponse(data=UserListData(
        users=[UserResponse.model_validate(user) for user in result.users],
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total=result.total,
            pages=result.pages,
        ),
    ))


@router.get("/users/{user_id}", response_model=UserEnvelope)
def get_user_by_id(
    user_id: str,
    _admin: TokenClaims = Depends(require_roles(Role.ADMIN)),
    users: UserService = Depends(get_user_service),
):
    return _user_envelope(users.get_user(user_id))
