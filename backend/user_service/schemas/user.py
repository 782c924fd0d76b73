from datetime import datetime
from typing import Annotated, Any, Literal, Optional

from pydantic import (
    AfterValidator,
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
    field_serializer,
)
from pydantic.alias_generators import to_camel

from user_service.models.user import OAuthProvider, Role


def _lower(value: str) -> str:
    return value.strip().lower()


Email = Annotated[EmailStr, AfterValidator(_lower)]
Password = Annotated[str, Field(min_length=8, max_length=128)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
Username = Annotated[
    str,
    StringConstraints(strip_whitespace=True, to_lower=True, min_length=3, max_length=30, pattern=r"^[A-Za-z0-9]+$"),
]
Level = Literal["beginner", "intermediate", "advanced"]
SkillLevel = Literal["beginner", "intermediate", "advanced", "expert"]


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (firstName, accessToken, ...)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserCreate(CamelModel):
    email: Email
    password: Password
    first_name: Name
    last_name: Name
    username: Optional[Username] = None
    role: Role = Role.STUDENT


class LoginRequest(CamelModel):
    email: Email
    password: str


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: Password


class NotificationPreferences(CamelModel):
    email: Optional[bool] = None
    push: Optional[bool] = None


class PreferencesUpdate(CamelModel):
    language: Optional[str] = Field(default=None, min_length=2, max_length=2)
    timezone: Optional[str] = None
    notifications: Optional[NotificationPreferences] = None


class Skill(CamelModel):
    name: str
    level: SkillLevel


class LearningProfileUpdate(CamelModel):
    level: Optional[Level] = None
    skills: Optional[list[Skill]] = None
    interests: Optional[list[str]] = None


class ProfileUpdate(CamelModel):
    first_name: Optional[Name] = None
    last_name: Optional[Name] = None
    username: Optional[Username] = None
    avatar: Optional[AnyHttpUrl] = None
    preferences: Optional[PreferencesUpdate] = None
    learning_profile: Optional[LearningProfileUpdate] = None

    model_config = ConfigDict(extra="forbid")

    def changes(self) -> dict[str, Any]:
        """Only the fields the client actually sent, with nested models as dicts"""
        data = self.model_dump(exclude_unset=True, exclude_none=True)
        if "avatar" in data:
            data["avatar"] = str(self.avatar)
        return data


class UserResponse(CamelModel):
    """Public view of a user. Hash, refresh tokens and one-time tokens never appear here."""
    id: str
    email: str
    first_name: str
    last_name: str
    username: Optional[str] = None
    role: Role
    avatar: Optional[str] = None
    is_email_verified: bool
    oauth_provider: Optional[OAuthProvider] = None
    preferences: dict
    learning_profile: dict
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("last_login", "created_at", "updated_at")
    def serialize_datetime(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class TokensResponse(CamelModel):
    access_token: str
    refresh_token: str


class AuthData(CamelModel):
    user: UserResponse
    tokens: TokensResponse


class AuthResponse(BaseModel):
    success: bool = True
    data: AuthData


class UserData(BaseModel):
    user: UserResponse


class UserEnvelope(BaseModel):
    success: bool = True
    data: UserData


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class UserListData(BaseModel):
    users: list[UserResponse]
    pagination: Pagination


class UserListResponse(BaseModel):
    success: bool = True
    data: UserListData
