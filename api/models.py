"""
API request and response models for webbase REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Separation of concerns: domain models = domain truth; api/ models = API contract.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User
from catalog.models import Category, Item

# Loose shape check only; the store normalizes and re-validates.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"
USERNAME_PATTERN = r"^[^@\s]+$"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    code is stable and documented: duplicate_username, duplicate_email,
    invalid_credentials, unauthorized, forbidden, not_found, conflict,
    validation_error, rate_limited, storage_unavailable, internal_error.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Password length policy (PASSWORD_MIN_LENGTH / PASSWORD_MAX_LENGTH) is
    applied by auth.service.validate_new_password, not here, so it stays
    configurable.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=100, pattern=USERNAME_PATTERN)
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=4096)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. identifier is a username or an email."""

    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=4096)


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/v1/auth/me."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)


class PasswordChange(BaseModel):
    """Request body for POST /api/v1/auth/password."""

    current_password: str = Field(min_length=1, max_length=4096)
    new_password: str = Field(min_length=1, max_length=4096)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. There is no password field to leak."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    email_verified: bool
    is_active: bool
    last_login: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            email_verified=user.email_verified,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class SessionResponse(BaseModel):
    """Returned by login, password change, and GET /me.

    csrf_token must be echoed in the X-CSRF-Token header on every POST, PATCH,
    and DELETE made with this session.
    """

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    csrf_token: str
    expires_in: Optional[int] = None


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class CategoryCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    category_name: str = Field(min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    display_name: str = Field(min_length=1, max_length=100)
    is_visible: bool = True
    display_order: int = 0


class CategoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    category_name: str
    display_name: str
    is_visible: bool
    display_order: int
    created_at: str
    updated_at: str

    @classmethod
    def from_category(cls, category: Category) -> "CategoryResponse":
        return cls(
            id=category.id,
            category_name=category.category_name,
            display_name=category.display_name,
            is_visible=category.is_visible,
            display_order=category.display_order,
            created_at=category.created_at,
            updated_at=category.updated_at,
        )


class ItemCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=10000)
    data: Optional[dict[str, Any]] = None
    is_active: bool = True
    category_id: int


class ItemPatch(BaseModel):
    """Request body for PATCH /api/v1/items/{id}. Only fields that are sent are updated."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=10000)
    data: Optional[dict[str, Any]] = None
    is_active: Optional[bool] = None
    category_id: Optional[int] = None


class ItemResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: Optional[str]
    data: Optional[dict[str, Any]]
    is_active: bool
    category_id: int
    category_display_name: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_item(cls, item: Item) -> "ItemResponse":
        return cls(
            id=item.id,
            title=item.title,
            description=item.description,
            data=item.data,
            is_active=item.is_active,
            category_id=item.category_id,
            category_display_name=item.category_display_name,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )
