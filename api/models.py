"""
API request and response models for StashIt REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
vault/models.py, which own the internal domain representation. Route handlers
map between the two.

Field names follow the JSON the browser extension already sends and reads
(googleToken, createdAt, ...). Python attributes stay snake_case; aliases
carry the wire names.
"""

from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from auth.models import User
from vault.models import VaultItem

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class CategoryEnum(str, Enum):
    password = "password"
    document = "document"
    payslip = "payslip"
    photo = "photo"
    personal = "personal"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

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
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class GoogleTokenRequest(BaseModel):
    """Request body for POST /api/v1/auth/google.

    googleToken is optional at the schema level so a missing token reaches the
    handler and is reported as missing_assertion (400) rather than a generic
    validation error.
    """

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    google_token: Optional[str] = Field(default=None, alias="googleToken", max_length=4096)


class UserInfo(BaseModel):
    """Public view of a user record."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: Optional[str] = None
    avatar: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserInfo":
        return cls(id=user.id, email=user.email, name=user.name, avatar=user.avatar)


class GoogleLoginResponse(BaseModel):
    """Response for POST /api/v1/auth/google."""

    model_config = ConfigDict(frozen=True)

    token: str
    user: UserInfo


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Vault -- requests
# ---------------------------------------------------------------------------


# Single-line display fields are trimmed. password and notes are kept exactly
# as sent: leading or trailing spaces can be part of a secret.
_Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
_Website = Annotated[str, StringConstraints(strip_whitespace=True, max_length=2048)]
_Username = Annotated[str, StringConstraints(strip_whitespace=True, max_length=255)]


class VaultItemCreate(BaseModel):
    """Request body for POST /api/v1/vault.

    password is plaintext on the wire; the route encrypts it before storage.
    """

    category: CategoryEnum
    name: _Name
    website: Optional[_Website] = None
    username: Optional[_Username] = None
    password: Optional[str] = Field(default=None, max_length=4096)
    notes: Optional[str] = Field(default=None, max_length=10000)
    tags: list[str] = Field(default_factory=list, max_length=20)
    favorite: bool = False


class VaultItemUpdate(BaseModel):
    """Request body for PUT /api/v1/vault/{id}.

    Omitted fields are left unchanged. password="" clears the stored password;
    any other password value is re-encrypted with a fresh IV.
    """

    category: Optional[CategoryEnum] = None
    name: Optional[_Name] = None
    website: Optional[_Website] = None
    username: Optional[_Username] = None
    password: Optional[str] = Field(default=None, max_length=4096)
    notes: Optional[str] = Field(default=None, max_length=10000)
    tags: Optional[list[str]] = Field(default=None, max_length=20)
    favorite: Optional[bool] = None


class VaultImportItem(VaultItemCreate):
    """One entry of an import payload. Same shape as a create request."""


class VaultImportRequest(BaseModel):
    """Request body for POST /api/v1/vault/import.

    Entries are left as raw objects here and validated one at a time by the
    route, so a single malformed entry is skipped instead of rejecting the
    whole payload.
    """

    items: list[dict[str, Any]] = Field(max_length=5000)


# ---------------------------------------------------------------------------
# Vault -- responses
# ---------------------------------------------------------------------------


class VaultItemResponse(BaseModel):
    """A vault item as returned to the owner, password decrypted."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    category: str
    name: str
    website: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    favorite: bool = False
    deleted: bool = False
    deleted_at: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_item(cls, item: VaultItem, password: Optional[str]) -> "VaultItemResponse":
        """Build a response from a stored item and its already-decrypted password."""
        return cls(
            id=item.id,
            category=item.category,
            name=item.name,
            website=item.website,
            username=item.username,
            password=password,
            notes=item.notes,
            tags=item.tags,
            favorite=item.favorite,
            deleted=item.deleted,
            deleted_at=item.deleted_at,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )


class VaultStatsResponse(BaseModel):
    """Response for GET /api/v1/vault/stats."""

    model_config = ConfigDict(frozen=True)

    password: int = 0
    document: int = 0
    payslip: int = 0
    photo: int = 0
    personal: int = 0
    total: int = 0


class VaultExportResponse(BaseModel):
    """Response for POST /api/v1/vault/export. Passwords are plaintext."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    exported_at: str
    item_count: int
    items: list[VaultItemResponse]


class VaultImportResponse(BaseModel):
    """Response for POST /api/v1/vault/import. imported + skipped == total."""

    model_config = ConfigDict(frozen=True)

    message: str
    imported: int
    skipped: int
    total: int
