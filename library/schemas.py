from datetime import datetime, timezone
from typing import Annotated, Any, Generic, List, Literal, Optional, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    field_validator,
)
from pydantic.alias_generators import to_camel

from library.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_BY,
    DEFAULT_SORT_ORDER,
    DEFAULT_TOTAL_COPIES,
    MAX_PAGE,
)
from library.models import BorrowStatus, UserRole

T = TypeVar("T")

SortField = Literal["title", "author", "publishedYear", "createdAt"]
SortOrder = Literal["ASC", "DESC"]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _as_utc(value: datetime) -> datetime:
    # Columns store naive UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDateTime = Annotated[datetime, AfterValidator(_as_utc)]


class CamelModel(BaseModel):
    """Snake-case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class ApiResponse(CamelModel, Generic[T]):
    success: bool
    message: str
    data: Optional[T] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status_code: int


def success_response(message: str, status_code: int = 200, data: Any = None):
    return ApiResponse(
        success=True, message=message, status_code=status_code, data=data
    )


# Books


def _check_published_year(value: Optional[int]) -> Optional[int]:
    if value is not None and value > datetime.now(timezone.utc).year:
        raise ValueError("Published year cannot be in the future")
    return value


class BookCreate(CamelModel):
    title: str = Field(min_length=1, max_length=500)
    author: str = Field(min_length=1, max_length=255)
    isbn: Optional[str] = Field(None, min_length=1, max_length=20)
    description: Optional[str] = None
    genre: Optional[str] = Field(None, min_length=1, max_length=100)
    published_year: Optional[int] = Field(None, ge=1000)
    publisher: Optional[str] = Field(None, min_length=1, max_length=255)
    total_copies: int = Field(DEFAULT_TOTAL_COPIES, ge=1)
    cover_image_url: Optional[HttpUrl] = None

    @field_validator("published_year")
    @classmethod
    def published_year_not_in_future(cls, value):
        return _check_published_year(value)

    @field_validator("cover_image_url")
    @classmethod
    def cover_image_url_length(cls, value):
        if value is not None and len(str(value)) > 500:
            raise ValueError("Cover image URL must be at most 500 characters")
        return value


class BookUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    isbn: Optional[str] = Field(None, min_length=1, max_length=20)
    description: Optional[str] = None
    genre: Optional[str] = Field(None, min_length=1, max_length=100)
    published_year: Optional[int] = Field(None, ge=1000)
    publisher: Optional[str] = Field(None, min_length=1, max_length=255)
    total_copies: Optional[int] = Field(None, ge=1)
    cover_image_url: Optional[HttpUrl] = None
    is_active: Optional[bool] = None

    @field_validator("title", "author", "total_copies", "is_active")
    @classmethod
    def not_null(cls, value):
        # Only runs when the field is sent; an explicit null is not a valid patch here
        if value is None:
            raise ValueError("Field cannot be null")
        return value

    @field_validator("published_year")
    @classmethod
    def published_year_not_in_future(cls, value):
        return _check_published_year(value)


class BookSchema(CamelModel):
    id: int
    title: str
    author: str
    isbn: Optional[str] = None
    description: Optional[str] = None
    genre: Optional[str] = None
    published_year: Optional[int] = None
    publisher: Optional[str] = None
    total_copies: int
    available_copies: int
    cover_image_url: Optional[str] = None
    is_active: bool
    is_available: bool
    created_at: UtcDateTime
    updated_at: UtcDateTime


class BookQuery(CamelModel):
    page: int = Field(1, ge=1, le=MAX_PAGE)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1)
    search: Optional[str] = None
    sort_by: SortField = DEFAULT_SORT_BY
    sort_order: SortOrder = DEFAULT_SORT_ORDER


class PaginatedResponse(CamelModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


# Borrowing


class BorrowRequest(CamelModel):
    notes: Optional[str] = None


class BorrowedBookSchema(CamelModel):
    id: int
    book: BookSchema
    borrowed_at: UtcDateTime
    due_date: UtcDateTime
    returned_at: Optional[UtcDateTime] = None
    status: BorrowStatus
    notes: Optional[str] = None
    is_overdue: bool
    created_at: UtcDateTime
    updated_at: UtcDateTime


# External search


class ExternalBook(CamelModel):
    title: Optional[str] = None
    author: str
    isbn: Optional[str] = None
    published_year: Optional[int] = None
    publisher: Optional[str] = None
    cover_image_url: Optional[str] = None
    external_id: Optional[str] = None


class ExternalSearchResult(CamelModel):
    books: List[ExternalBook]
    total: int
    query: str


# Users


class UserBase(CamelModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)


class UserCreate(UserBase):
    password: str = Field(min_length=8)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value):
        if len(value.encode("utf-8")) > 72:
            raise ValueError("Password must be at most 72 bytes")
        return value


class LoginRequest(CamelModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1)


class UserSchema(UserBase):
    id: int
    role: UserRole
    is_active: bool
    last_login_at: Optional[UtcDateTime] = None
    created_at: UtcDateTime
    updated_at: UtcDateTime


class LoginResponse(CamelModel):
    access_token: str
    user: UserSchema
