from datetime import datetime, timezone
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from library import constants
from library.config import settings

logger = logging.getLogger(__name__)


class LibraryException(Exception):
    """Base exception for library-related errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = constants.INTERNAL_SERVER_ERROR

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# Not found


class BookNotFoundError(LibraryException):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = constants.BOOK_NOT_FOUND

    def __init__(self, book_id: int):
        self.book_id = book_id
        super().__init__()


class BorrowRecordNotFoundError(LibraryException):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = constants.BORROW_RECORD_NOT_FOUND

    def __init__(self, borrow_id: int):
        self.borrow_id = borrow_id
        super().__init__()


class UserNotFoundError(LibraryException):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = constants.USER_NOT_FOUND

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__()


# Conflicts


class IsbnAlreadyExistsError(LibraryException):
    status_code = status.HTTP_409_CONFLICT
    default_message = constants.ISBN_ALREADY_EXISTS

    def __init__(self, isbn: str):
        self.isbn = isbn
        super().__init__()


class BookAlreadyBorrowedError(LibraryException):
    status_code = status.HTTP_409_CONFLICT
    default_message = constants.BOOK_ALREADY_BORROWED

    def __init__(self, book_id: int):
        self.book_id = book_id
        super().__init__()


class UserAlreadyExistsError(LibraryException):
    status_code = status.HTTP_409_CONFLICT
    default_message = constants.USER_ALREADY_EXISTS


# Business rules


class InsufficientCopiesError(LibraryException):
    """Raised when a copy count would drop below the copies out on loan."""

    default_message = constants.INSUFFICIENT_COPIES

    def __init__(self, book_id: int, borrowed: int, requested: int):
        self.book_id = book_id
        self.borrowed = borrowed
        self.requested = requested
        super().__init__()


class BookNotAvailableError(LibraryException):
    """Raised when a book is not available for borrowing."""

    default_message = constants.BOOK_NOT_AVAILABLE

    def __init__(self, book_id: int):
        self.book_id = book_id
        super().__init__()


class BookAlreadyReturnedError(LibraryException):
    default_message = constants.BOOK_ALREADY_RETURNED

    def __init__(self, borrow_id: int):
        self.borrow_id = borrow_id
        super().__init__()


# Unavailable dependencies


class ExternalSearchUnavailableError(LibraryException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = constants.EXTERNAL_SEARCH_UNAVAILABLE


class BookBusyError(LibraryException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = constants.BOOK_BUSY

    def __init__(self, book_id: int):
        self.book_id = book_id
        super().__init__()


# Authentication


class UnauthorizedError(LibraryException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = constants.UNAUTHORIZED


class InvalidCredentialsError(UnauthorizedError):
    default_message = constants.INVALID_CREDENTIALS


class InactiveUserError(UnauthorizedError):
    default_message = constants.USER_INACTIVE


class ForbiddenError(LibraryException):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = constants.FORBIDDEN


class DatabaseError(LibraryException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Database error during {operation}: {details}")


def error_response(message: str, status_code: int, error: Optional[str] = None):
    content = {
        "success": False,
        "message": message,
        "statusCode": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if error is not None:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


# Exception handlers
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.error(f"HTTP error {exc.status_code}: {exc.detail}")
    return error_response(str(exc.detail), exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Request validation error: {exc.errors()}")
    return error_response(
        constants.INVALID_REQUEST,
        422,
        error=str(exc.errors()) if settings.debug else None,
    )


async def response_validation_exception_handler(
    request: Request, exc: ResponseValidationError
):
    logger.error(f"Response validation error: {exc.errors()}")
    return error_response(
        constants.INTERNAL_SERVER_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR
    )


async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.method} {request.url.path}: {exc!r}")
    return error_response(
        constants.INTERNAL_SERVER_ERROR,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        error=str(exc) if settings.debug else None,
    )


async def database_exception_handler(request: Request, exc: DatabaseError):
    logger.error(f"Database error: {exc}")
    return error_response(
        constants.INTERNAL_SERVER_ERROR,
        exc.status_code,
        error=exc.details if settings.debug else None,
    )


async def library_exception_handler(request: Request, exc: LibraryException):
    logger.warning(f"Library error ({exc.status_code}): {exc.message}")
    return error_response(exc.message, exc.status_code)


def add_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(
        ResponseValidationError, response_validation_exception_handler
    )
    app.add_exception_handler(Exception, general_exception_handler)
    app.add_exception_handler(DatabaseError, database_exception_handler)
    app.add_exception_handler(LibraryException, library_exception_handler)
