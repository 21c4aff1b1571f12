from contextlib import asynccontextmanager
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Path, Query, status
from sqlalchemy.orm import Session

from library import auth, borrowing, constants, crud
from library.config import settings
from library.exceptions import add_exception_handlers
from library.models import User
from library.openlibrary import OpenLibraryClient, get_openlibrary_client
from library.schemas import (
    ApiResponse,
    BookCreate,
    BookQuery,
    BookSchema,
    BookUpdate,
    BorrowedBookSchema,
    BorrowRequest,
    ExternalSearchResult,
    LoginRequest,
    LoginResponse,
    PaginatedResponse,
    SortField,
    SortOrder,
    UserCreate,
    UserSchema,
    success_response,
)
from library.seed import seed_initial_data
from library.storage import SessionLocal, engine, get_db, init_db

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.testing = app.state.testing if hasattr(app.state, "testing") else False

    if not app.state.testing:
        logger.info("Initializing database")
        init_db()
        if settings.seed_data:
            with SessionLocal() as db:
                seed_initial_data(db)
    yield
    if not app.state.testing:
        logger.info("Closing database connections")
        engine.dispose()


app = FastAPI(
    title="Digital Library API",
    lifespan=lifespan,
    description="Book catalog, borrowing and returns for a lending library",
    version="1.0.0",
)

add_exception_handlers(app)

router = APIRouter(prefix=constants.API_PREFIX)


def book_query_params(
    page: int = Query(1, ge=1, le=constants.MAX_PAGE),
    limit: int = Query(constants.DEFAULT_PAGE_SIZE, ge=1),
    search: Optional[str] = Query(None),
    sort_by: SortField = Query(constants.DEFAULT_SORT_BY, alias="sortBy"),
    sort_order: SortOrder = Query(constants.DEFAULT_SORT_ORDER, alias="sortOrder"),
) -> BookQuery:
    # limit has no upper bound here: values above the maximum are clamped, not rejected
    return BookQuery(
        page=page, limit=limit, search=search, sort_by=sort_by, sort_order=sort_order
    )


# Auth
@router.post(
    "/auth/signup",
    response_model=ApiResponse[UserSchema],
    status_code=status.HTTP_201_CREATED,
)
def signup_user(user: UserCreate, db: Session = Depends(get_db)):
    db_user = auth.signup(db, user)
    return success_response(
        constants.USER_CREATED,
        status.HTTP_201_CREATED,
        UserSchema.model_validate(db_user),
    )


@router.post("/auth/login", response_model=ApiResponse[LoginResponse])
def login_user(credentials: LoginRequest, db: Session = Depends(get_db)):
    access_token, user = auth.login(db, credentials)
    data = LoginResponse(
        access_token=access_token, user=UserSchema.model_validate(user)
    )
    return success_response(constants.LOGIN_SUCCESS, status.HTTP_200_OK, data)


@router.get("/auth/profile", response_model=ApiResponse[UserSchema])
def read_profile(current_user: User = Depends(auth.get_current_user)):
    return success_response(
        constants.PROFILE_RETRIEVED,
        status.HTTP_200_OK,
        UserSchema.model_validate(current_user),
    )


# Books
@router.post(
    "/books",
    response_model=ApiResponse[BookSchema],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth.require_admin)],
)
def add_book(book: BookCreate, db: Session = Depends(get_db)):
    logger.info(f"Received request to add book: {book.title}")
    new_book = crud.create_book(db, book)
    return success_response(
        constants.BOOK_CREATED,
        status.HTTP_201_CREATED,
        BookSchema.model_validate(new_book),
    )


@router.get("/books", response_model=ApiResponse[PaginatedResponse[BookSchema]])
def list_books(
    params: BookQuery = Depends(book_query_params), db: Session = Depends(get_db)
):
    page = crud.list_books(db, params)
    return success_response(constants.BOOKS_RETRIEVED, status.HTTP_200_OK, page)


@router.get("/books/search", response_model=ApiResponse[ExternalSearchResult])
async def search_external_books(
    q: str = Query(..., min_length=2, max_length=100),
    limit: int = Query(
        constants.EXTERNAL_SEARCH_DEFAULT_LIMIT,
        ge=1,
        le=constants.EXTERNAL_SEARCH_MAX_LIMIT,
    ),
    client: OpenLibraryClient = Depends(get_openlibrary_client),
):
    result = await client.search(q, limit)
    return success_response(
        constants.EXTERNAL_BOOKS_RETRIEVED, status.HTTP_200_OK, result
    )


@router.get("/books/{book_id}", response_model=ApiResponse[BookSchema])
def read_book(
    book_id: int = Path(..., ge=1, le=constants.MAX_DB_INTEGER),
    db: Session = Depends(get_db),
):
    book = crud.get_book(db, book_id)
    return success_response(
        constants.BOOKS_RETRIEVED, status.HTTP_200_OK, BookSchema.model_validate(book)
    )


@router.put(
    "/books/{book_id}",
    response_model=ApiResponse[BookSchema],
    dependencies=[Depends(auth.require_admin)],
)
def modify_book(
    book_update: BookUpdate,
    book_id: int = Path(..., ge=1, le=constants.MAX_DB_INTEGER),
    db: Session = Depends(get_db),
):
    updated_book = crud.update_book(db, book_id, book_update)
    return success_response(
        constants.BOOK_UPDATED,
        status.HTTP_200_OK,
        BookSchema.model_validate(updated_book),
    )


@router.delete(
    "/books/{book_id}",
    response_model=ApiResponse,
    dependencies=[Depends(auth.require_admin)],
)
def remove_book(
    book_id: int = Path(..., ge=1, le=constants.MAX_DB_INTEGER),
    db: Session = Depends(get_db),
):
    crud.delete_book(db, book_id)
    return success_response(constants.BOOK_DELETED, status.HTTP_200_OK)


# Borrowing
@router.post(
    "/books/{book_id}/borrow",
    response_model=ApiResponse[BorrowedBookSchema],
    status_code=status.HTTP_201_CREATED,
)
def borrow_book_item(
    book_id: int = Path(..., ge=1, le=constants.MAX_DB_INTEGER),
    borrow_request: Optional[BorrowRequest] = None,
    current_user: User = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    notes = borrow_request.notes if borrow_request else None
    record = borrowing.borrow_book(db, book_id, current_user.id, notes)
    return success_response(
        constants.BOOK_BORROWED,
        status.HTTP_201_CREATED,
        BorrowedBookSchema.model_validate(record),
    )


@router.get("/me/borrowed-books", response_model=ApiResponse[List[BorrowedBookSchema]])
def list_my_borrowed_books(
    current_user: User = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    records = borrowing.get_borrowed_books(db, current_user.id)
    return success_response(
        constants.BORROWED_BOOKS_RETRIEVED,
        status.HTTP_200_OK,
        [BorrowedBookSchema.model_validate(record) for record in records],
    )


@router.post(
    "/me/borrowed-books/{borrow_id}/return",
    response_model=ApiResponse[BorrowedBookSchema],
)
def return_borrowed_book(
    borrow_id: int = Path(..., ge=1, le=constants.MAX_DB_INTEGER),
    current_user: User = Depends(auth.get_current_user),
    db: Session = Depends(get_db),
):
    record = borrowing.return_book(db, borrow_id, current_user.id)
    return success_response(
        constants.BOOK_RETURNED,
        status.HTTP_200_OK,
        BorrowedBookSchema.model_validate(record),
    )


app.include_router(router)


@app.get("/health")
def health():
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting library API on port {settings.api_port}")
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
