import logging
import math
from typing import Optional

import bcrypt
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from library import models, schemas
from library.config import settings
from library.constants import MAX_PAGE_SIZE, MIN_SEARCH_LENGTH
from library.exceptions import (
    BookNotFoundError,
    DatabaseError,
    InsufficientCopiesError,
    IsbnAlreadyExistsError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from library.locks import book_locks

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "title": models.Book.title,
    "author": models.Book.author,
    "publishedYear": models.Book.published_year,
    "createdAt": models.Book.created_at,
}


# Users


def get_user_by_id(db: Session, user_id: int) -> models.User:
    """Active users only; deactivated accounts are reported as missing."""
    try:
        user = (
            db.query(models.User)
            .filter(models.User.id == user_id, models.User.is_active.is_(True))
            .first()
        )
    except SQLAlchemyError as e:
        raise DatabaseError("fetch", str(e))
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def find_user_by_email(db: Session, email: str) -> Optional[models.User]:
    try:
        return (
            db.query(models.User).filter(models.User.email == email.lower()).first()
        )
    except SQLAlchemyError as e:
        raise DatabaseError("fetch", str(e))


def create_user_record(
    db: Session, user: schemas.UserCreate, role: models.UserRole = models.UserRole.USER
) -> models.User:
    email = user.email.lower()
    if find_user_by_email(db, email) is not None:
        raise UserAlreadyExistsError()

    hashed_password = bcrypt.hashpw(
        user.password.encode("utf-8"), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    )
    db_user = models.User(
        email=email,
        first_name=user.first_name,
        last_name=user.last_name,
        hashed_password=hashed_password.decode("utf-8"),
        role=role,
    )
    try:
        db.add(db_user)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise UserAlreadyExistsError()
    except SQLAlchemyError as e:
        db.rollback()
        raise DatabaseError("create", str(e))
    db.refresh(db_user)
    logger.info(f"New user created: {db_user.email} with role: {db_user.role.value}")
    return db_user


# Catalog


def active_books(db: Session) -> Query:
    """Every read that hides soft-deleted books starts from this query."""
    return db.query(models.Book).filter(models.Book.is_active.is_(True))


def _isbn_taken(db: Session, isbn: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(models.Book.id).filter(models.Book.isbn == isbn)
    if exclude_id is not None:
        query = query.filter(models.Book.id != exclude_id)
    return query.first() is not None


def create_book(db: Session, item: schemas.BookCreate) -> models.Book:
    try:
        if item.isbn and _isbn_taken(db, item.isbn):
            raise IsbnAlreadyExistsError(item.isbn)

        db_book = models.Book(
            **item.model_dump(mode="json"), available_copies=item.total_copies
        )
        db.add(db_book)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise IsbnAlreadyExistsError(item.isbn)
    except SQLAlchemyError as e:
        db.rollback()
        raise DatabaseError("create", str(e))
    db.refresh(db_book)
    logger.info(f"New book created: {db_book.title} by {db_book.author}")
    return db_book


def _contains_pattern(term: str) -> str:
    """LIKE pattern matching `term` literally, wildcards included."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _fetch_page(query: Query, order_by, skip: int, take: int):
    total = query.count()
    books = query.order_by(*order_by).offset(skip).limit(take).all()
    return books, total


def list_books(
    db: Session, params: schemas.BookQuery
) -> schemas.PaginatedResponse[schemas.BookSchema]:
    take = min(params.limit, MAX_PAGE_SIZE)
    skip = (params.page - 1) * take

    column = SORT_COLUMNS[params.sort_by]
    if params.sort_order == "ASC":
        order_by = (column.asc(), models.Book.id.asc())
    else:
        order_by = (column.desc(), models.Book.id.desc())

    try:
        query = active_books(db)
        search = params.search
        if search and len(search) >= MIN_SEARCH_LENGTH:
            pattern = _contains_pattern(search)
            books, total = _fetch_page(
                query.filter(models.Book.title.ilike(pattern, escape="\\")),
                order_by,
                skip,
                take,
            )
            # Author matches are only consulted when no title matches
            if total == 0:
                logger.info(f"No title matches for '{search}', searching by author")
                books, total = _fetch_page(
                    query.filter(models.Book.author.ilike(pattern, escape="\\")),
                    order_by,
                    skip,
                    take,
                )
        else:
            books, total = _fetch_page(query, order_by, skip, take)
    except SQLAlchemyError as e:
        raise DatabaseError("filter", str(e))

    return schemas.PaginatedResponse[schemas.BookSchema](
        data=[schemas.BookSchema.model_validate(book) for book in books],
        total=total,
        page=params.page,
        limit=take,
        total_pages=math.ceil(total / take),
    )


def get_book(db: Session, book_id: int) -> models.Book:
    try:
        book = active_books(db).filter(models.Book.id == book_id).first()
    except SQLAlchemyError as e:
        raise DatabaseError("fetch", str(e))
    if book is None:
        raise BookNotFoundError(book_id)
    return book


def _get_any_book(db: Session, book_id: int) -> models.Book:
    book = (
        db.query(models.Book)
        .populate_existing()
        .filter(models.Book.id == book_id)
        .first()
    )
    if book is None:
        raise BookNotFoundError(book_id)
    return book


def _resize_copies(db: Session, book: models.Book, new_total: int):
    """Set total_copies, keeping the copies on loan out of available_copies.

    Computed from the row as it stands at UPDATE time, so a borrow committed
    by another process after ``book`` was read is still counted.
    """
    on_loan = models.Book.total_copies - models.Book.available_copies
    resized = (
        db.query(models.Book)
        .filter(models.Book.id == book.id, on_loan <= new_total)
        .update(
            {
                models.Book.total_copies: new_total,
                models.Book.available_copies: new_total - on_loan,
                models.Book.updated_at: models.utcnow(),
            },
            synchronize_session=False,
        )
    )
    if resized == 0:
        db.rollback()
        book = _get_any_book(db, book.id)
        borrowed = book.total_copies - book.available_copies
        raise InsufficientCopiesError(book.id, borrowed, new_total)


def update_book(
    db: Session, book_id: int, book_update: schemas.BookUpdate
) -> models.Book:
    changes = book_update.model_dump(mode="json", exclude_unset=True)

    with book_locks.hold(book_id):
        try:
            book = _get_any_book(db, book_id)

            new_isbn = changes.get("isbn")
            if new_isbn and new_isbn != book.isbn and _isbn_taken(db, new_isbn, book.id):
                raise IsbnAlreadyExistsError(new_isbn)

            new_total = changes.pop("total_copies", None)
            if new_total is not None:
                _resize_copies(db, book, new_total)

            for field, value in changes.items():
                setattr(book, field, value)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise IsbnAlreadyExistsError(changes.get("isbn"))
        except SQLAlchemyError as e:
            db.rollback()
            raise DatabaseError("update", str(e))

    db.refresh(book)
    logger.info(f"Book updated: {book.title}")
    return book


def delete_book(db: Session, book_id: int) -> None:
    with book_locks.hold(book_id):
        try:
            book = _get_any_book(db, book_id)
            book.is_active = False
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise DatabaseError("delete", str(e))
    logger.info(f"Book soft deleted: {book.title}")
