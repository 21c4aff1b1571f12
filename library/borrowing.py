"""Borrow and return transitions.

Every change to a book's ``available_copies`` made here happens while holding
that book's lock, through a conditional UPDATE, and in the same transaction as
the matching ledger write. Either both rows change or neither does.
"""
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from library import crud
from library.constants import DEFAULT_BORROW_DURATION_DAYS
from library.exceptions import (
    BookAlreadyBorrowedError,
    BookAlreadyReturnedError,
    BookNotAvailableError,
    BookNotFoundError,
    BorrowRecordNotFoundError,
    DatabaseError,
)
from library.locks import book_locks
from library.models import Book, BorrowedBook, BorrowStatus, utcnow

logger = logging.getLogger(__name__)


def _open_loan(db: Session, book_id: int, user_id: int) -> Optional[BorrowedBook]:
    return (
        db.query(BorrowedBook)
        .filter(
            BorrowedBook.book_id == book_id,
            BorrowedBook.user_id == user_id,
            BorrowedBook.status == BorrowStatus.BORROWED,
        )
        .first()
    )


def borrow_book(
    db: Session, book_id: int, user_id: int, notes: Optional[str] = None
) -> BorrowedBook:
    crud.get_user_by_id(db, user_id)

    with book_locks.hold(book_id):
        try:
            book = (
                crud.active_books(db)
                .populate_existing()
                .filter(Book.id == book_id)
                .first()
            )
            if book is None:
                raise BookNotFoundError(book_id)
            if not book.is_available:
                raise BookNotAvailableError(book_id)
            if _open_loan(db, book_id, user_id) is not None:
                raise BookAlreadyBorrowedError(book_id)

            borrowed_at = utcnow()
            due_date = borrowed_at + timedelta(days=DEFAULT_BORROW_DURATION_DAYS)

            claimed = (
                db.query(Book)
                .filter(Book.id == book_id, Book.is_available)
                .update(
                    {
                        Book.available_copies: Book.available_copies - 1,
                        Book.updated_at: borrowed_at,
                    },
                    synchronize_session=False,
                )
            )
            if claimed == 0:
                # Another process took the last copy between the check and the update
                db.rollback()
                raise BookNotAvailableError(book_id)

            record = BorrowedBook(
                user_id=user_id,
                book_id=book_id,
                status=BorrowStatus.BORROWED,
                borrowed_at=borrowed_at,
                due_date=due_date,
                notes=notes,
            )
            db.add(record)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Open loan already recorded for book {book_id}: {e}")
            raise BookAlreadyBorrowedError(book_id)
        except SQLAlchemyError as e:
            db.rollback()
            raise DatabaseError("borrow", str(e))

    db.refresh(record)
    logger.info(f"Book borrowed: {record.book.title} by user {user_id}")
    return record


def return_book(db: Session, borrow_id: int, user_id: int) -> BorrowedBook:
    try:
        record = (
            db.query(BorrowedBook)
            .populate_existing()
            .filter(BorrowedBook.id == borrow_id, BorrowedBook.user_id == user_id)
            .first()
        )
    except SQLAlchemyError as e:
        raise DatabaseError("fetch", str(e))

    # Someone else's loan is reported exactly like a missing one
    if record is None:
        raise BorrowRecordNotFoundError(borrow_id)
    if record.status == BorrowStatus.RETURNED:
        raise BookAlreadyReturnedError(borrow_id)

    book_id = record.book_id
    with book_locks.hold(book_id):
        try:
            returned_at = utcnow()
            closed = (
                db.query(BorrowedBook)
                .filter(
                    BorrowedBook.id == borrow_id,
                    BorrowedBook.user_id == user_id,
                    BorrowedBook.status == BorrowStatus.BORROWED,
                )
                .update(
                    {
                        BorrowedBook.status: BorrowStatus.RETURNED,
                        BorrowedBook.returned_at: returned_at,
                        BorrowedBook.updated_at: returned_at,
                    },
                    synchronize_session=False,
                )
            )
            if closed == 0:
                db.rollback()
                raise BookAlreadyReturnedError(borrow_id)

            db.query(Book).filter(Book.id == book_id).update(
                {
                    Book.available_copies: Book.available_copies + 1,
                    Book.updated_at: returned_at,
                },
                synchronize_session=False,
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise DatabaseError("return", str(e))

    db.refresh(record)
    logger.info(f"Book returned: {record.book.title} by user {user_id}")
    return record


def get_borrowed_books(db: Session, user_id: int) -> List[BorrowedBook]:
    try:
        return (
            db.query(BorrowedBook)
            .options(selectinload(BorrowedBook.book))
            .filter(
                BorrowedBook.user_id == user_id,
                BorrowedBook.status == BorrowStatus.BORROWED,
            )
            .order_by(BorrowedBook.borrowed_at.desc(), BorrowedBook.id.desc())
            .all()
        )
    except SQLAlchemyError as e:
        raise DatabaseError("fetch", str(e))
