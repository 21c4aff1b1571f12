from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from library.models import Book, BorrowedBook, BorrowStatus, User, UserRole, utcnow


def test_user_model(db_session: Session, test_user: User):
    assert test_user.email == "test@example.com"
    assert test_user.first_name == "Test"
    assert test_user.last_name == "User"
    assert test_user.hashed_password != "testpassword"
    assert test_user.role == UserRole.USER
    assert test_user.is_active is True


def test_book_model(db_session: Session, test_book: Book):
    assert test_book.title == "The Great Gatsby"
    assert test_book.total_copies == 3
    assert test_book.available_copies == 3
    assert test_book.is_active is True
    assert test_book.is_available is True


def test_book_unavailable_when_inactive_or_out_of_copies(
    db_session: Session, test_book: Book
):
    test_book.available_copies = 0
    assert test_book.is_available is False

    test_book.available_copies = 2
    test_book.is_active = False
    assert test_book.is_available is False


def test_is_available_in_queries(db_session: Session, test_book: Book):
    test_book.available_copies = 0
    db_session.commit()

    assert db_session.query(Book).filter(Book.is_available).count() == 0


def _loan(user, book, **overrides):
    borrowed_at = overrides.pop("borrowed_at", utcnow())
    fields = {
        "user_id": user.id,
        "book_id": book.id,
        "borrowed_at": borrowed_at,
        "due_date": borrowed_at + timedelta(days=14),
    }
    fields.update(overrides)
    return BorrowedBook(**fields)


def test_borrow_model_defaults(db_session: Session, test_user: User, test_book: Book):
    borrow = _loan(test_user, test_book)
    db_session.add(borrow)
    db_session.commit()
    db_session.refresh(borrow)

    assert borrow.status == BorrowStatus.BORROWED
    assert borrow.returned_at is None
    assert borrow.is_overdue is False
    assert borrow.book.id == test_book.id
    assert borrow.user.id == test_user.id


def test_overdue_is_derived(db_session: Session, test_user: User, test_book: Book):
    borrow = _loan(test_user, test_book, borrowed_at=utcnow() - timedelta(days=20))
    db_session.add(borrow)
    db_session.commit()

    assert borrow.is_overdue is True
    assert borrow.status == BorrowStatus.BORROWED

    borrow.status = BorrowStatus.RETURNED
    assert borrow.is_overdue is False


def test_one_open_loan_per_user_and_book(
    db_session: Session, test_user: User, test_book: Book
):
    db_session.add(_loan(test_user, test_book))
    db_session.commit()

    db_session.add(_loan(test_user, test_book))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_returned_loans_do_not_block_new_ones(
    db_session: Session, test_user: User, test_book: Book
):
    db_session.add(_loan(test_user, test_book, status=BorrowStatus.RETURNED))
    db_session.add(_loan(test_user, test_book, status=BorrowStatus.RETURNED))
    db_session.add(_loan(test_user, test_book))
    db_session.commit()

    db_session.refresh(test_user)
    db_session.refresh(test_book)
    assert len(test_user.borrows) == 3
    assert len(test_book.borrows) == 3
