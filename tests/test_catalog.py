import pytest
from sqlalchemy.orm import Session

from library import borrowing, crud
from library.exceptions import (
    BookNotFoundError,
    InsufficientCopiesError,
    IsbnAlreadyExistsError,
)
from library.models import Book, BorrowedBook, BorrowStatus
from library.schemas import BookCreate, BookQuery, BookUpdate


def _add_book(db: Session, title: str, author: str, **extra) -> Book:
    return crud.create_book(db, BookCreate(title=title, author=author, **extra))


def test_create_book_defaults_to_one_copy(db_session: Session):
    book = _add_book(db_session, "Dune", "Frank Herbert")

    assert book.total_copies == 1
    assert book.available_copies == 1
    assert book.is_active is True
    assert book.isbn is None


def test_create_book_initialises_available_copies(db_session: Session, test_book):
    assert test_book.available_copies == test_book.total_copies == 3


def test_create_book_rejects_duplicate_isbn(db_session: Session, test_book):
    with pytest.raises(IsbnAlreadyExistsError):
        _add_book(db_session, "Another", "Someone", isbn=test_book.isbn)


def test_duplicate_isbn_checked_against_inactive_books(db_session: Session, test_book):
    crud.delete_book(db_session, test_book.id)

    with pytest.raises(IsbnAlreadyExistsError):
        _add_book(db_session, "Another", "Someone", isbn=test_book.isbn)


def test_books_without_isbn_do_not_conflict(db_session: Session):
    _add_book(db_session, "Untitled I", "Anonymous")
    _add_book(db_session, "Untitled II", "Anonymous")

    assert db_session.query(Book).count() == 2


def test_get_book_hides_soft_deleted(db_session: Session, test_book):
    assert crud.get_book(db_session, test_book.id).id == test_book.id

    crud.delete_book(db_session, test_book.id)

    with pytest.raises(BookNotFoundError):
        crud.get_book(db_session, test_book.id)


def test_get_missing_book(db_session: Session):
    with pytest.raises(BookNotFoundError):
        crud.get_book(db_session, 999)


def test_delete_keeps_counters_and_loans(db_session: Session, test_user, test_book):
    borrowing.borrow_book(db_session, test_book.id, test_user.id)

    crud.delete_book(db_session, test_book.id)

    book = db_session.get(Book, test_book.id)
    assert book.is_active is False
    assert book.available_copies == 2
    loan = db_session.query(BorrowedBook).one()
    assert loan.status == BorrowStatus.BORROWED
    assert loan.book_id == test_book.id


def test_delete_missing_book(db_session: Session):
    with pytest.raises(BookNotFoundError):
        crud.delete_book(db_session, 999)


def test_update_changes_only_sent_fields(db_session: Session, test_book):
    updated = crud.update_book(
        db_session, test_book.id, BookUpdate(title="The Great Gatsby (Annotated)")
    )

    assert updated.title == "The Great Gatsby (Annotated)"
    assert updated.author == "F. Scott Fitzgerald"
    assert updated.publisher == "Scribner"
    assert updated.total_copies == 3


def test_update_works_on_inactive_books(db_session: Session, test_book):
    crud.delete_book(db_session, test_book.id)

    restored = crud.update_book(db_session, test_book.id, BookUpdate(is_active=True))

    assert restored.is_active is True
    assert crud.get_book(db_session, test_book.id).id == test_book.id


def test_update_missing_book(db_session: Session):
    with pytest.raises(BookNotFoundError):
        crud.update_book(db_session, 999, BookUpdate(title="Nothing"))


def test_update_isbn_uniqueness(db_session: Session, test_book):
    other = _add_book(db_session, "Other", "Author", isbn="111")

    with pytest.raises(IsbnAlreadyExistsError):
        crud.update_book(db_session, other.id, BookUpdate(isbn=test_book.isbn))

    # Re-sending a book's own ISBN is not a conflict
    same = crud.update_book(db_session, test_book.id, BookUpdate(isbn=test_book.isbn))
    assert same.isbn == test_book.isbn


def test_update_total_copies_keeps_loans_counted(
    db_session: Session, test_user, test_book
):
    borrowing.borrow_book(db_session, test_book.id, test_user.id)

    grown = crud.update_book(db_session, test_book.id, BookUpdate(total_copies=5))
    assert grown.total_copies == 5
    assert grown.available_copies == 4

    shrunk = crud.update_book(db_session, test_book.id, BookUpdate(total_copies=1))
    assert shrunk.total_copies == 1
    assert shrunk.available_copies == 0


def test_update_total_copies_below_outstanding_loans(
    db_session: Session, test_user, other_user, test_book
):
    borrowing.borrow_book(db_session, test_book.id, test_user.id)
    borrowing.borrow_book(db_session, test_book.id, other_user.id)

    with pytest.raises(InsufficientCopiesError):
        crud.update_book(db_session, test_book.id, BookUpdate(total_copies=1))

    book = db_session.get(Book, test_book.id)
    db_session.refresh(book)
    assert book.total_copies == 3
    assert book.available_copies == 1


def test_list_books_paginates_active_books(db_session: Session):
    for i in range(12):
        _add_book(db_session, f"Book {i:02d}", "Author")
    hidden = _add_book(db_session, "Hidden", "Author")
    crud.delete_book(db_session, hidden.id)

    first = crud.list_books(db_session, BookQuery(sort_by="title", sort_order="ASC"))
    assert first.total == 12
    assert first.limit == 10
    assert first.total_pages == 2
    assert [b.title for b in first.data][:2] == ["Book 00", "Book 01"]

    second = crud.list_books(
        db_session, BookQuery(page=2, sort_by="title", sort_order="ASC")
    )
    assert [b.title for b in second.data] == ["Book 10", "Book 11"]


def test_list_books_clamps_limit(db_session: Session, test_book):
    page = crud.list_books(db_session, BookQuery(limit=500))

    assert page.limit == 100
    assert page.total == 1
    assert page.total_pages == 1


def test_list_books_default_sort_is_newest_first(db_session: Session):
    _add_book(db_session, "Older", "Author")
    _add_book(db_session, "Newer", "Author")

    page = crud.list_books(db_session, BookQuery())

    assert [b.title for b in page.data] == ["Newer", "Older"]


def test_search_matches_title_case_insensitively(db_session: Session, test_book):
    _add_book(db_session, "Dune", "Frank Herbert")

    page = crud.list_books(db_session, BookQuery(search="GATSBY"))

    assert [b.title for b in page.data] == ["The Great Gatsby"]


def test_search_falls_back_to_author(db_session: Session, test_book):
    _add_book(db_session, "Collected Stories", "Gatsby Jones")

    page = crud.list_books(db_session, BookQuery(search="jones"))
    assert [b.title for b in page.data] == ["Collected Stories"]

    # Title matches win: authors are not merged in
    page = crud.list_books(db_session, BookQuery(search="gatsby"))
    assert [b.title for b in page.data] == ["The Great Gatsby"]
    assert page.total == 1


def test_search_author_fallback_only(db_session: Session):
    _add_book(db_session, "Collected Stories", "Gatsby Jones")
    _add_book(db_session, "Dune", "Frank Herbert")

    page = crud.list_books(db_session, BookQuery(search="gatsby"))

    assert page.total == 1
    assert page.data[0].author == "Gatsby Jones"


def test_short_search_terms_are_ignored(db_session: Session, test_book):
    _add_book(db_session, "Dune", "Frank Herbert")

    page = crud.list_books(db_session, BookQuery(search="x"))

    assert page.total == 2


def test_search_with_no_matches(db_session: Session, test_book):
    page = crud.list_books(db_session, BookQuery(search="zzz"))

    assert page.total == 0
    assert page.data == []
    assert page.total_pages == 0


def test_search_treats_wildcards_literally(db_session: Session):
    _add_book(db_session, "100% Wolf", "Jayne Lyons")
    _add_book(db_session, "1000 Words", "Jerry Jenkins")
    _add_book(db_session, "snake_case Handbook", "Guido Style")
    _add_book(db_session, "Here Comes Trouble", "Board Games")

    page = crud.list_books(db_session, BookQuery(search="0%"))
    assert [b.title for b in page.data] == ["100% Wolf"]

    page = crud.list_books(db_session, BookQuery(search="e_c"))
    assert [b.title for b in page.data] == ["snake_case Handbook"]

    page = crud.list_books(db_session, BookQuery(search="%%"))
    assert page.total == 0
