import os

# Must be set before the library modules read their settings
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SEED_DATA", "False")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from library import crud
from library.auth import create_access_token
from library.main import app, get_db
from library.models import Base, UserRole
from library.schemas import BookCreate, UserCreate
from library.storage import build_engine

SQLALCHEMY_DATABASE_URL = os.getenv("TEST_DB_URL", "sqlite:///./test.db")

engine = build_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_session):
    """Independent sessions on the test database, e.g. one per thread."""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def client(db_session):
    app.state.testing = True

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.testing = False


@pytest.fixture(scope="function")
def test_user(db_session):
    user_data = UserCreate(
        email="test@example.com",
        password="testpassword",
        first_name="Test",
        last_name="User",
    )
    return crud.create_user_record(db_session, user_data)


@pytest.fixture(scope="function")
def other_user(db_session):
    user_data = UserCreate(
        email="other@example.com",
        password="otherpassword",
        first_name="Other",
        last_name="Reader",
    )
    return crud.create_user_record(db_session, user_data)


@pytest.fixture(scope="function")
def test_admin(db_session):
    admin_data = UserCreate(
        email="admin@example.com",
        password="adminpassword",
        first_name="Admin",
        last_name="User",
    )
    return crud.create_user_record(db_session, admin_data, role=UserRole.ADMIN)


@pytest.fixture(scope="function")
def user_headers(test_user):
    return {"Authorization": f"Bearer {create_access_token(test_user)}"}


@pytest.fixture(scope="function")
def admin_headers(test_admin):
    return {"Authorization": f"Bearer {create_access_token(test_admin)}"}


@pytest.fixture(scope="function")
def test_book(db_session):
    book_data = BookCreate(
        title="The Great Gatsby",
        author="F. Scott Fitzgerald",
        isbn="978-0-7432-7356-5",
        publisher="Scribner",
        genre="Fiction",
        published_year=1925,
        description="A classic American novel set in the Jazz Age",
        total_copies=3,
    )
    return crud.create_book(db_session, book_data)


@pytest.fixture(scope="function")
def single_copy_book(db_session):
    book_data = BookCreate(
        title="Clean Code",
        author="Robert C. Martin",
        isbn="978-0-13-235088-4",
        total_copies=1,
    )
    return crud.create_book(db_session, book_data)
