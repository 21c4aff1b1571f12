import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from library import crud, models, schemas
from library.config import settings
from library.exceptions import LibraryException

logger = logging.getLogger(__name__)

SAMPLE_BOOKS = [
    {
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "isbn": "978-0-7432-7356-5",
        "description": "A classic American novel set in the Jazz Age, exploring themes of wealth, love, idealism, and moral decay.",
        "genre": "Fiction",
        "published_year": 1925,
        "publisher": "Scribner",
        "total_copies": 3,
    },
    {
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "isbn": "978-0-06-112008-4",
        "description": "A gripping tale of racial injustice and childhood innocence in the American South.",
        "genre": "Fiction",
        "published_year": 1960,
        "publisher": "J.B. Lippincott & Co.",
        "total_copies": 2,
    },
    {
        "title": "1984",
        "author": "George Orwell",
        "isbn": "978-0-452-28423-4",
        "description": "A dystopian social science fiction novel about totalitarian control and surveillance.",
        "genre": "Science Fiction",
        "published_year": 1949,
        "publisher": "Secker & Warburg",
        "total_copies": 4,
    },
    {
        "title": "Pride and Prejudice",
        "author": "Jane Austen",
        "isbn": "978-0-14-143951-8",
        "description": "A romantic novel that critiques the British class system of the 19th century.",
        "genre": "Romance",
        "published_year": 1813,
        "publisher": "T. Egerton",
        "total_copies": 2,
    },
    {
        "title": "The Catcher in the Rye",
        "author": "J.D. Salinger",
        "isbn": "978-0-316-76948-0",
        "description": "A coming-of-age story about teenage rebellion and angst.",
        "genre": "Fiction",
        "published_year": 1951,
        "publisher": "Little, Brown and Company",
        "total_copies": 3,
    },
    {
        "title": "Fluent Python",
        "author": "Luciano Ramalho",
        "isbn": "978-1-492-05635-5",
        "description": "Clear, concise, and effective programming with idiomatic Python.",
        "genre": "Technology",
        "published_year": 2022,
        "publisher": "O'Reilly Media",
        "total_copies": 5,
    },
    {
        "title": "Clean Code",
        "author": "Robert C. Martin",
        "isbn": "978-0-13-235088-4",
        "description": "A handbook of agile software craftsmanship.",
        "genre": "Technology",
        "published_year": 2008,
        "publisher": "Prentice Hall",
        "total_copies": 4,
    },
    {
        "title": "The Art of War",
        "author": "Sun Tzu",
        "isbn": "978-1-59030-963-7",
        "description": "An ancient Chinese military treatise on strategy and tactics.",
        "genre": "Philosophy",
        "published_year": -500,
        "publisher": "Various",
        "total_copies": 2,
    },
]


def create_admin_user(db: Session):
    if crud.find_user_by_email(db, settings.admin_email) is not None:
        logger.info("Admin user already exists")
        return
    admin = schemas.UserCreate(
        email=settings.admin_email,
        first_name="System",
        last_name="Administrator",
        password=settings.admin_password,
    )
    crud.create_user_record(db, admin, role=models.UserRole.ADMIN)
    logger.info(f"Admin user created with email: {settings.admin_email}")


def create_sample_books(db: Session):
    if db.query(models.Book).count() > 0:
        logger.info("Sample books already exist")
        return
    # Inserted directly: some sample publication years predate the API's lower bound
    for book_data in SAMPLE_BOOKS:
        db.add(models.Book(**book_data, available_copies=book_data["total_copies"]))
    db.commit()
    logger.info(f"Created {len(SAMPLE_BOOKS)} sample books")


def seed_initial_data(db: Session):
    try:
        create_admin_user(db)
        create_sample_books(db)
        logger.info("Initial data seeding completed successfully")
    except (LibraryException, SQLAlchemyError, ValueError) as e:
        db.rollback()
        logger.error(f"Failed to seed initial data: {e}")
