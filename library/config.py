import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./library.db")

    # Security
    jwt_secret_key: str = os.getenv(
        "JWT_SECRET_KEY", "your-secret-key-change-this-in-production"
    )
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_expiration_minutes: int = int(os.getenv("JWT_EXPIRATION_MINUTES", "1440"))
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # OpenLibrary
    openlibrary_base_url: str = os.getenv(
        "OPENLIBRARY_API_BASE_URL", "https://openlibrary.org"
    )
    openlibrary_timeout: float = float(os.getenv("OPENLIBRARY_TIMEOUT", "10"))
    openlibrary_connect_timeout: float = float(
        os.getenv("OPENLIBRARY_CONNECT_TIMEOUT", "5")
    )

    # Borrowing
    book_lock_timeout: float = float(os.getenv("BOOK_LOCK_TIMEOUT", "10"))

    # Seeding
    seed_data: bool = _flag("SEED_DATA", "True")
    admin_email: str = os.getenv("ADMIN_EMAIL", "admin@library.com")
    admin_password: str = os.getenv("ADMIN_PASSWORD", "admin123")

    # Application
    debug: bool = _flag("DEBUG", "False")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))


settings = Settings()
