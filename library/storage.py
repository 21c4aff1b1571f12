from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from library.config import settings
from library.models import Base


def build_engine(url: str):
    # SQLite connections are shared with the threadpool FastAPI runs sync routes in
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=engine):
    Base.metadata.create_all(bind=bind)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
