from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from paperworth.config import get_settings

DATABASE_URL = get_settings().database_url

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # Request handlers run on a thread pool.
    connect_args = {"check_same_thread": False}

Base = declarative_base()
engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_tables():
    # Import every ORM module so its tables are registered on Base.metadata.
    from paperworth.data.repositories import (  # noqa: F401
        budget_repository,
        points_repository,
        promotion_repository,
        receipt_repository,
        reward_repository,
        user_repository,
    )

    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
