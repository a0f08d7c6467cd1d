from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from shop_assistant.core.config import settings


class Base(DeclarativeBase):
    pass


def engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    options = {"pool_pre_ping": True, "pool_recycle": 1800, "pool_size": 10, "max_overflow": 20}
    if database_url.startswith("mysql"):
        # Mall names and SKU titles carry CJK text and emoji.
        options["connect_args"] = {"charset": "utf8mb4", "connect_timeout": 60}
    return options


engine = create_engine(settings.database_url, **engine_options(settings.database_url))

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
