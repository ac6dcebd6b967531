from sqlalchemy import Enum, create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool, StaticPool

from .config import settings


def _make_engine():
    # SQLite (test / demo): a single shared connection, usable from the threadpool
    if settings.DB_URL.startswith("sqlite"):
        return create_engine(
            settings.DB_URL,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # Dev: no pool, the connection is closed right after each request
    if settings.APP_ENV.lower() != "prod":
        return create_engine(
            settings.DB_URL,
            future=True,
            pool_pre_ping=True,
            poolclass=NullPool,
        )

    # Prod: small pool, the auto-assign sweep runs in the same process
    return create_engine(
        settings.DB_URL,
        future=True,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=5,
        pool_recycle=1800,
    )


engine = _make_engine()

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()  # releases the connection


def str_enum(enum_cls):
    """Column type storing a ``str`` enum by value (lowercase, portable VARCHAR)."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=16,
        values_callable=lambda e: [m.value for m in e],
    )
