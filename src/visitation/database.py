"""
Database connection/session configuration for the FastAPI app.
Uses SQLAlchemy with PostgreSQL; DATABASE_URL may point anywhere else.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from . import config


# PUBLIC_INTERFACE
def get_postgres_url():
    """
    Constructs PostgreSQL connection string from environment variables.
    Requires:
        - POSTGRES_USER
        - POSTGRES_PASSWORD
        - POSTGRES_DB
        - POSTGRES_HOST
        - POSTGRES_PORT
    """
    return URL.create(
        drivername="postgresql+psycopg2",
        username=config.POSTGRES_USER,
        password=config.POSTGRES_PASSWORD,
        host=config.POSTGRES_HOST,
        port=config.POSTGRES_PORT,
        database=config.POSTGRES_DB,
    ).render_as_string(hide_password=False)


# PUBLIC_INTERFACE
def get_database_url():
    """DATABASE_URL if set, otherwise the PostgreSQL URL built from POSTGRES_*."""
    return config.DATABASE_URL or get_postgres_url()


def make_engine(url):
    """Engine for `url`; in-memory SQLite shares one connection across threads."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        if parsed.database in (None, "", ":memory:"):
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_recycle=3600)


SQLALCHEMY_DATABASE_URL = get_database_url()

engine = make_engine(SQLALCHEMY_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# PUBLIC_INTERFACE
def get_db():
    """
    Yields a new database session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
