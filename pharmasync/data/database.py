"""
Database connection and session management.
Uses SQLAlchemy; Postgres with pgvector in production, SQLite in tests.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from pharmasync.utils.logger import get_logger

logger = get_logger("data.database")

# Base class for all our database models
Base = declarative_base()


# Similarity functions. Cosine distance via pgvector's <=> operator;
# similarity = 1 - distance.
MATCH_PRODUCTS_SQL = """
CREATE OR REPLACE FUNCTION match_products(
  query_embedding VECTOR({dims}),
  match_threshold FLOAT DEFAULT 0.5,
  match_count INT DEFAULT 10,
  filter_category VARCHAR DEFAULT NULL
)
RETURNS TABLE (id VARCHAR, similarity FLOAT)
LANGUAGE SQL STABLE
AS $$
  SELECT p.id, 1 - (p.embedding <=> query_embedding) AS similarity
  FROM products p
  WHERE p.embedding IS NOT NULL
    AND (1 - (p.embedding <=> query_embedding)) > match_threshold
    AND (filter_category IS NULL OR p.category = filter_category)
  ORDER BY p.embedding <=> query_embedding
  LIMIT match_count;
$$;
"""

MATCH_PRODUCTS_IN_SQL = """
CREATE OR REPLACE FUNCTION match_products_in(
  query_embedding VECTOR({dims}),
  match_threshold FLOAT,
  match_count INT,
  filter_category VARCHAR,
  candidate_ids VARCHAR[]
)
RETURNS TABLE (id VARCHAR, similarity FLOAT)
LANGUAGE SQL STABLE
AS $$
  SELECT p.id, 1 - (p.embedding <=> query_embedding) AS similarity
  FROM products p
  WHERE p.embedding IS NOT NULL
    AND p.id = ANY(candidate_ids)
    AND (1 - (p.embedding <=> query_embedding)) > match_threshold
    AND (filter_category IS NULL OR p.category = filter_category)
  ORDER BY p.embedding <=> query_embedding
  LIMIT match_count;
$$;
"""


def make_engine(database_url: str) -> Engine:
    """Create an engine; SQLite URLs get thread-safe connect args."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(database_url, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Transactional scope: commit on success, rollback on error."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine, embedding_dimensions: int = 1536) -> None:
    """
    Create tables, and on Postgres the vector extension plus the
    match_products / match_products_in similarity functions.
    """
    # Import models so they register with Base.metadata
    from pharmasync.data import models  # noqa: F401

    is_postgres = engine.dialect.name == "postgresql"
    if is_postgres:
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))

    Base.metadata.create_all(bind=engine)

    if is_postgres:
        with engine.begin() as conn:
            conn.execute(text(MATCH_PRODUCTS_SQL.format(dims=embedding_dimensions)))
            conn.execute(text(MATCH_PRODUCTS_IN_SQL.format(dims=embedding_dimensions)))
        logger.info("Installed similarity functions (dims=%d)", embedding_dimensions)
    else:
        logger.info("Non-Postgres backend (%s): similarity search unavailable", engine.dialect.name)
