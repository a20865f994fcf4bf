"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support
- Table definitions for users, sites, billing profiles and usage buckets
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, BigInteger, Integer, String, DateTime, Text, Index, ForeignKey, UniqueConstraint
from sqlalchemy.pool import QueuePool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import func
import logging
import os

from seoteric.core.config import settings


logger = logging.getLogger(__name__)

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # Local/test databases: requests are served from worker threads, and
        # concurrent writers wait on the file lock instead of failing
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
        )
    else:
        # Create engine with connection pooling
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Dispose the current engine (tests switch databases between cases)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Commits on success, rolls back on any exception so a failed unit of
    work never leaves partial state behind.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except (SQLAlchemyError, ValueError) as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Users table (identity is owned by the auth provider; we keep id + creation time)
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_users_created_at', 'created_at'),
)

# Sites owned by a user (only the per-user count matters for entitlements)
sites = Table(
    'sites',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(100), ForeignKey('app_users.user_id'), nullable=False),
    Column('name', Text, nullable=False),
    Column('domain', String(255), nullable=False),
    Column('country', String(100), nullable=False, server_default=''),
    Column('industry', String(100), nullable=False, server_default=''),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_sites_user_id', 'user_id'),
    Index('idx_sites_domain', 'domain'),
)

# Recommendations per site (open/in_progress count toward the active limit)
recommendations = Table(
    'recommendations',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('site_id', String(36), ForeignKey('sites.id'), nullable=False),
    Column('title', Text, nullable=False),
    Column('category', String(50), nullable=False),
    Column('priority', String(50), nullable=False),
    Column('status', String(50), nullable=False, server_default='open'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Composite index for active-recommendation counting
    Index('idx_recommendations_site_status', 'site_id', 'status'),
)

# Billing profiles: one free-tier anchor per user
billing_profiles = Table(
    'billing_profiles',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('last_paid_anchor_ms', BigInteger, nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    UniqueConstraint('user_id', name='uq_billing_profiles_user'),
)

# Usage buckets: one row per (user, cycle start)
usage_buckets = Table(
    'usage_buckets',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False),
    Column('cycle_start_ms', BigInteger, nullable=False),
    Column('cycle_end_ms', BigInteger, nullable=False),
    Column('messages_used', Integer, nullable=False, server_default='0'),
    Column('page_speed_reports_used', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    # The serialization unit for increments is exactly this key
    UniqueConstraint('user_id', 'cycle_start_ms', name='uq_usage_buckets_user_cycle'),
    Index('idx_usage_buckets_user', 'user_id'),
)
