"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling for server databases (SQLite keeps its default pool)
- Test database support
- Table definitions for the activity ledger and progress records
"""
from typing import Optional
from sqlalchemy import (
    create_engine,
    MetaData,
    Table,
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Boolean,
    Text,
    Index,
    PrimaryKeyConstraint,
    text,
    false,
)
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import logging
import os

from scorekeeper.core.config import settings


metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """TEST_DATABASE_URL wins when set; None means no database (memory store)."""
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """Build the engine and session factory for database_url (or the configured URL)."""
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError("DATABASE_URL is not configured")

    if url.startswith("sqlite"):
        _engine = create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    else:
        _engine = create_engine(
            url,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,
        )

    _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)

    return _engine


def get_engine():
    """Get the current SQLAlchemy engine."""
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


def dispose_engine() -> None:
    """Drop the current engine so the next call re-reads the URL (tests)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def create_all_tables():
    """Create any missing tables. Existing tables are left alone."""
    metadata.create_all(bind=get_engine())


def check_connection() -> bool:
    """Return True if a trivial query succeeds against the configured database."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logging.getLogger("scorekeeper").warning("Database connection check failed: %s", e)
        return False


# One row per (user, calendar day); key is "{user_id}_{YYYY-MM-DD}"
daily_activity = Table(
    'daily_activity',
    metadata,
    Column('activity_key', String(200), primary_key=True),
    Column('user_id', String(100), nullable=False),
    Column('activity_date', Date, nullable=False),
    Column('morning_completed', Boolean, nullable=False, server_default=false()),
    Column('evening_completed', Boolean, nullable=False, server_default=false()),
    Column('sale_count', Integer, nullable=False, server_default=text('0')),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_daily_activity_user_date', 'user_id', 'activity_date', unique=True),
)

sales = Table(
    'sales',
    metadata,
    Column('sale_id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False),
    Column('sale_date', Date, nullable=False),
    Column('policy_type', String(50), nullable=False),
    Column('customer_name', Text, nullable=True),
    Column('points', Integer, nullable=False, server_default=text('0')),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('idx_sales_user_date', 'user_id', 'sale_date'),
)

# Lifetime (season-independent) progress
user_progress = Table(
    'user_progress',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('full_streak', Integer, nullable=False, server_default=text('0')),
    Column('participation_streak', Integer, nullable=False, server_default=text('0')),
    Column('lifetime_xp', Integer, nullable=False, server_default=text('0')),
    Column('last_streak_update_date', Date, nullable=True),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

season_progress = Table(
    'season_progress',
    metadata,
    Column('user_id', String(100), nullable=False),
    Column('season_id', String(7), nullable=False),
    Column('season_points', Integer, nullable=False, server_default=text('0')),
    Column('peak_sr', Integer, nullable=False, server_default=text('0')),
    # per-season activity counters (models.progress.SEASON_COUNTERS)
    Column('login_days', Integer, nullable=False, server_default=text('0')),
    Column('intentions_completed', Integer, nullable=False, server_default=text('0')),
    Column('wraps_completed', Integer, nullable=False, server_default=text('0')),
    Column('policies_house', Integer, nullable=False, server_default=text('0')),
    Column('policies_car', Integer, nullable=False, server_default=text('0')),
    Column('policies_condo', Integer, nullable=False, server_default=text('0')),
    Column('policies_life', Integer, nullable=False, server_default=text('0')),
    Column('policies_other', Integer, nullable=False, server_default=text('0')),
    Column('cheers_sent', Integer, nullable=False, server_default=text('0')),
    Column('cheers_received', Integer, nullable=False, server_default=text('0')),
    PrimaryKeyConstraint('user_id', 'season_id'),
    Index('idx_season_progress_standings', 'season_id', 'season_points'),
)

# Final standing per (user, season), written once when the season is closed
season_results = Table(
    'season_results',
    metadata,
    Column('user_id', String(100), nullable=False),
    Column('season_id', String(7), nullable=False),
    Column('season_points', Integer, nullable=False),
    Column('sr', Integer, nullable=False),
    Column('rank', String(32), nullable=False),
    Column('division', Integer, nullable=False),
    Column('peak_sr', Integer, nullable=False, server_default=text('0')),
    Column('ended_at', DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint('user_id', 'season_id'),
)

daily_points = Table(
    'daily_points',
    metadata,
    Column('user_id', String(100), nullable=False),
    Column('points_date', Date, nullable=False),
    Column('points', Integer, nullable=False, server_default=text('0')),
    PrimaryKeyConstraint('user_id', 'points_date'),
)

# PK on (user_id, milestone_key) rejects concurrent duplicate awards
achieved_milestones = Table(
    'achieved_milestones',
    metadata,
    Column('user_id', String(100), nullable=False),
    Column('milestone_key', String(64), nullable=False),
    Column('streak_type', String(32), nullable=False),
    Column('threshold', Integer, nullable=False),
    Column('achievement_id', String(64), nullable=False),
    Column('xp', Integer, nullable=False),
    Column('awarded_at', DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint('user_id', 'milestone_key'),
)

daily_activity_awards = Table(
    'daily_activity_awards',
    metadata,
    Column('user_id', String(100), nullable=False),
    Column('award_date', Date, nullable=False),
    Column('activity_key', String(200), nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint('user_id', 'award_date', 'activity_key'),
)

goal_bonuses = Table(
    'goal_bonuses',
    metadata,
    Column('user_id', String(100), nullable=False),
    Column('season_id', String(7), nullable=False),
    Column('bonus_type', String(32), nullable=False),
    Column('activated_at', DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint('user_id', 'season_id', 'bonus_type'),
)

members = Table(
    'members',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('name', Text, nullable=True),
    Column('email', Text, nullable=True),
    Column('team_id', String(100), nullable=True, index=True),
    Column('team_role', String(32), nullable=True),
    Column('weekly_goal', Integer, nullable=True),
    Column('monthly_goal', Integer, nullable=True),
    Column('member_since', DateTime(timezone=True), nullable=True),
)
