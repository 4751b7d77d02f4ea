#!/usr/bin/env python3
"""
Database models and configuration for rePINGO.
Holds the games catalog and the "last selected game" singleton.
"""

import os
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, Column, Integer, String, Boolean, BigInteger, Text, ForeignKey
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger('repingo.database')

# Database URL - SQLite by default, set DATABASE_URL for PostgreSQL/MySQL
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///repingo.db')

Base = declarative_base()


class Game(Base):
    """A catalog entry."""
    __tablename__ = "games"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    max_players = Column(Integer, nullable=False, default=4)
    available_on_hydra = Column(Boolean, nullable=False, default=False)
    image_url = Column(Text, nullable=True)
    added_by = Column(String(255), nullable=False)
    played = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(BigInteger, nullable=False)  # epoch milliseconds

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'max_players': self.max_players,
            'available_on_hydra': bool(self.available_on_hydra),
            'image_url': self.image_url or '',
            'added_by': self.added_by,
            'played': bool(self.played),
            'created_at': self.created_at,
        }


class SelectedGame(Base):
    """The most recently drawn game. Only one row is ever kept."""
    __tablename__ = "selected_game"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    selected_at = Column(BigInteger, nullable=False)


def create_session_factory(database_url: str = DATABASE_URL):
    """Create an engine and a session factory for *database_url*.

    In-memory SQLite URLs share one connection so every session sees the
    same database.

    Returns:
        ``(engine, SessionLocal)``
    """
    kwargs = {'echo': False}
    if database_url.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
        if database_url in ('sqlite://', 'sqlite:///:memory:'):
            kwargs['poolclass'] = StaticPool
    engine = create_engine(database_url, **kwargs)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(SessionLocal):
    """Yield a session, committing on success and rolling back on error."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine):
    """Initialize database tables."""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables initialized successfully")
        return True
    except Exception as e:
        logger.error("Failed to initialize database: %s", e)
        return False
