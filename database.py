#!/usr/bin/env python3
"""
Database models and configuration for the campus portal.
Handles users, the theme catalog and per-student theme permissions.

Every helper takes a SQLAlchemy session as its first argument so callers
control the session lifecycle.  Single-row misses raise
:class:`~campus.errors.NotFoundError`; any SQLAlchemy failure is logged and
re-raised as :class:`~campus.errors.StorageError`.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Set

from sqlalchemy import create_engine, Column, Integer, String, DateTime, Text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

import portal
from campus.errors import NotFoundError, StorageError
from campus.theme_data import ThemePermissionData

logger = logging.getLogger('campus.database')

SessionLocal = sessionmaker(autoflush=False)
engine = None
DATABASE_URL = None
Base = declarative_base()

# Theme type tag granted to every student by the default bootstrap
DEFAULT_THEME_TYPE = 'all'


class User(Base):
    """Portal account keyed by student ID."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    student_id = Column(String(32), unique=True, index=True, nullable=False)
    username = Column(String(255), nullable=True)
    library_password = Column(String(255), nullable=True)
    role = Column(String(20), default='student')  # 'admin' or 'student'
    created_at = Column(DateTime, default=datetime.utcnow)


class Theme(Base):
    """Visual theme a student can select."""
    __tablename__ = "themes"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, index=True)  # 'all' = default theme
    theme_config = Column(Text, nullable=True)  # JSON blob (colors, images)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'theme_config': self.theme_config,
        }


class ThemePermission(Base):
    """Themes a student may select, plus the one currently selected."""
    __tablename__ = "theme_permissions"

    id = Column(Integer, primary_key=True)
    student_id = Column(String(32), unique=True, index=True, nullable=False)
    current_theme_id = Column(Integer, nullable=False)
    theme_permission = Column(Text, nullable=False)  # {"theme_ids": [...]}
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def get_data(self) -> ThemePermissionData:
        """Decode the stored payload (raises DecodeError when malformed)."""
        return ThemePermissionData.from_json(self.theme_permission)

    def set_data(self, data: ThemePermissionData) -> None:
        self.theme_permission = data.to_json()


def configure_engine(database_url: str):
    """(Re)bind the module engine and ``SessionLocal`` to *database_url*."""
    global engine, DATABASE_URL
    DATABASE_URL = database_url
    engine = create_engine(database_url, echo=False, pool_pre_ping=True)
    SessionLocal.configure(bind=engine)
    return engine


# database_url comes from config.json, DATABASE_URL or .env (see portal.load_config)
configure_engine(portal.load_config()['database_url'])


def init_db(bind=None) -> bool:
    """Initialize database tables."""
    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database tables initialized successfully")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {e}")
        return False


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def get_user_by_student_id(db, student_id: str):
    """Return the User with *student_id*, or ``None``."""
    try:
        return db.query(User).filter(User.student_id == student_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error getting user {student_id}: {e}")
        raise StorageError(str(e)) from e


def find_existing_student_ids(db, student_ids: Iterable[str]) -> Set[str]:
    """Return the subset of *student_ids* that belong to known users."""
    student_ids = list(student_ids)
    if not student_ids:
        return set()
    try:
        rows = db.query(User.student_id).filter(User.student_id.in_(student_ids)).all()
        return {row.student_id for row in rows}
    except SQLAlchemyError as e:
        logger.error(f"Error looking up student IDs: {e}")
        raise StorageError(str(e)) from e


def get_all_student_ids(db) -> List[str]:
    """Return every known student ID in primary-key order."""
    try:
        rows = db.query(User.student_id).order_by(User.id).all()
        return [row.student_id for row in rows]
    except SQLAlchemyError as e:
        logger.error(f"Error listing student IDs: {e}")
        raise StorageError(str(e)) from e


# ---------------------------------------------------------------------------
# Theme permissions
# ---------------------------------------------------------------------------

def get_theme_permissions(db, student_ids: Iterable[str]) -> List[ThemePermission]:
    """Return the permission rows for *student_ids* (missing ones are skipped)."""
    student_ids = list(student_ids)
    if not student_ids:
        return []
    try:
        return db.query(ThemePermission).filter(
            ThemePermission.student_id.in_(student_ids)
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"Error loading theme permissions: {e}")
        raise StorageError(str(e)) from e


def get_theme_permission(db, student_id: str) -> ThemePermission:
    """Return the permission row for *student_id*.

    Raises:
        NotFoundError: No row exists for *student_id*.
        StorageError:  The query failed.
    """
    try:
        permission = db.query(ThemePermission).filter(
            ThemePermission.student_id == student_id
        ).first()
    except SQLAlchemyError as e:
        logger.error(f"Error getting theme permission for {student_id}: {e}")
        raise StorageError(str(e)) from e
    if permission is None:
        raise NotFoundError(f"No theme permission for student {student_id}")
    return permission


def save_theme_permissions(db, permissions: List[ThemePermission]) -> None:
    """Insert or update *permissions* and commit them as one write."""
    try:
        db.add_all(permissions)
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Error saving {len(permissions)} theme permissions: {e}")
        db.rollback()
        raise StorageError(str(e)) from e


def create_theme_permission(db, permission: ThemePermission) -> ThemePermission:
    """Insert a single permission row."""
    save_theme_permissions(db, [permission])
    return permission


def update_current_theme_id(db, student_id: str, theme_id: int) -> None:
    """Set only the ``current_theme_id`` column for *student_id*."""
    try:
        db.query(ThemePermission).filter(
            ThemePermission.student_id == student_id
        ).update({ThemePermission.current_theme_id: theme_id}, synchronize_session='fetch')
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Error updating current theme for {student_id}: {e}")
        db.rollback()
        raise StorageError(str(e)) from e


def delete_theme_permission(db, student_id: str) -> int:
    """Delete the permission row for *student_id*.

    Returns:
        Number of rows removed (0 when there was none).
    """
    try:
        deleted = db.query(ThemePermission).filter(
            ThemePermission.student_id == student_id
        ).delete(synchronize_session='fetch')
        db.commit()
        return deleted
    except SQLAlchemyError as e:
        logger.error(f"Error deleting theme permission for {student_id}: {e}")
        db.rollback()
        raise StorageError(str(e)) from e


# ---------------------------------------------------------------------------
# Theme catalog
# ---------------------------------------------------------------------------

def get_themes_by_ids(db, theme_ids: Iterable[int]) -> List[Theme]:
    """Return the themes whose id is in *theme_ids*, ordered by id."""
    theme_ids = list(theme_ids)
    if not theme_ids:
        return []
    try:
        return db.query(Theme).filter(Theme.id.in_(theme_ids)).order_by(Theme.id).all()
    except SQLAlchemyError as e:
        logger.error(f"Error loading themes: {e}")
        raise StorageError(str(e)) from e


def get_themes_by_type(db, theme_type: str) -> List[Theme]:
    """Return every theme tagged *theme_type*, ordered by id."""
    try:
        return db.query(Theme).filter(Theme.type == theme_type).order_by(Theme.id).all()
    except SQLAlchemyError as e:
        logger.error(f"Error loading themes of type {theme_type}: {e}")
        raise StorageError(str(e)) from e


def get_all_themes(db) -> List[Theme]:
    try:
        return db.query(Theme).order_by(Theme.id).all()
    except SQLAlchemyError as e:
        logger.error(f"Error listing themes: {e}")
        raise StorageError(str(e)) from e


def create_theme(db, name: str, theme_type: str, theme_config: str = None) -> Theme:
    """Insert a new catalog entry and return it."""
    theme = Theme(name=name, type=theme_type, theme_config=theme_config)
    try:
        db.add(theme)
        db.commit()
        db.refresh(theme)
        logger.info(f"Created theme {theme.id} ({name}, type={theme_type})")
        return theme
    except SQLAlchemyError as e:
        logger.error(f"Error creating theme {name}: {e}")
        db.rollback()
        raise StorageError(str(e)) from e


def delete_theme(db, theme_id: int) -> None:
    """Delete the catalog entry *theme_id*.

    Raises:
        NotFoundError: No theme has that id.
    """
    try:
        deleted = db.query(Theme).filter(Theme.id == theme_id).delete(synchronize_session='fetch')
        db.commit()
    except SQLAlchemyError as e:
        logger.error(f"Error deleting theme {theme_id}: {e}")
        db.rollback()
        raise StorageError(str(e)) from e
    if not deleted:
        raise NotFoundError(f"Theme {theme_id} not found")
