"""Business logic for the theme catalog."""
import json
from typing import List, Optional

from ..errors import ValidationError


class ThemeService:
    """Manages the catalog of selectable themes, delegating persistence to
    the ``database`` module's helper functions.

    All methods accept a *db* SQLAlchemy session as the first argument so
    that callers (Flask route handlers) control the session lifecycle.
    """

    def __init__(self, db_module) -> None:
        """
        Args:
            db_module: The imported ``database`` module (or any object that
                exposes ``get_all_themes``, ``create_theme`` and
                ``delete_theme``).
        """
        self._db = db_module

    def list_themes(self, db) -> list:
        """Return every theme in the catalog, ordered by id."""
        return self._db.get_all_themes(db)

    def create_theme(self, db, name: str, theme_type: str,
                     theme_config: Optional[dict] = None):
        """Add a theme to the catalog.

        Args:
            db:           SQLAlchemy session.
            name:         Display name (required).
            theme_type:   Category tag; ``'all'`` makes it a default theme.
            theme_config: Optional dict stored as JSON text.

        Returns:
            The new Theme ORM instance.

        Raises:
            ValidationError: *name* or *theme_type* is blank.
        """
        name = (name or '').strip()
        theme_type = (theme_type or '').strip()
        if not name:
            raise ValidationError("theme name is required")
        if not theme_type:
            raise ValidationError("theme type is required")
        config_text = json.dumps(theme_config) if theme_config is not None else None
        return self._db.create_theme(db, name, theme_type, config_text)

    def delete_theme(self, db, theme_id: int) -> None:
        """Remove *theme_id* from the catalog (NotFoundError when absent).

        Permission payloads that still reference the theme are left as they
        are; lookups simply no longer resolve it.
        """
        self._db.delete_theme(db, theme_id)

    def get_default_theme_ids(self, db) -> List[int]:
        return [t.id for t in self._db.get_themes_by_type(db, self._db.DEFAULT_THEME_TYPE)]
