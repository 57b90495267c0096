"""Business logic for per-student theme permissions."""
import logging
from typing import Dict, List, Optional

from ..errors import ValidationError
from ..theme_data import ThemePermissionData

logger = logging.getLogger('campus.services.theme_permission')

# Rows persisted per storage write when granting a theme to a roster
BATCH_SIZE = 100


class ThemePermissionService:
    """Reconciles the themes each student may select against admin grants.

    Persistence is delegated to the injected ``database`` module; nothing in
    this class touches a global session.  All methods accept a *db*
    SQLAlchemy session as the first argument so that callers (Flask route
    handlers) control the session lifecycle.

    Every storage, lookup and decode error propagates unchanged.  Grants are
    written in independent batches of :data:`BATCH_SIZE` rows, so a failure
    part-way through leaves the earlier batches committed.  There is no row
    locking either: two grants racing on the same student can lose one of
    the updates.
    """

    def __init__(self, db_module, batch_size: int = BATCH_SIZE) -> None:
        """
        Args:
            db_module:  The imported ``database`` module (or any object that
                exposes the theme-permission helpers and the
                ``ThemePermission`` model).
            batch_size: Rows per storage write in :meth:`add_theme_permission`.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._db = db_module
        self._batch_size = batch_size

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def add_theme_permission(self, db, theme_id: int,
                             student_ids: Optional[List[str]] = None) -> List[str]:
        """Grant *theme_id* to every valid student in *student_ids*.

        An empty roster grants the theme to every known student.  Students
        without a permission row get a new one whose payload is just
        *theme_id* and whose current theme is *theme_id*; existing rows only
        gain *theme_id* in their payload.

        Args:
            db:          SQLAlchemy session.
            theme_id:    Theme to grant.
            student_ids: Roster of student IDs (``None`` or empty = everyone).

        Returns:
            The requested IDs that matched no user, in request order
            (always empty for an empty roster).
        """
        valid_ids, invalid_ids = self._partition_roster(db, student_ids or [])

        existing: Dict[str, object] = {
            p.student_id: p for p in self._db.get_theme_permissions(db, valid_ids)
        }

        # (row, payload) pairs; payloads are applied batch by batch so a
        # loaded row is only dirtied right before its own write
        touched = []
        for student_id in valid_ids:
            permission = existing.get(student_id)
            if permission is None:
                permission = self._db.ThemePermission(
                    student_id=student_id,
                    current_theme_id=theme_id,
                )
                touched.append((permission, ThemePermissionData([theme_id])))
                continue

            data = permission.get_data()
            if data.grant(theme_id):
                touched.append((permission, data))
            else:
                touched.append((permission, None))

        self._save_in_batches(db, touched)

        if invalid_ids:
            logger.warning("Theme %s: %d unknown student IDs skipped",
                           theme_id, len(invalid_ids))
        logger.info("Granted theme %s to %d students", theme_id, len(touched))
        return invalid_ids

    def add_default_theme_permission(self, db, student_id: str) -> None:
        """Create *student_id*'s permission row from the default themes.

        Does nothing when a row already exists.

        Raises:
            ValidationError: No theme is tagged with the default type.
        """
        if self._db.get_theme_permissions(db, [student_id]):
            return

        themes = self._db.get_themes_by_type(db, self._db.DEFAULT_THEME_TYPE)
        if not themes:
            raise ValidationError("no default themes configured")

        theme_ids = [theme.id for theme in themes]
        permission = self._db.ThemePermission(
            student_id=student_id,
            current_theme_id=theme_ids[0],
        )
        permission.set_data(ThemePermissionData(theme_ids))
        self._db.create_theme_permission(db, permission)
        logger.info("Bootstrapped default themes %s for %s", theme_ids, student_id)

    # ------------------------------------------------------------------
    # Selection and removal
    # ------------------------------------------------------------------

    def update_current_theme(self, db, theme_id: int, student_id: str) -> None:
        """Select *theme_id* as *student_id*'s current theme.

        Raises:
            NotFoundError:   The student has no permission row.
            ValidationError: *theme_id* has not been granted to the student.
        """
        permission = self._db.get_theme_permission(db, student_id)
        if not permission.get_data().contains(theme_id):
            raise ValidationError("theme not permitted")
        self._db.update_current_theme_id(db, student_id, theme_id)

    def delete_theme_permission(self, db, student_id: str) -> None:
        """Remove *student_id*'s permission row (absent rows are fine)."""
        self._db.delete_theme_permission(db, student_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_theme_permission(self, db, student_id: str):
        """Return *student_id*'s permission row (NotFoundError when absent)."""
        return self._db.get_theme_permission(db, student_id)

    def get_themes(self, db, permission) -> list:
        """Return the catalog entries granted by *permission*."""
        return self._db.get_themes_by_ids(db, permission.get_data().theme_ids)

    def get_theme_names(self, db, permission) -> List[str]:
        """Return the names of the themes granted by *permission*."""
        return [theme.name for theme in self.get_themes(db, permission)]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _partition_roster(self, db, student_ids: List[str]):
        if not student_ids:
            return self._db.get_all_student_ids(db), []

        known = self._db.find_existing_student_ids(db, student_ids)
        valid, invalid = [], []
        for student_id in student_ids:
            if student_id in known:
                if student_id not in valid:
                    valid.append(student_id)
            else:
                invalid.append(student_id)
        return valid, invalid

    def _save_in_batches(self, db, touched: list) -> None:
        for start in range(0, len(touched), self._batch_size):
            batch = touched[start:start + self._batch_size]
            for permission, data in batch:
                if data is not None:
                    permission.set_data(data)
            self._db.save_theme_permissions(db, [permission for permission, _ in batch])
