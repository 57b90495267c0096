"""Resolves the Flask session cookie to a portal user."""
from flask import session

from .errors import NotAuthenticatedError


class SessionResolver:
    """Looks up the user whose ``student_id`` is stored in the Flask session."""

    def __init__(self, db_module) -> None:
        self._db = db_module

    def resolve(self, db):
        """Return the logged-in User.

        Raises:
            NotAuthenticatedError: No student is in the session, or the
                student no longer exists.
        """
        student_id = session.get('student_id')
        if not student_id:
            raise NotAuthenticatedError("Not logged in")
        user = self._db.get_user_by_student_id(db, student_id)
        if user is None:
            raise NotAuthenticatedError("Not logged in")
        return user
