"""
funnel_client.py
================
Thin wrapper around the campus "funnel" service, which logs into the
library system on a student's behalf and returns their borrow records.

Both endpoints take the student's credentials as a form post and answer
with a JSON envelope::

    POST <base_url>/student/library/borrow/current
        username=<student_id>&password=<library_password>

    {"code": 200, "msg": "OK", "data": [{"title": "...", ...}, ...]}

Any non-200 ``code``, HTTP error status or network failure raises
:class:`FunnelError`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import requests

logger = logging.getLogger('campus.funnel')

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
_CURRENT_BORROW_PATH = "/student/library/borrow/current"
_HISTORY_BORROW_PATH = "/student/library/borrow/history"
_DEFAULT_TIMEOUT = 10  # seconds
_SUCCESS_CODE = 200


class FunnelError(Exception):
    """Raised when the funnel service cannot return borrow records."""


class FunnelClient:
    """Fetches library borrow records through the funnel service."""

    def __init__(self, base_url: str, timeout: int = _DEFAULT_TIMEOUT) -> None:
        """
        Args:
            base_url: Root URL of the funnel service.
            timeout:  HTTP request timeout in seconds.
        """
        if not base_url:
            raise ValueError("base_url must not be empty")
        self._base_url = base_url.rstrip('/')
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    def get_current_borrow(self, user) -> List[Dict[str, Any]]:
        """Return the items *user* currently has on loan."""
        return self._fetch(_CURRENT_BORROW_PATH, user)

    def get_history_borrow(self, user) -> List[Dict[str, Any]]:
        """Return *user*'s past borrow records."""
        return self._fetch(_HISTORY_BORROW_PATH, user)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fetch(self, path: str, user) -> List[Dict[str, Any]]:
        form = {
            'username': user.student_id,
            'password': user.library_password or '',
        }
        try:
            resp = requests.post(self._base_url + path, data=form, timeout=self._timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            logger.error("Funnel request %s failed: %s", path, exc)
            raise FunnelError(str(exc)) from exc
        except ValueError as exc:
            raise FunnelError(f"Invalid JSON from funnel: {exc}") from exc

        if not isinstance(payload, dict) or payload.get('code') != _SUCCESS_CODE:
            msg = payload.get('msg') if isinstance(payload, dict) else None
            logger.warning("Funnel %s returned error: %s", path, msg)
            raise FunnelError(msg or "Funnel returned an error")
        return payload.get('data') or []
