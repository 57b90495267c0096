"""The decoded form of a student's theme-permission payload."""
import json
from typing import Iterable, List, Optional

from .errors import DecodeError


class ThemePermissionData:
    """Ordered sequence of theme IDs a student may select.

    Uniqueness is not enforced structurally; :meth:`grant` is the only way
    the services add IDs and it never appends a duplicate.
    """

    def __init__(self, theme_ids: Optional[Iterable[int]] = None) -> None:
        self.theme_ids: List[int] = [int(t) for t in (theme_ids or [])]

    def __eq__(self, other) -> bool:
        if not isinstance(other, ThemePermissionData):
            return NotImplemented
        return self.theme_ids == other.theme_ids

    def __repr__(self) -> str:
        return f'ThemePermissionData(theme_ids={self.theme_ids!r})'

    def contains(self, theme_id: int) -> bool:
        return theme_id in self.theme_ids

    def grant(self, theme_id: int) -> bool:
        """Append *theme_id* unless already present.

        Returns:
            ``True`` when the payload changed.
        """
        if self.contains(theme_id):
            return False
        self.theme_ids.append(theme_id)
        return True

    # ------------------------------------------------------------------
    # Storage boundary
    # ------------------------------------------------------------------

    def to_json(self) -> str:
        return json.dumps({'theme_ids': self.theme_ids})

    @classmethod
    def from_json(cls, raw: str) -> 'ThemePermissionData':
        """Decode the stored text form.

        Raises:
            DecodeError: *raw* is not a JSON object with an integer
                ``theme_ids`` list.
        """
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise DecodeError(f"Malformed theme permission payload: {exc}") from exc
        if not isinstance(payload, dict):
            raise DecodeError("Theme permission payload must be a JSON object")
        theme_ids = payload.get('theme_ids')
        if theme_ids is None:
            theme_ids = []
        if not isinstance(theme_ids, list) or not all(
                isinstance(t, int) and not isinstance(t, bool) for t in theme_ids):
            raise DecodeError("theme_ids must be a list of integers")
        return cls(theme_ids)
