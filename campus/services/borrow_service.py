"""Business logic for library borrow lookups."""
from typing import Dict, List


class BorrowService:
    """Returns a student's current and historical library loans by
    delegating to a funnel client.

    No retries: any client failure reaches the caller unchanged.
    """

    def __init__(self, funnel_client) -> None:
        """
        Args:
            funnel_client: A :class:`~funnel_client.FunnelClient` (or any
                object that exposes ``get_current_borrow`` and
                ``get_history_borrow``).
        """
        self._client = funnel_client

    def get_current(self, user) -> List[Dict]:
        """Return the items *user* currently has on loan."""
        return self._client.get_current_borrow(user)

    def get_history(self, user) -> List[Dict]:
        """Return *user*'s past borrow records."""
        return self._client.get_history_borrow(user)
