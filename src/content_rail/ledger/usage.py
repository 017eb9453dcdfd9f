"""
Usage Meter

Per-(user, content) consumption counters. Counters only grow, and only
through a successful purchase; caps are checked here and paid for in the
same access transition.
"""

from typing import Optional

from ..core.errors import CapExceeded
from ..core.state import LedgerState, checked_add
from .catalog import ContentCatalog


class UsageMeter:
    """Consumption counters with cap enforcement."""

    def __init__(self, state: LedgerState, catalog: ContentCatalog):
        self._state = state
        self._catalog = catalog

    def consumed(self, user: str, content_id: int) -> int:
        return self._state.usage.get((user, content_id), 0)

    def check(self, user: str, content_id: int, units: int, max_units: int) -> int:
        """
        Validate a purchase against the cap without recording it.

        Returns the usage total the purchase would produce.
        """
        new_total = checked_add(self.consumed(user, content_id), units)
        if max_units != 0 and new_total > max_units:
            raise CapExceeded(
                f"{user} would reach {new_total} units of content {content_id}, cap is {max_units}"
            )
        return new_total

    def charge(self, user: str, content_id: int, units: int, max_units: int) -> int:
        """Record ``units`` of consumption. Returns the new total."""
        new_total = self.check(user, content_id, units, max_units)
        self._state.usage[(user, content_id)] = new_total
        return new_total

    def remaining(self, user: str, content_id: int) -> Optional[int]:
        """Units still purchasable, or None for unlimited content."""
        record = self._catalog.get(content_id)
        if record.unlimited:
            return None
        return max(record.max_units - self.consumed(user, content_id), 0)
