"""
Content Catalog

Registers content records and looks them up. Records are immutable: there is
no update or delete path, and re-registering an id always fails.
"""

from typing import List

import structlog

from ..core.errors import AlreadyRegistered, InvalidContentId, InvalidRate, InvalidUnits, NotFound
from ..core.events import EventLog, LedgerEventType
from ..core.state import CallContext, ContentRecord, LedgerState, is_uint, require_uint

logger = structlog.get_logger()


class ContentCatalog:
    """
    Registry of priced content.

    The creator of a record is always the identity of the registering
    caller, taken from the call context.
    """

    def __init__(self, state: LedgerState, events: EventLog):
        self._state = state
        self._events = events

    def register(
        self,
        ctx: CallContext,
        content_id: int,
        rate_per_unit: int,
        max_units: int,
        title: str,
        data: bytes,
    ) -> ContentRecord:
        """
        Register a content record owned by the caller.

        Raises:
            InvalidContentId: id outside the uint256 domain
            AlreadyRegistered: id already has a record
            InvalidRate: rate is zero or outside the domain
            InvalidUnits: max units outside the domain
        """
        require_uint(content_id, InvalidContentId, "content_id")
        if content_id in self._state.contents:
            raise AlreadyRegistered(f"Content {content_id} is already registered")
        require_uint(rate_per_unit, InvalidRate, "rate_per_unit", allow_zero=False)
        require_uint(max_units, InvalidUnits, "max_units")
        if not isinstance(title, str):
            raise TypeError("title must be a string")
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError("data must be bytes")

        record = ContentRecord(
            content_id=content_id,
            creator=ctx.caller,
            rate_per_unit=rate_per_unit,
            max_units=max_units,
            title=title,
            data=bytes(data),
            registered_at=ctx.timestamp,
        )
        self._state.contents[content_id] = record
        self._state.content_ids.append(content_id)

        self._events.emit(
            LedgerEventType.CONTENT_REGISTERED,
            ctx.timestamp,
            content_id=content_id,
            creator=record.creator,
            rate_per_unit=rate_per_unit,
            max_units=max_units,
            title=title,
        )
        logger.info(
            "content_registered",
            content_id=content_id,
            creator=record.creator,
            rate_per_unit=rate_per_unit,
            max_units=max_units,
        )
        return record

    def get(self, content_id: int) -> ContentRecord:
        """Get a record by id, raising NotFound when absent."""
        record = self._state.contents.get(content_id) if is_uint(content_id) else None
        if record is None:
            raise NotFound(f"Content {content_id} not found")
        return record

    def exists(self, content_id: int) -> bool:
        return is_uint(content_id) and content_id in self._state.contents

    def list_ids(self) -> List[int]:
        """All registered ids in registration order."""
        return list(self._state.content_ids)

    def count(self) -> int:
        return len(self._state.content_ids)
