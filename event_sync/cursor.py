"""
Event Sync - Cursor Store.

A single persisted key, `last_block`, holding the highest block whose
event range has been fully ingested. Absent until the first successful
cycle; afterwards only ever overwritten with a value >= the previous one.
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from database.engine import transaction_scope
from database.persistence import get_sync_value, set_sync_value
from event_sync.exceptions import CursorError


logger = logging.getLogger(__name__)

CURSOR_KEY = "last_block"


def _parse(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise CursorError(
            f"sync_state[{CURSOR_KEY}] is not a block number: {value!r}",
            context={"value": value},
        ) from e


class CursorStore:
    """Reads and advances the persisted sync cursor."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        key: str = CURSOR_KEY,
    ) -> None:
        self._session_factory = session_factory
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def get(self) -> Optional[int]:
        """Last fully ingested block, or None before the first cycle."""
        with transaction_scope(self._session_factory) as session:
            value = get_sync_value(session, self._key)
        return None if value is None else _parse(value)

    def advance(self, block: int) -> int:
        """
        Persist `block` as the new cursor.

        Re-writing the current value is allowed. Moving backwards is not.

        Raises:
            CursorError: block is lower than the stored cursor
        """
        with transaction_scope(self._session_factory) as session:
            current = get_sync_value(session, self._key)
            if current is not None and block < _parse(current):
                raise CursorError(
                    f"cursor cannot move backwards: {current} -> {block}",
                    context={"current": current, "requested": block},
                )
            set_sync_value(session, self._key, str(block))

        logger.debug(f"[cursor] {self._key} = {block}")
        return block
