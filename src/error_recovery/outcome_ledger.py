"""
Bounded in-memory history of strategy outcomes
"""

import itertools
import logging
from collections import deque
from typing import Deque, List, Optional, Union

from .schemas import OutcomeRecord, OutcomeType

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_CAPACITY = 1000


class OutcomeLedger:
    """Append-only ring buffer of OutcomeRecord; the oldest entry is evicted once full"""

    def __init__(self, capacity: int = DEFAULT_LEDGER_CAPACITY):
        if capacity < 1:
            raise ValueError("Ledger capacity must be at least 1")
        self.capacity = capacity
        self._entries: Deque[OutcomeRecord] = deque(maxlen=capacity)
        self._ids = itertools.count(1)

    def record(
        self,
        function_name: str,
        strategy_name: str,
        outcome: Union[OutcomeType, str],
        duration_ms: float,
        error_message: Optional[str] = None,
    ) -> OutcomeRecord:
        """Append a new outcome and return it"""
        entry = OutcomeRecord(
            id=next(self._ids),
            function_name=function_name,
            strategy_name=strategy_name,
            outcome=outcome,
            error_message=error_message,
            duration_ms=duration_ms,
        )
        self._entries.append(entry)
        return entry

    def recent(self, limit: int) -> List[OutcomeRecord]:
        """Most recent ``limit`` entries, newest first"""
        if limit <= 0:
            return []
        newest_first = reversed(self._entries)
        return list(itertools.islice(newest_first, limit))

    def entries(self) -> List[OutcomeRecord]:
        """All retained entries, oldest first"""
        return list(self._entries)

    def clear(self) -> None:
        dropped = len(self._entries)
        self._entries.clear()
        logger.debug(f"Cleared {dropped} outcome ledger entries")

    def __len__(self) -> int:
        return len(self._entries)
