# surgibill/services/resolution_guard.py
"""
Last-request-wins bookkeeping for material resolutions.

Each row gets a fresh ticket whenever its material number is edited. A
resolution result is applied only if its ticket is still the latest one for
that row; anything older is dropped without error. Rows never share tickets.
"""
from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Hashable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionTicket:
    row_key: Hashable
    seq: int
    material_number: str


class ResolutionGuard:

    def __init__(self):
        self._latest: Dict[Hashable, int] = {}
        self._seq = itertools.count(1)
        self._lock = threading.Lock()

    def begin(self, row_key: Hashable, material_number: str) -> ResolutionTicket:
        with self._lock:
            seq = next(self._seq)
            self._latest[row_key] = seq
        return ResolutionTicket(row_key=row_key,
                                seq=seq,
                                material_number=material_number)

    def is_current(self, ticket: ResolutionTicket) -> bool:
        with self._lock:
            return self._latest.get(ticket.row_key) == ticket.seq

    def accept(self, ticket: ResolutionTicket) -> bool:
        """True if the ticket is still the latest for its row."""
        if self.is_current(ticket):
            return True
        logger.debug("Discarding stale resolution of %s for row %s",
                     ticket.material_number, ticket.row_key)
        return False

    def forget(self, row_key: Hashable) -> None:
        with self._lock:
            self._latest.pop(row_key, None)
