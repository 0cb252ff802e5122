# surgibill/services/catalog_cache.py
"""
Read-through cache in front of a MaterialCatalog.

Entries are keyed by (hospital_id, normalized material number) and live for
``ttl_seconds``. Only hits are cached: a number that is not found today may be
assigned to the hospital tomorrow. Scoped (browse) lookups and cascade option
lists always go to the underlying catalog. Writes to materials or assignments
must call ``invalidate`` for the affected hospital, or for everything when a
master row changes.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from surgibill.core.config import settings
from surgibill.schemas.material import CatalogScope, MaterialRecord
from surgibill.services.material_catalog import (
    CASCADE_LEVELS,
    MaterialCatalog,
    normalize_material_number,
)

logger = logging.getLogger(__name__)

CacheKey = Tuple[Optional[int], str]


def cache_key(hospital_id: Optional[int], material_number: str) -> CacheKey:
    hid = None if hospital_id is None else int(hospital_id)
    return hid, normalize_material_number(material_number)


class MaterialCache:

    def __init__(self,
                 ttl_seconds: float,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[float, MaterialRecord]] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[MaterialRecord]:
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return None
            expires_at, record = hit
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return record

    def put(self, key: CacheKey, record: MaterialRecord) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, record)

    def invalidate(self, hospital_id: Optional[int] = None) -> int:
        """Drop one hospital's entries, or every entry when no id is given."""
        with self._lock:
            if hospital_id is None:
                n = len(self._entries)
                self._entries.clear()
            else:
                stale = [k for k in self._entries if k[0] == int(hospital_id)]
                for k in stale:
                    del self._entries[k]
                n = len(stale)
        logger.debug("Material cache invalidated (hospital=%s, entries=%d)",
                     hospital_id, n)
        return n

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# process-wide cache shared by request-scoped catalogs
material_cache = MaterialCache(settings.CATALOG_CACHE_TTL_SECONDS)


def _is_direct_entry(scope: Optional[CatalogScope]) -> bool:
    if scope is None:
        return True
    return all(getattr(scope, level, None) is None for level in CASCADE_LEVELS)


class CachedMaterialCatalog:

    def __init__(self,
                 inner: MaterialCatalog,
                 cache: Optional[MaterialCache] = None):
        self.inner = inner
        self.cache = cache if cache is not None else material_cache

    def lookup_by_number(
        self,
        hospital_id: Optional[int],
        material_number: str,
        scope: Optional[CatalogScope] = None,
    ) -> Optional[MaterialRecord]:
        if not _is_direct_entry(scope):
            return self.inner.lookup_by_number(hospital_id, material_number,
                                               scope)

        key = cache_key(hospital_id, material_number)
        record = self.cache.get(key)
        if record is not None:
            return record

        record = self.inner.lookup_by_number(hospital_id, material_number)
        if record is not None:
            self.cache.put(key, record)
        return record

    def list_distinct_values(
        self,
        hospital_id: Optional[int],
        partial_scope: CatalogScope,
        next_field: str,
    ) -> List[Any]:
        return self.inner.list_distinct_values(hospital_id, partial_scope,
                                               next_field)
