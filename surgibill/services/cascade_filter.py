# surgibill/services/cascade_filter.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from surgibill.schemas.material import CatalogScope
from surgibill.services.material_catalog import CASCADE_LEVELS, MaterialCatalog


def next_level(scope: CatalogScope) -> Optional[str]:
    """First cascade level without a selection; None once length is chosen."""
    for level in CASCADE_LEVELS:
        if getattr(scope, level) is None:
            return level
    return None


def select(scope: CatalogScope, level: str, value: Any) -> CatalogScope:
    """Pick ``value`` at ``level``; every deeper selection is cleared."""
    if level not in CASCADE_LEVELS:
        raise ValueError(f"Unknown cascade level '{level}'")
    idx = CASCADE_LEVELS.index(level)
    updates: Dict[str, Any] = {level: value}
    for deeper in CASCADE_LEVELS[idx + 1:]:
        updates[deeper] = None
    return CatalogScope.model_validate({**scope.model_dump(), **updates})


def cascade_options(catalog: MaterialCatalog,
                    scope: CatalogScope,
                    level: Optional[str] = None) -> List[Any]:
    """
    Distinct values available at ``level`` (default: the next unselected one)
    given the selections above it.
    """
    target = level or next_level(scope)
    if target is None:
        return []
    if target not in CASCADE_LEVELS:
        raise ValueError(f"Unknown cascade level '{target}'")

    # a level only opens once every level above it is chosen
    for above in CASCADE_LEVELS[:CASCADE_LEVELS.index(target)]:
        if getattr(scope, above) is None:
            return []
    return catalog.list_distinct_values(scope.hospital_id, scope, target)
