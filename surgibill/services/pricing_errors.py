# surgibill/services/pricing_errors.py
from __future__ import annotations

from typing import List, Optional


class PricingError(Exception):
    pass


class ResolutionNotFound(PricingError, LookupError):
    def __init__(self, material_number: str, hospital_id: Optional[int] = None):
        self.material_number = material_number
        self.hospital_id = hospital_id
        super().__init__(
            f"Material '{material_number}' not found for hospital {hospital_id}")


class AmbiguousMaterialMatch(PricingError):
    """More than one catalog row carries the same number in one hospital scope."""

    def __init__(self, material_number: str, hospital_id: Optional[int],
                 material_ids: List[int]):
        self.material_number = material_number
        self.hospital_id = hospital_id
        self.material_ids = material_ids
        super().__init__(
            f"Material '{material_number}' is ambiguous for hospital "
            f"{hospital_id} (ids: {material_ids})")


class CatalogUnavailable(PricingError, RuntimeError):
    pass


class LineValidationError(PricingError, ValueError):
    def __init__(self, msg: str, *, serial_number: Optional[int] = None):
        self.serial_number = serial_number
        super().__init__(msg)
