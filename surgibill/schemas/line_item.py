# surgibill/schemas/line_item.py
from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    computed_field,
    field_validator,
)

from surgibill.schemas.material import CatalogScope
from surgibill.services.billing_math import D

# Fields owned by the material master once a line is resolved.
MASTER_FIELDS = (
    "material_description",
    "hsn_code",
    "unit",
    "gst_percentage",
    "unit_rate",
)

NUMERIC_FIELDS = (
    "unit_rate",
    "gst_percentage",
    "quantity",
    "discount_percentage",
    "discount_amount",
    "gst_amount",
    "cgst_amount",
    "sgst_amount",
    "igst_amount",
    "total_amount",
)


class LineItemBase(BaseModel):
    serial_number: int = 1
    material_number: str = ""

    material_description: str = ""
    hsn_code: str = ""
    unit: str = ""
    gst_percentage: Decimal = Decimal("0")
    unit_rate: Decimal = Decimal("0")

    quantity: Decimal = Decimal("0")
    discount_percentage: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")

    gst_amount: Decimal = Decimal("0")
    cgst_amount: Decimal = Decimal("0")
    sgst_amount: Decimal = Decimal("0")
    igst_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")

    currency: str = "INR"

    model_config = {"from_attributes": True}

    @field_validator(*NUMERIC_FIELDS, mode="before")
    @classmethod
    def coerce_numeric(cls, v):
        # malformed numerics are treated as 0, never rejected
        return D(v)

    @field_validator("serial_number", mode="before")
    @classmethod
    def coerce_serial(cls, v):
        n = int(D(v, "1"))
        return n if n >= 1 else 1

    @field_validator("material_description", "hsn_code", "unit", "currency",
                     "material_number", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return "" if v is None else str(v)


class ManualLineItem(LineItemBase):
    kind: Literal["manual"] = "manual"

    @computed_field
    @property
    def is_from_master(self) -> bool:
        return False


class MasterLineItem(LineItemBase):
    kind: Literal["master"] = "master"

    @computed_field
    @property
    def is_from_master(self) -> bool:
        return True


def _line_kind(v: Any) -> str:
    if isinstance(v, dict):
        kind = v.get("kind")
        flag = v.get("is_from_master")
    else:
        kind = getattr(v, "kind", None)
        flag = getattr(v, "is_from_master", None)
    if kind in ("manual", "master"):
        return kind
    return "master" if flag else "manual"


LineItem = Annotated[
    Union[
        Annotated[ManualLineItem, Tag("manual")],
        Annotated[MasterLineItem, Tag("master")],
    ],
    Discriminator(_line_kind),
]


# -------------------------
# Pricing requests / responses
# -------------------------
class ResolveLineIn(BaseModel):
    item: LineItem
    scope: CatalogScope
    # set for template lines to get the CGST/SGST/IGST split
    customer_state_code: Optional[str] = None


class RecalculateLineIn(BaseModel):
    item: LineItem
    customer_state_code: Optional[str] = None


class RecalculateDocumentIn(BaseModel):
    items: List[LineItem] = Field(default_factory=list)
    # with a scope, numbered lines are re-resolved and master fields re-locked
    scope: Optional[CatalogScope] = None
    customer_state_code: Optional[str] = None


class DocumentTotalsOut(BaseModel):
    sub_total: Decimal
    discount_total: Decimal
    gst_total: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    igst_total: Decimal
    grand_total: Decimal


class RecalculateDocumentOut(BaseModel):
    items: List[LineItem]
    totals: DocumentTotalsOut


_line_adapter: TypeAdapter = TypeAdapter(LineItem)


def build_line(data: Any) -> Union[ManualLineItem, MasterLineItem]:
    """Validate a dict / ORM row into the right line variant."""
    if isinstance(data, LineItemBase):
        return data
    return _line_adapter.validate_python(data, from_attributes=True)


def replace_line(item: LineItemBase,
                 kind: Optional[str] = None,
                 **updates) -> Union[ManualLineItem, MasterLineItem]:
    """Copy of ``item`` with ``updates`` applied and re-validated."""
    data = item.model_dump(exclude={"is_from_master"})
    data.update(updates)
    if kind is not None:
        data["kind"] = kind
    return _line_adapter.validate_python(data)
