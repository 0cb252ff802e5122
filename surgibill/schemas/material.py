# surgibill/schemas/material.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _upper(v: Optional[str]) -> str:
    return (v or "").strip().upper()


class MaterialRecord(BaseModel):
    """Catalog entry as seen through one hospital's assignment."""

    model_config = ConfigDict(frozen=True)

    material_id: Optional[int] = None
    material_number: str
    description: str
    hsn_code: str
    unit: str = "NOS"
    gst_percentage: Decimal = Decimal("0")
    currency: str = "INR"

    mrp: Decimal = Decimal("0")
    institutional_price: Decimal = Decimal("0")
    distribution_price: Decimal = Decimal("0")

    surgical_category: str
    implant_type: Optional[str] = None
    sub_category: Optional[str] = None
    length_mm: Optional[Decimal] = None

    # hospital override if assigned, else master price
    scoped_price: Decimal = Decimal("0")

    @field_validator("material_number", mode="before")
    @classmethod
    def normalize_number(cls, v):
        return _upper(v)


class CatalogScope(BaseModel):
    # None = master catalog at master prices
    hospital_id: Optional[int] = None
    surgical_category: Optional[str] = None
    implant_type: Optional[str] = None
    sub_category: Optional[str] = None
    length_mm: Optional[Decimal] = None

    @field_validator("surgical_category", "implant_type", "sub_category",
                     mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        s = str(v).strip()
        return s or None

    @field_validator("length_mm", mode="before")
    @classmethod
    def blank_length(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v


# -------------------------
# Material master
# -------------------------
class MaterialCreate(BaseModel):
    material_number: str = Field(..., min_length=1, max_length=20)
    description: str = Field(..., min_length=1, max_length=100)
    hsn_code: str = Field(..., min_length=1, max_length=15)
    unit: str = Field(default="NOS", max_length=10)

    gst_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    currency: str = Field(default="INR", max_length=3)
    mrp: Decimal = Field(default=Decimal("0"), ge=0)
    institutional_price: Decimal = Field(default=Decimal("0"), ge=0)
    distribution_price: Decimal = Field(default=Decimal("0"), ge=0)

    surgical_category: str = Field(..., min_length=1, max_length=40)
    implant_type: Optional[str] = Field(default=None, max_length=40)
    sub_category: Optional[str] = Field(default=None, max_length=60)
    length_mm: Optional[Decimal] = Field(default=None, ge=0)

    is_active: bool = True

    @field_validator("material_number", mode="before")
    @classmethod
    def normalize_number(cls, v):
        return _upper(v)


class MaterialUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1, max_length=100)
    hsn_code: Optional[str] = Field(default=None, min_length=1, max_length=15)
    unit: Optional[str] = Field(default=None, max_length=10)
    gst_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)
    mrp: Optional[Decimal] = Field(default=None, ge=0)
    institutional_price: Optional[Decimal] = Field(default=None, ge=0)
    distribution_price: Optional[Decimal] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class MaterialOut(BaseModel):
    id: int
    material_number: str
    description: str
    hsn_code: str
    unit: str
    gst_percentage: Decimal
    currency: str
    mrp: Decimal
    institutional_price: Decimal
    distribution_price: Decimal
    surgical_category: str
    implant_type: Optional[str] = None
    sub_category: Optional[str] = None
    length_mm: Optional[Decimal] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MaterialListOut(BaseModel):
    items: List[MaterialOut]
    total: int
    page: int
    page_size: int


# -------------------------
# Hospitals / assignments
# -------------------------
class HospitalCreate(BaseModel):
    short_name: str = Field(..., min_length=2, max_length=50)
    legal_name: str = Field(..., min_length=2, max_length=100)
    gst_number: Optional[str] = Field(default=None, max_length=15)
    state_code: str = Field(..., min_length=2, max_length=3)
    default_pricing: bool = False


class HospitalOut(BaseModel):
    id: int
    code: str
    short_name: str
    legal_name: str
    gst_number: Optional[str] = None
    state_code: str
    default_pricing: bool
    is_active: bool

    model_config = {"from_attributes": True}


class AssignmentCreate(BaseModel):
    material_number: str = Field(..., min_length=1, max_length=20)
    mrp: Optional[Decimal] = Field(default=None, ge=0)
    institutional_price: Optional[Decimal] = Field(default=None, ge=0)
    is_active: bool = True

    @field_validator("material_number", mode="before")
    @classmethod
    def normalize_number(cls, v):
        return _upper(v)


class AssignmentOut(BaseModel):
    id: int
    hospital_id: int
    material_id: int
    mrp: Optional[Decimal] = None
    institutional_price: Optional[Decimal] = None
    is_active: bool
    assigned_at: datetime

    model_config = {"from_attributes": True}
