# surgibill/schemas/document.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from surgibill.schemas.line_item import DocumentTotalsOut, LineItem


# -------------------------
# Templates
# -------------------------
class TemplateCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    surgical_category: Optional[str] = Field(default=None, max_length=40)

    limit_amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="INR", max_length=3)
    discount_applicable: bool = False

    hospital_dependent: bool = False
    hospital_id: Optional[int] = None
    # defaults to the hospital's state, else the company's own state
    customer_state_code: Optional[str] = Field(default=None, max_length=3)

    items: List[LineItem] = Field(default_factory=list)


class TemplateOut(BaseModel):
    id: int
    template_number: str
    description: str
    surgical_category: Optional[str] = None
    limit_amount: Decimal
    currency: str
    discount_applicable: bool
    hospital_dependent: bool
    hospital_id: Optional[int] = None
    customer_state_code: Optional[str] = None

    items: List[LineItem]
    total_template_amount: Decimal
    totals: DocumentTotalsOut

    is_active: bool
    created_at: datetime
    updated_at: datetime


# -------------------------
# Inquiries
# -------------------------
class InquiryCreate(BaseModel):
    hospital_id: int
    patient_name: str = Field(..., min_length=1, max_length=100)
    surgical_category: Optional[str] = Field(default=None, max_length=40)
    items: List[LineItem] = Field(default_factory=list)


class InquiryFromTemplateIn(BaseModel):
    hospital_id: int
    patient_name: str = Field(..., min_length=1, max_length=100)


class InquiryOut(BaseModel):
    id: int
    inquiry_number: str
    hospital_id: int
    patient_name: str
    surgical_category: Optional[str] = None
    template_id: Optional[int] = None

    items: List[LineItem]
    total_inquiry_amount: Decimal
    totals: DocumentTotalsOut

    created_at: datetime
    updated_at: datetime
