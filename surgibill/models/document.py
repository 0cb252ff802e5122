# surgibill/models/document.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    Numeric,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from surgibill.db.base import Base
from surgibill.models.material import MYSQL_ARGS


class _LineColumns:
    """Columns shared by template and inquiry lines."""

    id = Column(Integer, primary_key=True, index=True)
    serial_number = Column(Integer, nullable=False)

    material_number = Column(String(20), nullable=False, default="")
    material_description = Column(String(100), nullable=False, default="")
    hsn_code = Column(String(15), nullable=False, default="")
    unit = Column(String(10), nullable=False, default="")
    is_from_master = Column(Boolean, nullable=False, default=False)

    unit_rate = Column(Numeric(12, 2), nullable=False, default=0)
    gst_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    quantity = Column(Numeric(12, 2), nullable=False, default=1)
    discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)

    gst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    cgst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    sgst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    igst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)

    currency = Column(String(3), nullable=False, default="INR")


class Template(Base):
    __tablename__ = "templates"
    __table_args__ = (
        UniqueConstraint("template_number", name="uq_template_number"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    template_number = Column(String(10), nullable=False)  # T0000001
    description = Column(String(200), nullable=False)
    surgical_category = Column(String(40), nullable=True, index=True)

    limit_amount = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")
    discount_applicable = Column(Boolean, nullable=False, default=False)

    hospital_dependent = Column(Boolean, nullable=False, default=False)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=True)
    customer_state_code = Column(String(3), nullable=True)

    total_template_amount = Column(Numeric(14, 2), nullable=False, default=0)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow,
                        nullable=False)

    items = relationship("TemplateItem",
                         back_populates="template",
                         cascade="all, delete-orphan",
                         order_by="TemplateItem.serial_number")


class TemplateItem(_LineColumns, Base):
    __tablename__ = "template_items"
    __table_args__ = (MYSQL_ARGS, )

    template_id = Column(Integer,
                         ForeignKey("templates.id", ondelete="CASCADE"),
                         nullable=False,
                         index=True)
    template = relationship("Template", back_populates="items")


class Inquiry(Base):
    __tablename__ = "inquiries"
    __table_args__ = (
        UniqueConstraint("inquiry_number", name="uq_inquiry_number"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    inquiry_number = Column(String(12), nullable=False)  # INQ0000001
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    patient_name = Column(String(100), nullable=False)
    surgical_category = Column(String(40), nullable=True)
    template_id = Column(Integer, ForeignKey("templates.id"), nullable=True)

    total_inquiry_amount = Column(Numeric(14, 2), nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow,
                        nullable=False)

    items = relationship("InquiryItem",
                         back_populates="inquiry",
                         cascade="all, delete-orphan",
                         order_by="InquiryItem.serial_number")


class InquiryItem(_LineColumns, Base):
    __tablename__ = "inquiry_items"
    __table_args__ = (MYSQL_ARGS, )

    inquiry_id = Column(Integer,
                        ForeignKey("inquiries.id", ondelete="CASCADE"),
                        nullable=False,
                        index=True)
    inquiry = relationship("Inquiry", back_populates="items")
