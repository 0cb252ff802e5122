# surgibill/models/material.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    Numeric,
    Index,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from surgibill.db.base import Base

MYSQL_ARGS = {
    "mysql_engine": "InnoDB",
    "mysql_charset": "utf8mb4",
    "mysql_collate": "utf8mb4_unicode_ci",
}


class Hospital(Base):
    __tablename__ = "hospitals"
    __table_args__ = (
        UniqueConstraint("code", name="uq_hospital_code"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(10), nullable=False)  # H00001
    short_name = Column(String(50), nullable=False)
    legal_name = Column(String(100), nullable=False)
    gst_number = Column(String(15), nullable=True)
    state_code = Column(String(3), nullable=False)

    # True => every active master material is available at master price
    default_pricing = Column(Boolean, default=False, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow,
                        nullable=False)

    material_assignments = relationship(
        "HospitalMaterialAssignment",
        back_populates="hospital",
        cascade="all, delete-orphan",
    )


class MaterialMaster(Base):
    __tablename__ = "material_masters"
    __table_args__ = (
        UniqueConstraint("material_number", name="uq_material_number"),
        Index("ix_material_cascade", "surgical_category", "implant_type",
              "sub_category", "length_mm"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)

    # stored uppercase
    material_number = Column(String(20), nullable=False, index=True)
    description = Column(String(100), nullable=False)
    hsn_code = Column(String(15), nullable=False)
    unit = Column(String(10), nullable=False, default="NOS")

    gst_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")
    mrp = Column(Numeric(12, 2), nullable=False, default=0)
    institutional_price = Column(Numeric(12, 2), nullable=False, default=0)
    distribution_price = Column(Numeric(12, 2), nullable=False, default=0)

    # cascade levels: category -> implant type -> sub category -> length
    surgical_category = Column(String(40), nullable=False, index=True)
    implant_type = Column(String(40), nullable=True, index=True)
    sub_category = Column(String(60), nullable=True)
    length_mm = Column(Numeric(8, 2), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime,
                        default=datetime.utcnow,
                        onupdate=datetime.utcnow,
                        nullable=False)


class HospitalMaterialAssignment(Base):
    """
    Material made available to one hospital, with the hospital's own
    MRP / institutional price. NULL prices fall back to the master.
    """
    __tablename__ = "hospital_material_assignments"
    __table_args__ = (
        UniqueConstraint("hospital_id",
                         "material_id",
                         name="uq_hospital_material"),
        Index("ix_hospital_material_active", "hospital_id", "is_active"),
        MYSQL_ARGS,
    )

    id = Column(Integer, primary_key=True, index=True)
    hospital_id = Column(Integer,
                         ForeignKey("hospitals.id", ondelete="CASCADE"),
                         nullable=False)
    material_id = Column(Integer,
                         ForeignKey("material_masters.id", ondelete="CASCADE"),
                         nullable=False)

    mrp = Column(Numeric(12, 2), nullable=True)
    institutional_price = Column(Numeric(12, 2), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    assigned_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    hospital = relationship("Hospital", back_populates="material_assignments")
    material = relationship("MaterialMaster")
