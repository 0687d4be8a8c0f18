# models.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    create_engine,
    String,
    Text,
    Integer,
    Float,
    Boolean,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
    sessionmaker,
)

# -----------------------------
# SQLAlchemy base
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Tables
# -----------------------------
class JobRecord(Base):
    """
    A job as the CRM stored it. Rows are read through jobs.job_from_record(),
    which is the only place legacy part fields get interpreted.
    """
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)

    # Customer
    is_business: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    business_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_type: Mapped[str] = mapped_column(String(32), nullable=False, default="retail")  # retail/dealer/fleet/subcontractor
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    street_address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Job-level totals (computed upstream, read-only here)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tax_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_due: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    amount_paid: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    balance_due: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    install_date: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # ISO text, as entered

    # Captured signature (data URL or base64 text)
    signature_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Stored receipt (file path on disk)
    receipt_pdf_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    receipt_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    vehicles: Mapped[list["VehicleRecord"]] = relationship(
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="VehicleRecord.id",
    )


class VehicleRecord(Base):
    __tablename__ = "job_vehicles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)

    vehicle_year: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    vehicle_make: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    vehicle_model: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    vin: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    job: Mapped["JobRecord"] = relationship(back_populates="vehicles")
    parts: Mapped[list["PartRecord"]] = relationship(
        back_populates="vehicle",
        cascade="all, delete-orphan",
        order_by="PartRecord.id",
    )


class PartRecord(Base):
    __tablename__ = "job_parts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    vehicle_id: Mapped[int] = mapped_column(ForeignKey("job_vehicles.id", ondelete="CASCADE"), nullable=False, index=True)

    # Current shape
    service_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    glass_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    # Older rows only have the combined field
    job_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    calibration_type: Mapped[str] = mapped_column(String(32), nullable=False, default="none")
    part_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    vehicle: Mapped["VehicleRecord"] = relationship(back_populates="parts")


# -----------------------------
# Engine / Session factory
# -----------------------------
def make_engine(db_url: str, echo: bool = False):
    """
    Create SQLAlchemy engine.
    Note: SQLite path must exist (instance/ folder). db_init.py creates it.
    """
    return create_engine(db_url, echo=echo, future=True)


def make_session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
