# jobs.py
"""
Canonical, read-only job shapes consumed by the receipt generator.

Jobs arrive either as CRM JSON (camelCase) or as database rows. Both readers
funnel every part through _canonical_part(), so the legacy ``jobType`` field
is resolved exactly once and nothing downstream ever looks at it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Optional

from errors import MalformedJobError
from models import JobRecord


# Legacy combined jobType -> (serviceType, glassType)
LEGACY_JOB_TYPES: dict[str, tuple[str, str]] = {
    "windshield_repair": ("repair", "windshield"),
    "windshield_replacement": ("replace", "windshield"),
    "door_glass": ("replace", "door_glass"),
    "back_glass": ("replace", "back_glass"),
    "back_glass_powerslide": ("replace", "back_glass_powerslide"),
    "quarter_glass": ("replace", "quarter_glass"),
    "sunroof": ("replace", "sunroof"),
    "side_mirror": ("replace", "side_mirror"),
}
DEFAULT_SERVICE_AND_GLASS = ("replace", "windshield")

GLASS_TYPE_LABELS = {
    "windshield": "Windshield",
    "door_glass": "Door Glass",
    "back_glass": "Back Glass",
    "back_glass_powerslide": "Back Glass (Powerslide)",
    "quarter_glass": "Quarter Glass",
    "sunroof": "Sunroof",
    "side_mirror": "Side Mirror",
}

SERVICE_TYPE_LABELS = {
    "repair": "Repair",
    "replace": "Replacement",
    "calibration": "Calibration",
}

CUSTOMER_TYPES = ("retail", "dealer", "fleet", "subcontractor")


def canonical_service_and_glass(
    service_type: str | None, glass_type: str | None, job_type: str | None = None
) -> tuple[str, str]:
    service_type = (service_type or "").strip()
    glass_type = (glass_type or "").strip()
    if service_type and glass_type:
        return service_type, glass_type
    legacy = (job_type or "").strip() or "windshield_replacement"
    return LEGACY_JOB_TYPES.get(legacy, DEFAULT_SERVICE_AND_GLASS)


@dataclass(frozen=True)
class Part:
    service_type: str
    glass_type: str
    part_total: float = 0.0
    calibration_type: str = "none"

    @property
    def label(self) -> str:
        glass = GLASS_TYPE_LABELS.get(self.glass_type, "Glass")
        service = SERVICE_TYPE_LABELS.get(self.service_type, "Service")
        return f"{glass} {service}"

    def matches(self, service_type: str, glass_type: str) -> bool:
        return self.service_type == service_type and self.glass_type == glass_type


@dataclass(frozen=True)
class Vehicle:
    year: str = ""
    make: str = ""
    model: str = ""
    vin: str = ""
    parts: tuple[Part, ...] = ()

    @property
    def descriptor(self) -> str:
        return f"{self.year} {self.make} {self.model}"


@dataclass(frozen=True)
class Job:
    job_number: str
    vehicles: tuple[Vehicle, ...]
    first_name: str = ""
    last_name: str = ""
    is_business: bool = False
    business_name: str = ""
    customer_type: str = "retail"
    phone: str = ""
    email: str = ""
    street_address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    subtotal: float = 0.0
    tax_amount: float = 0.0
    total_due: float = 0.0
    amount_paid: float = 0.0
    balance_due: float = 0.0
    install_date: Optional[date] = None
    created_at: Optional[date] = None
    signature_image: Optional[str] = field(default=None, repr=False)

    @property
    def display_name(self) -> str:
        if self.is_business and self.business_name:
            return self.business_name
        return f"{self.first_name} {self.last_name}"

    @property
    def receipt_date(self) -> Optional[date]:
        return self.install_date or self.created_at

    def all_parts(self) -> list[Part]:
        return [p for v in self.vehicles for p in v.parts]

    def line_items(self) -> list[tuple[Vehicle, Part]]:
        """(vehicle, part) pairs in encounter order."""
        return [(v, p) for v in self.vehicles for p in v.parts]

    def parts_subtotal(self) -> float:
        return round(sum(p.part_total for p in self.all_parts()), 2)

    def has_declined_calibration(self) -> bool:
        return any(p.calibration_type == "declined" for p in self.all_parts())


# -----------------------------
# Readers
# -----------------------------
def _to_float(s, default=0.0) -> float:
    try:
        if isinstance(s, (int, float)):
            return float(s)
        s = (s or "").strip()
        return float(s) if s else float(default)
    except Exception:
        return float(default)


def _text(value) -> str:
    return str(value).strip() if value is not None else ""


_TRUE_STRINGS = {"1", "true", "yes", "y", "on"}


def _to_bool(value) -> bool:
    # CRM exports sometimes carry booleans as text ("false", "0")
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def parse_date(value) -> Optional[date]:
    """
    Accepts date/datetime objects and ISO text ("2026-01-05",
    "2026-01-05T14:30:00Z"). Anything unreadable counts as absent.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        return None


def _canonical_part(service_type, glass_type, job_type, part_total, calibration_type) -> Part:
    service, glass = canonical_service_and_glass(service_type, glass_type, job_type)
    return Part(
        service_type=service,
        glass_type=glass,
        part_total=_to_float(part_total, 0.0),
        calibration_type=_text(calibration_type) or "none",
    )


def _customer_type(value) -> str:
    ct = _text(value).lower() or "retail"
    return ct if ct in CUSTOMER_TYPES else "retail"


def part_from_dict(raw: Mapping[str, Any]) -> Part:
    return _canonical_part(
        raw.get("serviceType"),
        raw.get("glassType"),
        raw.get("jobType"),
        raw.get("partTotal"),
        raw.get("calibrationType"),
    )


def vehicle_from_dict(raw: Mapping[str, Any]) -> Vehicle:
    return Vehicle(
        year=_text(raw.get("vehicleYear")),
        make=_text(raw.get("vehicleMake")),
        model=_text(raw.get("vehicleModel")),
        vin=_text(raw.get("vin")),
        parts=tuple(part_from_dict(p) for p in (raw.get("parts") or [])),
    )


def validate_vehicles(vehicles) -> list:
    """
    Checks the nested shape of a vehicles payload: a list of objects whose
    parts (when present) are a list of objects. Returns the list.
    """
    if not isinstance(vehicles, list):
        raise MalformedJobError("Job vehicles must be a list")
    for v in vehicles:
        if not isinstance(v, Mapping):
            raise MalformedJobError("Each vehicle must be a JSON object")
        parts = v.get("parts") or []
        if not isinstance(parts, list) or not all(isinstance(p, Mapping) for p in parts):
            raise MalformedJobError("Vehicle parts must be a list of JSON objects")
    return vehicles


def job_from_dict(payload: Mapping[str, Any]) -> Job:
    """Build a Job from the CRM's JSON representation."""
    if not isinstance(payload, Mapping):
        raise MalformedJobError("Job payload must be a JSON object")
    job_number = _text(payload.get("jobNumber"))
    if not job_number:
        raise MalformedJobError("Job payload is missing jobNumber")
    vehicles = validate_vehicles(payload.get("vehicles") or [])

    return Job(
        job_number=job_number,
        vehicles=tuple(vehicle_from_dict(v) for v in vehicles),
        first_name=_text(payload.get("firstName")),
        last_name=_text(payload.get("lastName")),
        is_business=_to_bool(payload.get("isBusiness", False)),
        business_name=_text(payload.get("businessName")),
        customer_type=_customer_type(payload.get("customerType")),
        phone=_text(payload.get("phone")),
        email=_text(payload.get("email")),
        street_address=_text(payload.get("streetAddress")),
        city=_text(payload.get("city")),
        state=_text(payload.get("state")),
        zip_code=_text(payload.get("zipCode")),
        subtotal=_to_float(payload.get("subtotal")),
        tax_amount=_to_float(payload.get("taxAmount")),
        total_due=_to_float(payload.get("totalDue")),
        amount_paid=_to_float(payload.get("amountPaid")),
        balance_due=_to_float(payload.get("balanceDue")),
        install_date=parse_date(payload.get("installDate")),
        created_at=parse_date(payload.get("createdAt")),
        signature_image=_text(payload.get("signatureImage")) or None,
    )


def job_from_record(rec: JobRecord) -> Job:
    """Build a Job from a stored row (vehicles and parts must be loadable)."""
    vehicles = []
    for v in rec.vehicles:
        parts = tuple(
            _canonical_part(p.service_type, p.glass_type, p.job_type, p.part_total, p.calibration_type)
            for p in v.parts
        )
        vehicles.append(
            Vehicle(
                year=_text(v.vehicle_year),
                make=_text(v.vehicle_make),
                model=_text(v.vehicle_model),
                vin=_text(v.vin),
                parts=parts,
            )
        )

    return Job(
        job_number=_text(rec.job_number),
        vehicles=tuple(vehicles),
        first_name=_text(rec.first_name),
        last_name=_text(rec.last_name),
        is_business=bool(rec.is_business),
        business_name=_text(rec.business_name),
        customer_type=_customer_type(rec.customer_type),
        phone=_text(rec.phone),
        email=_text(rec.email),
        street_address=_text(rec.street_address),
        city=_text(rec.city),
        state=_text(rec.state),
        zip_code=_text(rec.zip_code),
        subtotal=float(rec.subtotal or 0.0),
        tax_amount=float(rec.tax_amount or 0.0),
        total_due=float(rec.total_due or 0.0),
        amount_paid=float(rec.amount_paid or 0.0),
        balance_due=float(rec.balance_due or 0.0),
        install_date=parse_date(rec.install_date),
        created_at=parse_date(rec.created_at),
        signature_image=(rec.signature_image or "").strip() or None,
    )
