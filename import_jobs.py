# import_jobs.py
import argparse
import json
from datetime import datetime
from pathlib import Path

from config import Config
from errors import MalformedJobError
from jobs import _to_bool, _to_float, _text, validate_vehicles
from models import (
    Base, make_engine, make_session_factory,
    JobRecord, VehicleRecord, PartRecord
)

JSON_FILE = "jobs.json"


def _optional(value) -> str | None:
    return _text(value) or None


def _parse_created_at(value) -> datetime:
    s = (value or "").strip() if isinstance(value, str) else ""
    if s:
        try:
            return datetime.fromisoformat(s.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            pass
    return datetime.utcnow()


def _part_record(raw: dict) -> PartRecord:
    """
    Parts are stored as the CRM wrote them: old exports only carry jobType,
    and jobs.job_from_record() resolves that when the job is read.
    """
    return PartRecord(
        service_type=_optional(raw.get("serviceType")),
        glass_type=_optional(raw.get("glassType")),
        job_type=_optional(raw.get("jobType")),
        calibration_type=_text(raw.get("calibrationType")) or "none",
        part_total=_to_float(raw.get("partTotal"), 0.0),
    )


def job_record_from_export(raw: dict) -> JobRecord:
    rec = JobRecord(
        job_number=_text(raw["jobNumber"]),
        is_business=_to_bool(raw.get("isBusiness", False)),
        business_name=_optional(raw.get("businessName")),
        customer_type=_text(raw.get("customerType")) or "retail",
        first_name=_text(raw.get("firstName")),
        last_name=_text(raw.get("lastName")),
        phone=_text(raw.get("phone")),
        email=_optional(raw.get("email")),
        street_address=_optional(raw.get("streetAddress")),
        city=_optional(raw.get("city")),
        state=_optional(raw.get("state")),
        zip_code=_optional(raw.get("zipCode")),
        subtotal=_to_float(raw.get("subtotal")),
        tax_amount=_to_float(raw.get("taxAmount")),
        total_due=_to_float(raw.get("totalDue")),
        amount_paid=_to_float(raw.get("amountPaid")),
        balance_due=_to_float(raw.get("balanceDue")),
        install_date=_optional(raw.get("installDate")),
        signature_image=_optional(raw.get("signatureImage")),
        created_at=_parse_created_at(raw.get("createdAt")),
    )
    for v in raw.get("vehicles") or []:
        vehicle = VehicleRecord(
            vehicle_year=_text(v.get("vehicleYear")),
            vehicle_make=_text(v.get("vehicleMake")),
            vehicle_model=_text(v.get("vehicleModel")),
            vin=_optional(v.get("vin")),
        )
        for p in v.get("parts") or []:
            vehicle.parts.append(_part_record(p))
        rec.vehicles.append(vehicle)
    return rec


def import_jobs(session, jobs: list[dict]) -> tuple[int, int]:
    """
    Returns (created, skipped). Entries without a job number or with a
    malformed vehicles list are skipped, as are job numbers already stored.
    """
    created = 0
    skipped = 0
    for raw in jobs:
        if not isinstance(raw, dict):
            skipped += 1
            continue
        job_number = _text(raw.get("jobNumber"))
        if not job_number or not raw.get("vehicles"):
            skipped += 1
            continue
        try:
            validate_vehicles(raw["vehicles"])
        except MalformedJobError:
            skipped += 1
            continue

        # Re-running the same export must not duplicate jobs.
        existing = session.query(JobRecord).filter(JobRecord.job_number == job_number).first()
        if existing:
            skipped += 1
            continue

        session.add(job_record_from_export(raw))
        session.commit()
        created += 1
    return created, skipped


def main():
    parser = argparse.ArgumentParser(description="Import jobs from a CRM JSON export.")
    parser.add_argument("path", nargs="?", default=JSON_FILE, help="JSON file holding a list of jobs.")
    args = parser.parse_args()

    # Ensure instance/ exists for SQLite local dev
    if Config.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        Path("instance").mkdir(parents=True, exist_ok=True)

    engine = make_engine(Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)
    SessionLocal = make_session_factory(engine)

    json_path = Path(args.path)
    if not json_path.exists():
        raise FileNotFoundError(f"Could not find {json_path} in: {Path.cwd()}")

    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("jobs") or []

    with SessionLocal() as s:
        created, skipped = import_jobs(s, data)

    print("Import complete.")
    print(f"Created: {created}")
    print(f"Skipped: {skipped} (missing fields or duplicate job number)")


if __name__ == "__main__":
    main()
