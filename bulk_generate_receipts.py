# bulk_generate_receipts.py
import argparse
import os
from datetime import datetime
from pathlib import Path

from sqlalchemy import and_, extract, or_
from sqlalchemy.orm import selectinload

from config import Config
from models import Base, make_engine, make_session_factory, JobRecord, VehicleRecord
from receipt_service import generate_and_store_receipt


def regenerate(session, *, year: str = "", job_numbers=(), force: bool = False, now: datetime | None = None):
    """
    Writes receipts for the matching stored jobs. Jobs whose stored PDF still
    exists are skipped unless force=True. Returns (generated, skipped, failed).
    """
    now = now or datetime.now()
    q = (
        session.query(JobRecord)
        .options(selectinload(JobRecord.vehicles).selectinload(VehicleRecord.parts))
        .order_by(JobRecord.created_at.asc())
    )
    if year:
        # same date rule the store uses for the year folder: install date, else created date
        no_install_date = or_(JobRecord.install_date.is_(None), JobRecord.install_date == "")
        q = q.filter(
            or_(
                JobRecord.install_date.startswith(year),
                and_(no_install_date, extract("year", JobRecord.created_at) == int(year)),
            )
        )
    if job_numbers:
        q = q.filter(JobRecord.job_number.in_(list(job_numbers)))

    jobs = q.all()
    if not jobs:
        print("No jobs found for the given filter.")
        return 0, 0, 0

    total = len(jobs)
    generated = skipped = failed = 0

    for i, rec in enumerate(jobs, start=1):
        if rec.receipt_pdf_path and os.path.exists(rec.receipt_pdf_path) and not force:
            skipped += 1
            print(f"[{i}/{total}] SKIP  {rec.job_number} (already has receipt)")
            continue
        try:
            path = generate_and_store_receipt(session, rec.id, now=now)
        except Exception as e:
            # one bad job must not stop the run
            session.rollback()
            failed += 1
            print(f"[{i}/{total}] FAIL  {rec.job_number}  ({e})")
            continue
        generated += 1
        print(f"[{i}/{total}] DONE  {rec.job_number} -> {path}")

    return generated, skipped, failed


def main():
    parser = argparse.ArgumentParser(description="Bulk generate job receipt PDFs.")
    parser.add_argument("--year", type=str, default="", help="Only jobs dated in a given year (YYYY): install date, else created date.")
    parser.add_argument("--job", action="append", default=[], help="Only this job number (repeatable).")
    parser.add_argument("--all", action="store_true", help="Regenerate receipts even if one already exists.")
    args = parser.parse_args()

    target_year = (args.year or "").strip()
    if target_year and not (target_year.isdigit() and len(target_year) == 4):
        raise SystemExit("Year must be 4 digits, e.g. --year 2026")

    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)
    engine = make_engine(Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)
    SessionLocal = make_session_factory(engine)

    with SessionLocal() as s:
        generated, skipped, failed = regenerate(
            s, year=target_year, job_numbers=args.job, force=args.all
        )

    print("\nBulk receipt generation complete.")
    print(f"Generated: {generated}")
    print(f"Skipped:   {skipped}")
    print(f"Failed:    {failed}")
    print(f"Exports:   {Config.EXPORTS_DIR}")


if __name__ == "__main__":
    main()
