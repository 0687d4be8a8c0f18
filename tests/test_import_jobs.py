from __future__ import annotations

import json
import sys

from config import Config
from import_jobs import import_jobs, job_record_from_export, main
from jobs import job_from_record
from models import JobRecord
from receipt_service import ROCK_CHIP_REPAIR, classify


def test_import_skips_bad_and_duplicate_entries(session_factory, job_payload, vehicle_payload):
    batch = [
        job_payload(),
        job_payload(jobNumber="J-2026-0002", vehicles=[vehicle_payload([{"jobType": "windshield_repair"}])]),
        job_payload(),  # duplicate
        job_payload(jobNumber="J-2026-0003", vehicles=[]),
        job_payload(jobNumber=""),
        "junk",
        {"jobNumber": "X", "vehicles": "abc"},
        job_payload(jobNumber="J-2026-0004", vehicles=[1]),
        job_payload(jobNumber="J-2026-0005", vehicles=[{"parts": [None]}]),
    ]
    with session_factory() as s:
        assert import_jobs(s, batch) == (2, 7)
        assert import_jobs(s, batch) == (0, 9)
        assert s.query(JobRecord).count() == 2


def test_legacy_part_is_stored_raw_and_read_canonically(session_factory, job_payload, vehicle_payload):
    payload = job_payload(jobNumber="J-2026-0002", vehicles=[vehicle_payload([{"jobType": "windshield_repair"}])])
    with session_factory() as s:
        import_jobs(s, [payload])
        rec = s.query(JobRecord).filter(JobRecord.job_number == "J-2026-0002").one()
        part = rec.vehicles[0].parts[0]
        assert (part.service_type, part.glass_type, part.job_type) == (None, None, "windshield_repair")
        assert classify(job_from_record(rec)) == ROCK_CHIP_REPAIR


def test_record_from_export_keeps_signature_and_totals(job_payload, signature_data_url):
    rec = job_record_from_export(job_payload(signatureImage=signature_data_url, amountPaid="100.50"))
    assert rec.signature_image == signature_data_url
    assert rec.amount_paid == 100.5
    assert rec.install_date == "2026-01-05"
    assert rec.created_at.year == 2026


def test_main_reads_wrapped_export(tmp_path, monkeypatch, capsys, db_url, session_factory, job_payload):
    export = tmp_path / "export.json"
    export.write_text(json.dumps({"jobs": [job_payload(), job_payload(jobNumber="J-2026-4321")]}), encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(Config, "SQLALCHEMY_DATABASE_URI", db_url)
    monkeypatch.setattr(sys, "argv", ["import_jobs.py", str(export)])

    main()

    out = capsys.readouterr().out
    assert "Created: 2" in out
    with session_factory() as s:
        assert s.query(JobRecord).count() == 2


def test_record_from_export_reads_text_business_flag(job_payload):
    assert job_record_from_export(job_payload(isBusiness="false")).is_business is False
    assert job_record_from_export(job_payload(isBusiness="true")).is_business is True
