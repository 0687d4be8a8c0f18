from __future__ import annotations

import base64
import io
import logging
import os

import pytest
from PIL import Image
from pypdf import PdfReader
from reportlab.pdfgen import canvas

from config import Config
from errors import MalformedJobError, ReceiptError, ReceiptSerializationError
from import_jobs import import_jobs
from models import JobRecord
from receipt_service import (
    DEALER,
    ROCK_CHIP_REPAIR,
    generate_and_store_receipt,
    generate_receipt_base64,
    generate_receipt_preview,
    render_receipt,
)


def _pdf_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _page_count(data: bytes) -> int:
    return len(PdfReader(io.BytesIO(data)).pages)


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def receipt_log():
    handler = _ListHandler()
    logger = logging.getLogger("receipts")
    logger.addHandler(handler)
    yield handler.records
    logger.removeHandler(handler)


def test_dealer_invoice(make_job, now, vehicle_payload, part_payload):
    job = make_job(
        customerType="dealer",
        isBusiness=True,
        businessName="North Star Motors",
        vehicles=[vehicle_payload([part_payload(service="repair")])],
    )
    rendered = render_receipt(job, now=now, logo_path="")
    text = _pdf_text(rendered.pdf_bytes)

    assert rendered.receipt_type == DEALER
    assert rendered.receipt_label == "Dealer Invoice"
    assert "INVOICE" in text
    assert "RECEIPT" not in text
    assert "WARRANTY" not in text
    assert "CUSTOMER ACKNOWLEDGMENT" not in text
    assert "North Star Motors" in text


def test_rock_chip_receipt(make_job, now, vehicle_payload, part_payload):
    job = make_job(vehicles=[vehicle_payload([part_payload(service="repair", total=89)])])
    rendered = render_receipt(job, now=now, logo_path="")
    text = _pdf_text(rendered.pdf_bytes)

    assert rendered.receipt_type == ROCK_CHIP_REPAIR
    assert "RECEIPT" in text
    assert "WARRANTY" in text
    assert "WARRANTY - REPLACEMENTS" not in text
    assert "CUSTOMER ACKNOWLEDGMENT" in text
    assert "Windshield Repair" in text


def test_header_and_totals_content(make_job, now):
    text = _pdf_text(render_receipt(make_job(), now=now, logo_path="").pdf_bytes)
    assert "JOB#: J-2026-1234" in text
    assert "Date: Jan 5, 2026" in text
    assert "DUE DATE: Jan 5, 2026" in text
    assert "$378.88" in text
    assert "2019 Honda Accord" in text


def test_declined_calibration_notice(make_job, now, vehicle_payload, part_payload):
    job = make_job(vehicles=[vehicle_payload([part_payload(calibration="declined")])])
    text = _pdf_text(render_receipt(job, now=now, logo_path="").pdf_bytes)
    assert "CALIBRATION DECLINED ACKNOWLEDGMENT" in text
    assert "ADDITIONAL INFO" in text


def test_long_job_spans_pages(make_job, now, vehicle_payload, part_payload):
    parts = [part_payload(glass="door_glass", total=25) for _ in range(12)]
    job = make_job(vehicles=[vehicle_payload(parts), vehicle_payload(parts, make="Ford", vin="")])
    rendered = render_receipt(job, now=now, logo_path="")
    assert rendered.page_count >= 2
    assert _page_count(rendered.pdf_bytes) == rendered.page_count


def test_page_count_matches_single_page(make_job, now):
    rendered = render_receipt(make_job(customerType="dealer"), now=now, logo_path="")
    assert rendered.page_count == 1
    assert _page_count(rendered.pdf_bytes) == 1


def test_same_input_same_bytes(make_job, now, signature_data_url):
    job = make_job(signatureImage=signature_data_url)
    first = render_receipt(job, now=now, logo_path="")
    second = render_receipt(job, now=now, logo_path="")
    assert first.pdf_bytes == second.pdf_bytes
    assert first.filename == second.filename


def test_preview_and_base64_carry_the_same_document(make_job, now):
    job = make_job()
    attachment = generate_receipt_base64(job, now=now, logo_path="")
    with generate_receipt_preview(job, now=now, logo_path="") as preview:
        data = preview.stream.getvalue()
        assert preview.filename == attachment.filename
        assert preview.receipt_label == "Windshield Replacement Invoice"

    assert base64.b64decode(attachment.pdf_base64) == data
    assert data[:5] == b"%PDF-"
    assert preview.stream.closed


def test_job_without_vehicles_is_rejected(make_job, now):
    job = make_job(vehicles=[])
    for generate in (render_receipt, generate_receipt_preview, generate_receipt_base64):
        with pytest.raises(MalformedJobError):
            generate(job, now=now, logo_path="")


def test_save_failure_is_reported(make_job, now, monkeypatch):
    def _boom(self):
        raise OSError("disk full")

    monkeypatch.setattr(canvas.Canvas, "save", _boom)
    with pytest.raises(ReceiptSerializationError) as exc:
        render_receipt(make_job(), now=now, logo_path="")
    assert isinstance(exc.value, ReceiptError)


def test_logo_replaces_heading(make_job, now, tmp_path):
    logo = tmp_path / "logo.png"
    Image.new("RGB", (300, 100), (0, 90, 160)).save(logo)
    job = make_job(customerType="dealer")

    text = _pdf_text(render_receipt(job, now=now, logo_path=str(logo)).pdf_bytes)
    assert Config.COMPANY_NAME not in text
    assert Config.COMPANY_ADDRESS in text


def test_unreadable_logo_falls_back_to_heading(make_job, now, tmp_path, receipt_log):
    logo = tmp_path / "logo.jpg"
    logo.write_bytes(b"this is not a jpeg")
    job = make_job(customerType="dealer")

    text = _pdf_text(render_receipt(job, now=now, logo_path=str(logo)).pdf_bytes)
    assert Config.COMPANY_NAME in text
    assert "receipt.logo.fallback" in [getattr(r, "event", None) for r in receipt_log]


def test_unreadable_signature_still_renders(make_job, now, receipt_log):
    job = make_job(signatureImage="definitely-not-base64!")
    text = _pdf_text(render_receipt(job, now=now, logo_path="").pdf_bytes)
    assert "Customer Signature" in text
    assert "receipt.signature.fallback" in [getattr(r, "event", None) for r in receipt_log]


def test_generate_and_store_receipt(session_factory, job_payload, now, _exports_dir):
    with session_factory() as s:
        assert import_jobs(s, [job_payload()]) == (1, 0)
        job_id = s.query(JobRecord.id).filter(JobRecord.job_number == "J-2026-1234").scalar()

        path = generate_and_store_receipt(s, job_id, now=now)
        rec = s.get(JobRecord, job_id)

        assert rec.receipt_pdf_path == path
        assert rec.receipt_generated_at == now

    assert os.path.dirname(path) == os.path.abspath(_exports_dir / "2026")
    assert os.path.basename(path) == "Doe_John_Jan_5_2026_0126-1234.pdf"
    with open(path, "rb") as f:
        assert f.read(5) == b"%PDF-"


def test_generate_and_store_unknown_job(session_factory, now):
    with session_factory() as s:
        with pytest.raises(ValueError):
            generate_and_store_receipt(s, 404, now=now)
