# receipt_service.py
import base64
import io
import logging
import os
import re
import time
from dataclasses import dataclass, replace
from datetime import date, datetime
from functools import reduce
from typing import Callable, Optional

from reportlab.pdfgen import canvas
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase.pdfmetrics import stringWidth

from config import Config
from errors import MalformedJobError, ReceiptSerializationError
from jobs import Job, Vehicle, Part, job_from_record
from logging_setup import get_logger, log_event, log_exception, monotonic_ms
from models import JobRecord
from receipt_text import (
    ACKNOWLEDGMENT_SENTENCE,
    CALIBRATION_DECLINED_TEXT,
    CALIBRATION_DECLINED_TITLE,
    CARD_PAYMENT_NOTICE,
    REPLACEMENT_WARRANTY_TEXT,
    REPLACEMENT_WARRANTY_TITLE,
    ROCK_CHIP_WARRANTY_TEXT,
    ROCK_CHIP_WARRANTY_TITLE,
    WINDSHIELD_BONUS_TEXT,
    WINDSHIELD_BONUS_TITLE,
)
from signature import process_signature_image

logger = get_logger(__name__)

# -----------------------------
# Receipt types
# -----------------------------
DEALER = "dealer"
FLEET = "fleet"
ROCK_CHIP_REPAIR = "rock_chip_repair"
WINDSHIELD_REPLACEMENT = "windshield_replacement"
OTHER_GLASS_REPLACEMENT = "other_glass_replacement"

RECEIPT_TYPE_LABELS = {
    DEALER: "Dealer Invoice",
    FLEET: "Fleet Invoice",
    ROCK_CHIP_REPAIR: "Rock Chip Repair Invoice",
    WINDSHIELD_REPLACEMENT: "Windshield Replacement Invoice",
    OTHER_GLASS_REPLACEMENT: "Glass Replacement Invoice",
}


def classify(job: Job) -> str:
    """Dealer/fleet customers always win; otherwise the parts decide."""
    if job.customer_type == DEALER:
        return DEALER
    if job.customer_type == FLEET:
        return FLEET

    parts = job.all_parts()
    if len(parts) == 1 and parts[0].matches("repair", "windshield"):
        return ROCK_CHIP_REPAIR
    if any(p.matches("replace", "windshield") for p in parts):
        return WINDSHIELD_REPLACEMENT
    return OTHER_GLASS_REPLACEMENT


# -----------------------------
# Formatting helpers
# -----------------------------
def _money(x) -> str:
    try:
        return f"${float(x):.2f}"
    except Exception:
        return f"${x}"


def _safe_filename(name: str) -> str:
    # strip characters not allowed on Windows/mac paths
    return re.sub(r'[\\/*?:"<>|]', "", (name or "")).strip() or "Receipt"


def _format_phone(phone: str | None) -> str:
    raw = (phone or "").strip()
    if not raw:
        return ""
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    return re.sub(r"\)\s+", ") ", raw)


def _city_state_postal_line(city: str | None, state: str | None, postal_code: str | None) -> str:
    city_val = (city or "").strip()
    state_val = (state or "").strip().upper()
    postal_val = (postal_code or "").strip()
    city_state = ", ".join([p for p in [city_val, state_val] if p])
    if city_state and postal_val:
        return f"{city_state} {postal_val}"
    return city_state or postal_val


def _format_date(d: Optional[date], now: datetime) -> str:
    d = d or now.date()
    return f"{d:%b} {d.day}, {d.year}"


def _wrap_text(text, font, size, max_width):
    words = str(text).split()
    lines = []
    current = ""

    def split_long_token(token: str):
        """Break a single long token (like a VIN or URL) into width-safe chunks."""
        if stringWidth(token, font, size) <= max_width:
            return [token]
        chunks = []
        remaining = token
        while remaining:
            lo, hi = 1, len(remaining)
            fit = 1
            while lo <= hi:
                mid = (lo + hi) // 2
                if stringWidth(remaining[:mid], font, size) <= max_width:
                    fit = mid
                    lo = mid + 1
                else:
                    hi = mid - 1
            chunks.append(remaining[:fit])
            remaining = remaining[fit:]
        return chunks

    expanded_words = []
    for w in words:
        expanded_words.extend(split_long_token(w))

    for w in expanded_words:
        test = current + (" " if current else "") + w
        if stringWidth(test, font, size) <= max_width:
            current = test
        else:
            if current:
                lines.append(current)
            current = w
    if current:
        lines.append(current)
    return lines or [""]


def _split_text_to_size(text: str, font: str, size: float, max_width: float) -> list[str]:
    """Wrap each paragraph separately; blank source lines stay as blank lines."""
    lines: list[str] = []
    for para in str(text or "").split("\n"):
        lines.extend(_wrap_text(para, font, size, max_width))
    return lines


# -----------------------------
# Layout state
# -----------------------------
PAGE_W, PAGE_H = A4

# Millimetres from the top edge of an A4 page.
TOP_MARGIN = 20.0
PAGE_BOTTOM = 270.0
LEFT = 20.0
BODY_WIDTH = 170.0


@dataclass(frozen=True)
class LayoutState:
    """
    Where the next line goes: page number (1-based, matches the canvas) and
    the baseline offset in mm from the top of that page. Every section takes
    one of these and returns the next one.
    """
    page: int = 1
    cursor_y: float = TOP_MARGIN

    def advance(self, dy: float) -> "LayoutState":
        return replace(self, cursor_y=self.cursor_y + dy)

    def at(self, y: float) -> "LayoutState":
        return replace(self, cursor_y=y)

    def fits(self, height: float) -> bool:
        return self.cursor_y + height <= PAGE_BOTTOM

    def next_page(self) -> "LayoutState":
        return LayoutState(page=self.page + 1, cursor_y=TOP_MARGIN)


@dataclass(frozen=True)
class ReceiptContext:
    job: Job
    receipt_type: str
    now: datetime
    logo: Optional[ImageReader] = None
    signature: Optional[ImageReader] = None


def _y(top_mm: float) -> float:
    return PAGE_H - top_mm * mm


def _text(pdf, x, y, text, font="Helvetica", size=10, align="left", color=(0, 0, 0)):
    pdf.setFont(font, size)
    pdf.setFillColorRGB(*color)
    if align == "right":
        pdf.drawRightString(x * mm, _y(y), str(text))
    elif align == "center":
        pdf.drawCentredString(x * mm, _y(y), str(text))
    else:
        pdf.drawString(x * mm, _y(y), str(text))


def _hline(pdf, x1, x2, y, gray=200):
    pdf.setStrokeGray(gray / 255.0)
    pdf.setLineWidth(0.5)
    pdf.line(x1 * mm, _y(y), x2 * mm, _y(y))


def _ensure_space(pdf, state: LayoutState, height: float) -> LayoutState:
    """Start a new page unless `height` mm still fits below the cursor."""
    if state.fits(height) or state.cursor_y <= TOP_MARGIN:
        return state
    pdf.showPage()
    return state.next_page()


def _draw_lines(pdf, state: LayoutState, lines, *, font="Helvetica", size=8, line_height=3.5) -> LayoutState:
    # Checked per line so long legal text flows across pages.
    for line in lines:
        state = _ensure_space(pdf, state, line_height)
        if line:
            _text(pdf, LEFT, state.cursor_y, line, font, size)
        state = state.advance(line_height)
    return state


# -----------------------------
# Sections: (pdf, ctx, state) -> state
# -----------------------------
def _company_header(pdf, ctx: ReceiptContext, state: LayoutState) -> LayoutState:
    y = state.cursor_y
    placed = False
    if ctx.logo is not None:
        try:
            pdf.drawImage(ctx.logo, LEFT * mm, _y(y + 15), width=60 * mm, height=20 * mm, mask="auto")
            placed = True
        except Exception as e:
            log_event(logger, "receipt.logo.fallback", level=logging.WARNING,
                      job_number=ctx.job.job_number, error=repr(e))
    if placed:
        y += 18
    else:
        _text(pdf, LEFT, y, Config.COMPANY_NAME, "Helvetica-Bold", 16)
        y += 6

    info_lines = [
        Config.COMPANY_ADDRESS,
        Config.COMPANY_CITY_STATE_ZIP,
        Config.COMPANY_EMAIL,
        _format_phone(Config.COMPANY_PHONE),
    ]
    for i, ln in enumerate(info_lines):
        _text(pdf, LEFT, y + 5 * i, ln, "Helvetica", 10)

    return state.at(y + 24)


def _invoice_header(pdf, ctx: ReceiptContext, state: LayoutState) -> LayoutState:
    # Sits beside the company block, so it starts above the cursor.
    y = state.cursor_y - 10
    title = "INVOICE" if ctx.receipt_type == DEALER else "RECEIPT"
    _text(pdf, 150, y, title, "Helvetica-Bold", 20, align="center")
    _text(pdf, 190, y + 10, f"JOB#: {ctx.job.job_number}", "Helvetica", 10, align="right")
    _text(pdf, 190, y + 15, f"Date: {_format_date(ctx.job.receipt_date, ctx.now)}", "Helvetica", 10, align="right")
    return state.at(y + 25)


def _customer_block(pdf, ctx: ReceiptContext, state: LayoutState) -> LayoutState:
    job = ctx.job
    extra_lines = [
        ln for ln in (
            job.street_address,
            _city_state_postal_line(job.city, job.state, job.zip_code),
            _format_phone(job.phone),
        )
        if ln
    ]
    state = _ensure_space(pdf, state.advance(5), 11 + 5 * len(extra_lines))
    y = state.cursor_y

    _text(pdf, LEFT, y, "To:", "Helvetica-Bold", 10)
    _text(pdf, LEFT, y + 6, job.display_name, "Helvetica", 10)
    offset = 11
    for ln in extra_lines:
        _text(pdf, LEFT, y + offset, ln, "Helvetica", 10)
        offset += 5

    return state.at(y + offset + 5)


LINE_ITEM_COLUMNS = (("Item", 20), ("DESCRIPTION", 35), ("QTY", 120), ("PRICE", 140), ("TOTAL", 170))
LINE_ITEM_HEADER_H = 8


def _line_item_height(vehicle: Vehicle) -> float:
    return 5 + 5 + (5 if vehicle.vin else 0) + 3


def _line_item_columns(pdf, state: LayoutState) -> LayoutState:
    for label, x in LINE_ITEM_COLUMNS:
        _text(pdf, x, state.cursor_y, label, "Helvetica-Bold", 9)
    _hline(pdf, 20, 190, state.cursor_y + 2)
    return state.advance(LINE_ITEM_HEADER_H)


def _line_item_row(pdf, state: LayoutState, item_no: int, vehicle: Vehicle, part: Part) -> LayoutState:
    y = state.cursor_y
    _text(pdf, 20, y, str(item_no), "Helvetica", 9)
    _text(pdf, 35, y, vehicle.descriptor, "Helvetica", 9)
    _text(pdf, 35, y + 5, part.label, "Helvetica", 9)
    if vehicle.vin:
        _text(pdf, 35, y + 10, f"VIN {vehicle.vin}", "Helvetica", 8)

    _text(pdf, 123, y, "1", "Helvetica", 9)
    _text(pdf, 140, y, _money(part.part_total), "Helvetica", 9)
    _text(pdf, 175, y, _money(part.part_total), "Helvetica", 9, align="right")
    return state.advance(_line_item_height(vehicle))


def _line_items(pdf, ctx: ReceiptContext, state: LayoutState) -> LayoutState:
    items = ctx.job.line_items()
    first_h = _line_item_height(items[0][0]) if items else 0
    state = _ensure_space(pdf, state.advance(5), LINE_ITEM_HEADER_H + first_h)
    state = _line_item_columns(pdf, state)

    for item_no, (vehicle, part) in enumerate(items, start=1):
        row_h = _line_item_height(vehicle)
        if not state.fits(row_h):
            state = _ensure_space(pdf, state, LINE_ITEM_HEADER_H + row_h)
            state = _line_item_columns(pdf, state)
        state = _line_item_row(pdf, state, item_no, vehicle, part)
    return state


def _totals(pdf, ctx: ReceiptContext, state: LayoutState) -> LayoutState:
    job = ctx.job
    rows = [
        ("SUBTOTAL", job.parts_subtotal(), "Helvetica"),
        ("TOTAL", job.total_due, "Helvetica-Bold"),
    ]
    if job.amount_paid > 0:
        rows.append(("PAID", job.amount_paid, "Helvetica"))
    if job.balance_due > 0:
        rows.append(("BALANCE DUE", job.balance_due, "Helvetica-Bold"))

    state = _ensure_space(pdf, state, 8 * (len(rows) + 1))
    y = state.cursor_y
    _hline(pdf, 130, 190, y)
    y += 8
    for label, amount, font in rows:
        _text(pdf, 140, y, label, font, 10)
        _text(pdf, 190, y, _money(amount), font, 10, align="right")
        y += 8

    return state.at(y + 5)


def _payment_info(pdf, ctx: ReceiptContext, state: LayoutState) -> LayoutState:
    notice = _split_text_to_size(CARD_PAYMENT_NOTICE, "Helvetica", 8, 80 * mm)
    state = _ensure_space(pdf, state.advance(5), 6 + 5 + 4 * len(notice))
    y = state.cursor_y

    _text(pdf, LEFT, y, "PAYMENT INFO", "Helvetica-Bold", 9)
    y += 6
    _text(pdf, LEFT, y, f"DUE DATE: {_format_date(ctx.job.receipt_date, ctx.now)}", "Helvetica", 9)
    y += 5
    for i, ln in enumerate(notice):
        _text(pdf, LEFT, y + 4 * i, ln, "Helvetica", 8)

    # extra gap before the legal text
    return state.at(y + 4 * len(notice) + 5 + 10)


def _legal_block(
    pdf,
    state: LayoutState,
    title: str,
    body: str,
    *,
    title_size=9,
    title_color=(0, 0, 0),
    body_size=8,
    line_height=3.5,
    after=5.0,
) -> LayoutState:
    # heading stays with its first line
    state = _ensure_space(pdf, state, 6 + line_height)
    _text(pdf, LEFT, state.cursor_y, title, "Helvetica-Bold", title_size, color=title_color)
    state = state.advance(6)

    lines = _split_text_to_size(body, "Helvetica", body_size, BODY_WIDTH * mm)
    state = _draw_lines(pdf, state, lines, font="Helvetica", size=body_size, line_height=line_height)
    return state.advance(after)


def _calibration_disclaimer(pdf, ctx: ReceiptContext, state: LayoutState) -> LayoutState:
    if ctx.receipt_type != WINDSHIELD_REPLACEMENT or not ctx.job.has_declined_calibration():
        return state
    return _legal_block(
        pdf,
        state,
        CALIBRATION_DECLINED_TITLE,
        CALIBRATION_DECLINED_TEXT,
        title_size=10,
        title_color=(180 / 255.0, 0, 0),
        body_size=9,
        line_height=4.0,
        after=10.0,
    )


def _no_warranty(pdf, state: LayoutState) -> LayoutState:
    return state


def _replacement_warranty(pdf, state: LayoutState) -> LayoutState:
    return _legal_block(pdf, state, REPLACEMENT_WARRANTY_TITLE, REPLACEMENT_WARRANTY_TEXT)


def _rock_chip_warranty(pdf, state: LayoutState) -> LayoutState:
    return _legal_block(pdf, state, ROCK_CHIP_WARRANTY_TITLE, ROCK_CHIP_WARRANTY_TEXT)


def _windshield_replacement_info(pdf, state: LayoutState) -> LayoutState:
    state = _legal_block(pdf, state, WINDSHIELD_BONUS_TITLE, WINDSHIELD_BONUS_TEXT)
    return _replacement_warranty(pdf, state)


WARRANTY_BLOCKS: dict[str, Callable] = {
    DEALER: _no_warranty,
    FLEET: _replacement_warranty,
    ROCK_CHIP_REPAIR: _rock_chip_warranty,
    WINDSHIELD_REPLACEMENT: _windshield_replacement_info,
    OTHER_GLASS_REPLACEMENT: _replacement_warranty,
}


def _warranty_block(pdf, ctx: ReceiptContext, state: LayoutState) -> LayoutState:
    return WARRANTY_BLOCKS[ctx.receipt_type](pdf, state)


SIGNED_BLOCK_H = 55
BLANK_BLOCK_H = 35


def _signature_block(pdf, ctx: ReceiptContext, state: LayoutState) -> LayoutState:
    if ctx.job.is_business or ctx.receipt_type == DEALER:
        return state

    needed = SIGNED_BLOCK_H if ctx.signature is not None else BLANK_BLOCK_H
    state = _ensure_space(pdf, state.advance(10), needed)
    y = state.cursor_y

    _text(pdf, LEFT, y, "CUSTOMER ACKNOWLEDGMENT", "Helvetica-Bold", 9)
    y += 8
    _text(pdf, LEFT, y, ACKNOWLEDGMENT_SENTENCE, "Helvetica", 8)
    y += 12

    if ctx.signature is not None:
        _hline(pdf, 20, 100, y + 15, gray=100)
        pdf.drawImage(ctx.signature, LEFT * mm, _y(y + 16), width=80 * mm, height=18 * mm, mask="auto")
        _text(pdf, LEFT, y + 20, "Customer Signature", "Helvetica", 8)
        _text(pdf, 120, y + 10, f"Date: {_format_date(None, ctx.now)}", "Helvetica", 8)
        return state.at(y + 30)

    # Blank lines for signing on paper
    _hline(pdf, 20, 100, y, gray=100)
    _text(pdf, LEFT, y + 5, "Customer Signature", "Helvetica", 8)
    _hline(pdf, 120, 180, y, gray=100)
    _text(pdf, 120, y + 5, "Date", "Helvetica", 8)
    return state.at(y + 15)


SECTIONS = (
    _company_header,
    _invoice_header,
    _customer_block,
    _line_items,
    _totals,
    _payment_info,
    _calibration_disclaimer,
    _warranty_block,
    _signature_block,
)


def render_sections(pdf, ctx: ReceiptContext, state: LayoutState | None = None) -> LayoutState:
    return reduce(lambda st, section: section(pdf, ctx, st), SECTIONS, state or LayoutState())


# -----------------------------
# Images (failures fall back, never raise)
# -----------------------------
def _load_logo(path: str | None, job_number: str) -> Optional[ImageReader]:
    if not path or not os.path.exists(path):
        return None
    try:
        img = ImageReader(path)
        img.getSize()
        return img
    except Exception as e:
        log_event(logger, "receipt.logo.fallback", level=logging.WARNING,
                  job_number=job_number, path=path, error=repr(e))
        return None


def _load_signature(job: Job) -> Optional[ImageReader]:
    if not job.signature_image:
        return None
    try:
        img = ImageReader(io.BytesIO(process_signature_image(job.signature_image)))
        img.getSize()
        return img
    except Exception as e:
        log_event(logger, "receipt.signature.fallback", level=logging.WARNING,
                  job_number=job.job_number, error=repr(e))
        return None


def make_context(job: Job, *, now: datetime | None = None, logo_path: str | None = None) -> ReceiptContext:
    if not job.vehicles:
        raise MalformedJobError(f"Job {job.job_number} has no vehicles")
    if logo_path is None:
        logo_path = Config.RECEIPT_LOGO_PATH
    # logo first, then signature; layout needs both before it starts
    logo = _load_logo(logo_path, job.job_number)
    signature = _load_signature(job)
    return ReceiptContext(
        job=job,
        receipt_type=classify(job),
        now=now or datetime.now(),
        logo=logo,
        signature=signature,
    )


# -----------------------------
# Filename + output
# -----------------------------
def receipt_filename(job: Job, *, now: datetime | None = None) -> str:
    now = now or datetime.now()
    if job.is_business and job.business_name:
        base = job.business_name
    else:
        base = f"{job.last_name}_{job.first_name}"
    base = re.sub(r"\s+", "_", _safe_filename(base))
    date_part = re.sub(r"\s+", "_", _format_date(job.receipt_date, now)).replace(",", "")
    invoice_token = f"{Config.RECEIPT_INVOICE_PREFIX}-{job.job_number[-4:]}"
    invoice_token = re.sub(r"\s+", "_", re.sub(r'[\\/*?:"<>|]', "", invoice_token))
    return f"{base}_{date_part}_{invoice_token}.pdf"


@dataclass(frozen=True)
class RenderedReceipt:
    pdf_bytes: bytes
    filename: str
    receipt_type: str
    page_count: int

    @property
    def receipt_label(self) -> str:
        return RECEIPT_TYPE_LABELS[self.receipt_type]


def render_receipt(job: Job, *, now: datetime | None = None, logo_path: str | None = None) -> RenderedReceipt:
    """
    Lay out and serialize one receipt. Each call builds its own canvas and
    layout state, so concurrent calls never share anything.
    """
    now = now or datetime.now()
    start = time.monotonic()
    log_event(logger, "receipt.generate.start", job_number=job.job_number)
    try:
        ctx = make_context(job, now=now, logo_path=logo_path)

        buf = io.BytesIO()
        pdf = canvas.Canvas(buf, pagesize=A4, invariant=1)
        pdf.setTitle(f"{RECEIPT_TYPE_LABELS[ctx.receipt_type]} - {job.job_number}")
        pdf.setAuthor(Config.COMPANY_NAME)
        final = render_sections(pdf, ctx)
        try:
            pdf.save()
        except Exception as e:
            raise ReceiptSerializationError(f"Could not write receipt for job {job.job_number}") from e

        rendered = RenderedReceipt(
            pdf_bytes=buf.getvalue(),
            filename=receipt_filename(job, now=now),
            receipt_type=ctx.receipt_type,
            page_count=final.page,
        )
    except Exception:
        log_exception(logger, "receipt.generate.error", job_number=job.job_number)
        raise

    log_event(
        logger,
        "receipt.generate.done",
        job_number=job.job_number,
        receipt_type=rendered.receipt_type,
        pages=rendered.page_count,
        size_bytes=len(rendered.pdf_bytes),
        elapsed_ms=monotonic_ms(start),
    )
    return rendered


@dataclass
class ReceiptPreview:
    """
    In-memory handle for viewers. The caller owns it and must close() it
    (or use it as a context manager) once the preview is gone.
    """
    stream: io.BytesIO
    filename: str
    receipt_type: str

    @property
    def receipt_label(self) -> str:
        return RECEIPT_TYPE_LABELS[self.receipt_type]

    def close(self) -> None:
        self.stream.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


@dataclass(frozen=True)
class ReceiptAttachment:
    pdf_base64: str
    filename: str
    receipt_type: str


def generate_receipt_preview(job: Job, *, now: datetime | None = None, logo_path: str | None = None) -> ReceiptPreview:
    rendered = render_receipt(job, now=now, logo_path=logo_path)
    return ReceiptPreview(
        stream=io.BytesIO(rendered.pdf_bytes),
        filename=rendered.filename,
        receipt_type=rendered.receipt_type,
    )


def generate_receipt_base64(job: Job, *, now: datetime | None = None, logo_path: str | None = None) -> ReceiptAttachment:
    rendered = render_receipt(job, now=now, logo_path=logo_path)
    return ReceiptAttachment(
        pdf_base64=base64.b64encode(rendered.pdf_bytes).decode("ascii"),
        filename=rendered.filename,
        receipt_type=rendered.receipt_type,
    )


def generate_and_store_receipt(session, job_id: int, *, now: datetime | None = None) -> str:
    """
    Generates (or regenerates) the receipt PDF for a stored job, writes it
    under EXPORTS_DIR/<year>/ and records receipt_pdf_path + receipt_generated_at.

    Returns: absolute pdf path on disk.
    """
    rec = session.get(JobRecord, job_id)
    if not rec:
        raise ValueError(f"Job not found: id={job_id}")

    now = now or datetime.now()
    job = job_from_record(rec)
    rendered = render_receipt(job, now=now)

    year = str((job.receipt_date or now.date()).year)
    year_dir = os.path.join(Config.EXPORTS_DIR, year)
    os.makedirs(year_dir, exist_ok=True)
    pdf_path = os.path.abspath(os.path.join(year_dir, rendered.filename))
    with open(pdf_path, "wb") as f:
        f.write(rendered.pdf_bytes)

    rec.receipt_pdf_path = pdf_path
    rec.receipt_generated_at = now
    session.add(rec)
    session.commit()

    return pdf_path
