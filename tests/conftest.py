from __future__ import annotations

import base64
import io
import os
from datetime import datetime

import pytest

# Set env before any project imports (Config is read at import time).
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RECEIPT_LOGO_PATH", "")
os.environ.setdefault("RECEIPT_INVOICE_PREFIX", "0126")

FIXED_NOW = datetime(2026, 1, 20, 9, 30)


@pytest.fixture(autouse=True)
def _exports_dir(tmp_path, monkeypatch):
    from config import Config

    exports = tmp_path / "exports"
    monkeypatch.setattr(Config, "EXPORTS_DIR", exports.as_posix())
    monkeypatch.setattr(Config, "RECEIPT_LOGO_PATH", "")
    return exports


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


def _part(service="replace", glass="windshield", total=350.0, calibration="none", **extra):
    raw = {"serviceType": service, "glassType": glass, "partTotal": total, "calibrationType": calibration}
    raw.update(extra)
    return raw


def _vehicle(parts, vin="1HGCM82633A004352", year="2019", make="Honda", model="Accord"):
    return {"vehicleYear": year, "vehicleMake": make, "vehicleModel": model, "vin": vin, "parts": parts}


@pytest.fixture
def part_payload():
    return _part


@pytest.fixture
def vehicle_payload():
    return _vehicle


@pytest.fixture
def job_payload():
    def _build(**overrides) -> dict:
        payload = {
            "jobNumber": "J-2026-1234",
            "isBusiness": False,
            "customerType": "retail",
            "firstName": "John",
            "lastName": "Doe",
            "phone": "2105551234",
            "email": "john@example.com",
            "streetAddress": "123 Main St",
            "city": "San Antonio",
            "state": "TX",
            "zipCode": "78201",
            "vehicles": [_vehicle([_part()])],
            "subtotal": 350.0,
            "taxAmount": 28.88,
            "totalDue": 378.88,
            "amountPaid": 0,
            "balanceDue": 378.88,
            "installDate": "2026-01-05",
            "createdAt": "2026-01-02T15:04:05Z",
        }
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture
def make_job(job_payload):
    from jobs import job_from_dict

    def _build(**overrides):
        return job_from_dict(job_payload(**overrides))

    return _build


def _signature_png(size=(120, 40)) -> bytes:
    """White stroke on a near-black pad, like the tech's signature capture."""
    from PIL import Image, ImageDraw

    img = Image.new("RGB", size, (20, 20, 20))
    draw = ImageDraw.Draw(img)
    draw.line([(10, 30), (40, 8), (70, 32), (110, 10)], fill=(255, 255, 255), width=3)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def signature_png() -> bytes:
    return _signature_png()


@pytest.fixture
def signature_data_url(signature_png) -> str:
    return "data:image/png;base64," + base64.b64encode(signature_png).decode("ascii")


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{(tmp_path / 'jobs.db').as_posix()}"


@pytest.fixture
def session_factory(db_url):
    from models import Base, make_engine, make_session_factory

    engine = make_engine(db_url)
    Base.metadata.create_all(engine)
    yield make_session_factory(engine)
    engine.dispose()
