# app.py
from datetime import datetime
from pathlib import Path

from flask import Flask, request, jsonify, send_file, abort
from sqlalchemy.orm import selectinload
from werkzeug.exceptions import HTTPException

from config import Config
from errors import MalformedJobError, ReceiptError
from jobs import job_from_dict, job_from_record
from logging_setup import get_logger, log_event, log_exception
from models import Base, make_engine, make_session_factory, JobRecord, VehicleRecord
from receipt_service import (
    generate_and_store_receipt,
    generate_receipt_base64,
    generate_receipt_preview,
    RECEIPT_TYPE_LABELS,
)

logger = get_logger(__name__)

GENERIC_FAILURE = "Failed to generate receipt. Please try again."


# -----------------------------
# Helpers
# -----------------------------
def _ensure_dirs(db_url: str):
    if db_url.startswith("sqlite"):
        Path("instance").mkdir(parents=True, exist_ok=True)
    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)


def _job_or_404(session, job_id: int) -> JobRecord:
    rec = (
        session.query(JobRecord)
        .options(selectinload(JobRecord.vehicles).selectinload(VehicleRecord.parts))
        .filter(JobRecord.id == job_id)
        .first()
    )
    if not rec:
        abort(404)
    return rec


def _send_preview(preview, *, as_attachment: bool):
    # Flask closes the stream once the response is sent.
    resp = send_file(
        preview.stream,
        mimetype="application/pdf",
        as_attachment=as_attachment,
        download_name=preview.filename,
    )
    resp.headers["X-Receipt-Type"] = preview.receipt_label
    return resp


# -----------------------------
# App factory
# -----------------------------
def create_app(db_url: str | None = None):
    db_url = db_url or Config.SQLALCHEMY_DATABASE_URI
    _ensure_dirs(db_url)

    app = Flask(__name__)
    app.config.from_object(Config)

    engine = make_engine(db_url, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)

    SessionLocal = make_session_factory(engine)

    def db_session():
        return SessionLocal()

    # -----------------------------
    # Errors: callers get a generic message, never a partial document
    # -----------------------------
    @app.errorhandler(MalformedJobError)
    def _malformed_job(e):
        log_event(logger, "receipt.request.rejected", path=request.path, reason=str(e))
        return jsonify({"error": GENERIC_FAILURE, "detail": str(e), "retry": True}), 400

    @app.errorhandler(ReceiptError)
    def _receipt_failed(e):
        return jsonify({"error": GENERIC_FAILURE, "retry": True}), 500

    @app.errorhandler(404)
    def _not_found(e):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(Exception)
    def _unexpected(e):
        if isinstance(e, HTTPException):
            return e
        log_exception(logger, "receipt.request.failed", path=request.path, error=repr(e))
        return jsonify({"error": GENERIC_FAILURE, "retry": True}), 500

    # -----------------------------
    # Receipt routes
    # -----------------------------
    @app.route("/api/jobs/<int:job_id>/receipt")
    def job_receipt_preview(job_id):
        with db_session() as s:
            job = job_from_record(_job_or_404(s, job_id))
        return _send_preview(generate_receipt_preview(job), as_attachment=False)

    @app.route("/api/jobs/<int:job_id>/receipt/download")
    def job_receipt_download(job_id):
        with db_session() as s:
            job = job_from_record(_job_or_404(s, job_id))
        return _send_preview(generate_receipt_preview(job), as_attachment=True)

    @app.route("/api/jobs/<int:job_id>/receipt/base64", methods=["POST"])
    def job_receipt_base64(job_id):
        with db_session() as s:
            job = job_from_record(_job_or_404(s, job_id))
        attachment = generate_receipt_base64(job)
        return jsonify({
            "pdfBase64": attachment.pdf_base64,
            "pdfFilename": attachment.filename,
            "receiptType": attachment.receipt_type,
            "receiptLabel": RECEIPT_TYPE_LABELS[attachment.receipt_type],
        })

    @app.route("/api/jobs/<int:job_id>/receipt/generate", methods=["POST"])
    def job_receipt_generate(job_id):
        with db_session() as s:
            _job_or_404(s, job_id)
            path = generate_and_store_receipt(s, job_id, now=datetime.now())
        return jsonify({"path": path}), 201

    @app.route("/api/receipts/preview", methods=["POST"])
    def receipt_preview_from_payload():
        payload = request.get_json(silent=True)
        if payload is None:
            raise MalformedJobError("Request body must be a JSON job")
        job = job_from_dict(payload)
        return _send_preview(generate_receipt_preview(job), as_attachment=False)

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True)
