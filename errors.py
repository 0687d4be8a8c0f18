# errors.py


class ReceiptError(Exception):
    """Receipt generation failed; no document was produced."""


class MalformedJobError(ReceiptError, ValueError):
    """The job cannot be laid out (no vehicles, unreadable payload)."""


class ReceiptSerializationError(ReceiptError):
    """The finished document could not be written out."""
