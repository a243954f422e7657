"""
Ledger error taxonomy.

Every engine failure surfaces as one of these. Routes map them to HTTP
status codes; the CLI prints the message.

- ValidationError: rejected before any write, caller may fix and retry.
- NotFoundError: referenced sale/client/payment/product does not exist.
- IntegrityError: a delete or write would break a reference.
- PartialWriteError: a sale insert succeeded but its items did not; the
  sale row was removed again before this was raised.
- ConsistencyDriftError: a write failed in the middle of a loop (FIFO
  allocation, backup restore). The ledger must be verified.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger engine errors."""

    status_code = 500
    inconsistent = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        if self.inconsistent:
            payload["inconsistent"] = True
        return payload


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""

    status_code = 400


class NotFoundError(LedgerError):
    status_code = 404


class IntegrityError(LedgerError):
    """409-level reference conflict (e.g. deleting a product still on a sale)."""

    status_code = 409


class PartialWriteError(LedgerError):
    inconsistent = True


class ConsistencyDriftError(LedgerError):
    inconsistent = True


INCONSISTENT_MESSAGE = "Something went wrong and the data may be inconsistent. Please verify."
