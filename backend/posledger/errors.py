# Overview: Domain error taxonomy shared by the sale and stock engines and the API layer.

"""
posledger error taxonomy (authoritative)

Every error leaving a unit of work has already rolled the session back.
Routes map `code` to an HTTP status and return `{"error", "code", "details"}`.

- UnauthorizedError       caller is not a member of the tenant / lacks permission
- InvalidBranchError      branch missing, inactive, or owned by another tenant
- InvalidVariantError     variant missing, deleted, or owned by another tenant
- InsufficientStockError  requested quantity exceeds stock at validation time
- TransactionFailedError  anything unexpected inside the unit (storage errors)
- NotFoundError           read-side lookup (receipt) missing or in another tenant

Retrying is only meaningful for TransactionFailedError; the others fail
identically until the request changes.
"""

from __future__ import annotations


class PosLedgerError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class UnauthorizedError(PosLedgerError):
    code = "unauthorized"
    http_status = 403


class InvalidBranchError(PosLedgerError):
    code = "invalid_branch"
    http_status = 404


class InvalidVariantError(PosLedgerError):
    code = "invalid_variant"
    http_status = 404


class InsufficientStockError(PosLedgerError):
    """Carries enough detail for the caller to show "only N left"."""

    code = "insufficient_stock"
    http_status = 409

    def __init__(
        self,
        *,
        product_name: str,
        variant_name: str,
        available: int,
        requested: int,
        variant_id: int | None = None,
    ):
        super().__init__(
            f"Insufficient stock for {product_name} ({variant_name}): "
            f"available {available}, requested {requested}",
            details={
                "variant_id": variant_id,
                "product_name": product_name,
                "variant_name": variant_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_name = product_name
        self.variant_name = variant_name
        self.available = available
        self.requested = requested


class TransactionFailedError(PosLedgerError):
    """Unexpected failure inside a unit of work; nothing was applied."""

    code = "transaction_failed"
    http_status = 500

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class ValidationError(PosLedgerError):
    """400-level input problem."""

    code = "validation_error"
    http_status = 400


class ConflictError(PosLedgerError):
    """409-level business rule conflict (e.g., duplicate SKU)."""

    code = "conflict"
    http_status = 409


class LifecycleError(PosLedgerError):
    """Invalid lifecycle transition for a catalog entity."""

    code = "invalid_state"
    http_status = 409


class BranchError(PosLedgerError):
    code = "invalid_state"
    http_status = 409


class NotFoundError(PosLedgerError):
    """Read-side lookup of a record outside the caller's organization."""

    code = "not_found"
    http_status = 404
