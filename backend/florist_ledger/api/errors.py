"""Mapping of ledger errors to HTTP responses."""

from fastapi import HTTPException, status

from florist_ledger.core.exceptions import (
    ConcurrencyExhaustedError,
    InsufficientStockError,
    InvalidTransitionError,
    ItemNotFoundError,
    LedgerError,
    LedgerImmutableError,
    OrderNotFoundError,
    OrderPlacementError,
    ReconciliationError,
    ValidationError,
)

STATUS_BY_ERROR = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ItemNotFoundError, status.HTTP_404_NOT_FOUND),
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
    (InsufficientStockError, status.HTTP_409_CONFLICT),
    (OrderPlacementError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (LedgerImmutableError, status.HTTP_409_CONFLICT),
    (ConcurrencyExhaustedError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ReconciliationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def http_error(exc: LedgerError) -> HTTPException:
    """HTTPException carrying the error's structured detail."""
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.to_dict())
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.to_dict())
