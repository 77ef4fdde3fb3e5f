"""
Stock ledger errors.

Each error is an ``HTTPException`` so routers can let it propagate unchanged;
all of them abort the primary operation before any movement is recorded.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class StockLedgerError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=self.status_code, detail=detail)


class InvalidQuantity(StockLedgerError):
    """Quantity is missing, non-integer, or not positive."""


class NegativeResultingBalance(StockLedgerError):
    """An adjustment asked for a negative target balance."""


class UnknownItem(StockLedgerError):
    status_code = status.HTTP_404_NOT_FOUND


class DuplicateItem(StockLedgerError):
    status_code = status.HTTP_409_CONFLICT


class ConcurrentMovementConflict(StockLedgerError):
    """The item kept changing underneath us; retries exhausted."""

    status_code = status.HTTP_409_CONFLICT
