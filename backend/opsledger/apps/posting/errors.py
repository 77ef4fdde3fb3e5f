from __future__ import annotations

from fastapi import HTTPException, status


class DerivationError(HTTPException):
    """An event's data cannot be turned into an amount."""

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class InvalidAmount(DerivationError):
    pass


class CoordinatorTimeout(HTTPException):
    def __init__(self, detail: str = "Deadline passed before the operation started.") -> None:
        super().__init__(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=detail)
