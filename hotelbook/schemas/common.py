"""Response envelope shared by all booking-engine endpoints."""

from typing import Generic, TypeVar

from pydantic import BaseModel

DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    """Successful response: ``{"success": true, "message": ..., "data": ...}``.

    Errors use the same ``success``/``message`` keys plus ``error``; see
    ``hotelbook.errors``.
    """

    success: bool = True
    message: str | None = None
    data: DataT

