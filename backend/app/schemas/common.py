"""Shared response envelope for read-only contact views."""

from typing import Generic, TypeVar

from pydantic import BaseModel

DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    """Wraps read payloads as ``{"data": ...}``; ``POST /identify`` keeps its own shape."""

    data: DataT
