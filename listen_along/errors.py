"""Errors raised by the music service collaborator."""

from typing import Optional


class ApiError(Exception):
    """A request to the music service failed (transport error or HTTP status >= 400)."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status

    def __str__(self) -> str:
        if self.status is None:
            return super().__str__()
        return f"{super().__str__()} (HTTP {self.status})"


class NotFoundError(ApiError):
    """The requested entity does not exist (HTTP 404)."""
