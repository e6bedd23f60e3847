"""Exceptions for inference transport operations."""

from typing import Optional


class TransportError(Exception):
    """Calling a provider's completion endpoint failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
        self.code = code


class MalformedResponseError(ValueError):
    """Provider response is missing the expected completion content."""

    pass
