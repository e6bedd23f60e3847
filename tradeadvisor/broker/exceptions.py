"""Exceptions for broker gateway operations."""

from typing import Optional


class BrokerError(Exception):
    """Base exception for broker errors.

    ``code`` is the machine-readable error code reported by the gateway, when
    it reports one. Callers classify on ``code`` before falling back to the
    message text.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class BrokerAuthenticationError(BrokerError):
    """Request signing credentials are missing or invalid."""

    pass


class BrokerAPIError(BrokerError):
    """API request failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, code=code)
        self.status_code = status_code
        self.response_data = response_data


class BrokerNotFoundError(BrokerAPIError):
    """Resource (account, provider) not found."""

    pass


class BrokerTimeoutError(BrokerError):
    """The gateway did not answer within the configured budget."""

    def __init__(self, message: str):
        super().__init__(message, code="TIMEOUT")
