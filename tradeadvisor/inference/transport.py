"""HTTP transport for provider completion endpoints."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from tradeadvisor.config import get_settings
from tradeadvisor.inference.exceptions import TransportError
from tradeadvisor.inference.models import TransportResponse

logger = logging.getLogger(__name__)


class InferenceTransport(ABC):
    """Plain request/response transport to a provider."""

    @abstractmethod
    async def post(
        self, url: str, headers: Dict[str, str], body: Dict[str, Any]
    ) -> TransportResponse:
        """POST a JSON body and return status plus decoded JSON.

        Non-2xx statuses are returned, not raised. Network failures raise
        TransportError.
        """
        pass


class HttpTransport(InferenceTransport):
    """requests-based transport."""

    def __init__(self, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        """Initialize transport.

        Args:
            timeout: Request timeout in seconds. If None, uses config value.
            session: Existing session to reuse
        """
        self.timeout = timeout or get_settings().inference_timeout
        # Completions are billed, so the session carries no retry adapter
        self.session = session or requests.Session()

    def _post(self, url: str, headers: Dict[str, str], body: Dict[str, Any]) -> TransportResponse:
        try:
            response = self.session.post(url, headers=headers, json=body, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request to {url} timed out: {str(e)}", code="TIMEOUT")
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request to {url} failed: {str(e)}")

        try:
            json_body = response.json()
        except ValueError:
            json_body = None

        logger.debug("POST %s -> %s", url, response.status_code)
        return TransportResponse(
            status_code=response.status_code,
            reason=response.reason,
            json_body=json_body,
        )

    async def post(
        self, url: str, headers: Dict[str, str], body: Dict[str, Any]
    ) -> TransportResponse:
        return await asyncio.to_thread(self._post, url, headers, body)

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
