"""Broker gateway client for ledger, registry and settlement operations."""

import asyncio
import base64
import logging
import time
from typing import Any, Dict, Optional

import requests
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from pydantic import ValidationError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tradeadvisor.broker.base import InferenceRegistry, LedgerClient, ResponseVerifier
from tradeadvisor.broker.exceptions import (
    BrokerAPIError,
    BrokerAuthenticationError,
    BrokerNotFoundError,
    BrokerTimeoutError,
)
from tradeadvisor.broker.models import (
    LedgerDetail,
    ServiceMetadata,
    SubAccount,
    TransferRequest,
)
from tradeadvisor.config import get_settings

logger = logging.getLogger(__name__)


class BrokerClient(LedgerClient, InferenceRegistry, ResponseVerifier):
    """Client for the broker gateway REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize broker client.

        Args:
            api_key: Broker access key. If None, uses config value.
            api_secret: RSA private key in PEM format. If None, uses config value.
            base_url: Gateway base URL. If None, uses config value.
            timeout: Per-request HTTP timeout in seconds. If None, uses config value.
        """
        settings = get_settings()
        self.api_key = api_key or settings.broker_api_key
        self.api_secret = api_secret or settings.broker_api_secret
        self.base_url = (base_url or settings.broker_base_url).rstrip("/")
        self.timeout = timeout or settings.ledger_timeout

        self.session = self._create_session()
        self.private_key = self._load_private_key()

    def _create_session(self) -> requests.Session:
        """Create requests session with retry logic for idempotent reads."""
        session = requests.Session()

        # POSTs move funds or settle usage, so they are never retried here
        retry_strategy = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def _load_private_key(self):
        """Load RSA private key from PEM-formatted string.

        Returns:
            RSA private key object

        Raises:
            BrokerAuthenticationError: If key cannot be loaded
        """
        if not self.api_secret:
            raise BrokerAuthenticationError("Broker API secret is not configured")

        try:
            # Handle case where key might have escaped newlines
            key_string = self.api_secret.replace("\\n", "\n")
            key_bytes = key_string.encode("utf-8")

            return serialization.load_pem_private_key(
                key_bytes, password=None, backend=default_backend()
            )
        except (ValueError, TypeError) as e:
            raise BrokerAuthenticationError(f"Failed to load RSA private key: {str(e)}")

    def _create_signature(self, timestamp: str, method: str, path: str) -> str:
        """Create RSA-PSS signature over timestamp + method + path.

        Args:
            timestamp: Request timestamp in milliseconds
            method: HTTP method (GET, POST, etc.)
            path: API endpoint path without query parameters

        Returns:
            Base64-encoded signature string
        """
        path_without_query = path.split("?")[0]
        message = f"{timestamp}{method}{path_without_query}".encode("utf-8")

        signature = self.private_key.sign(
            message,
            padding.PSS(
                mgf=padding.MGF1(hashes.SHA256()),
                salt_length=padding.PSS.DIGEST_LENGTH,
            ),
            hashes.SHA256(),
        )
        return base64.b64encode(signature).decode("utf-8")

    def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Make authenticated API request with RSA-PSS signature.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            json_data: JSON body data
            timeout: Override for the client timeout

        Returns:
            Response data as dictionary

        Raises:
            BrokerAPIError: If request fails
            BrokerNotFoundError: If the resource does not exist
            BrokerTimeoutError: If the gateway does not answer in time
        """
        timestamp = str(int(time.time() * 1000))
        signature = self._create_signature(timestamp, method, endpoint)

        headers = {
            "BROKER-ACCESS-KEY": self.api_key,
            "BROKER-ACCESS-SIGNATURE": signature,
            "BROKER-ACCESS-TIMESTAMP": timestamp,
        }

        url = f"{self.base_url}{endpoint}"
        logger.debug("%s %s", method, url)

        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                json=json_data,
                timeout=timeout or self.timeout,
            )
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            error_data = _error_body(e.response)
            code = error_data.get("code")
            message = error_data.get("message") or str(e)

            if status_code == 404:
                raise BrokerNotFoundError(
                    f"Resource not found: {endpoint}",
                    status_code=status_code,
                    response_data=error_data,
                    code=code or "NOT_FOUND",
                )

            raise BrokerAPIError(
                f"API request failed: {message}",
                status_code=status_code,
                response_data=error_data,
                code=code,
            )

        except requests.exceptions.Timeout as e:
            raise BrokerTimeoutError(f"Broker request timed out: {endpoint} ({str(e)})")

        except requests.exceptions.RequestException as e:
            raise BrokerAPIError(f"Request failed: {str(e)}")

        except ValueError as e:
            raise BrokerAPIError(f"Invalid JSON from broker: {str(e)}")

    async def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """Run a blocking request in a worker thread."""
        return await asyncio.to_thread(self._make_request, method, endpoint, **kwargs)

    async def get_ledger_detail(self) -> LedgerDetail:
        """Get the caller's primary ledger detail.

        Returns:
            LedgerDetail whose first ``ledger_info`` entry is the total balance
        """
        data = await self._request("GET", "/ledger")
        ledger_data = data.get("ledger", data)
        try:
            return LedgerDetail(**ledger_data)
        except ValidationError as e:
            raise BrokerAPIError(f"Malformed ledger detail: {str(e)}", response_data=data)

    async def transfer_fund(self, provider: str, service_type: str, amount: int) -> None:
        """Transfer funds from the primary ledger to a provider sub-account.

        Args:
            provider: Provider address
            service_type: Service the sub-account pays for ("inference")
            amount: Amount in base units
        """
        transfer = TransferRequest(provider=provider, service_type=service_type, amount=amount)
        await self._request("POST", "/ledger/transfer", json_data=transfer.to_payload())

    async def is_acknowledged(self, provider: str) -> bool:
        """Check whether the caller acknowledged a provider."""
        data = await self._request("GET", f"/inference/providers/{provider}/acknowledged")
        return bool(data.get("acknowledged", False))

    async def get_sub_account(self, provider: str) -> Optional[SubAccount]:
        """Get the caller's sub-account for a provider.

        Returns:
            SubAccount or None if it does not exist yet
        """
        try:
            data = await self._request("GET", f"/inference/accounts/{provider}")
        except BrokerNotFoundError:
            return None

        account_data = data.get("account", data)
        account_data.setdefault("provider", provider)
        return SubAccount(**account_data)

    async def get_service_metadata(self, provider: str) -> ServiceMetadata:
        """Get a provider's completion endpoint and model id."""
        data = await self._request(
            "GET",
            f"/inference/providers/{provider}/metadata",
            timeout=get_settings().inference_timeout,
        )
        return ServiceMetadata(**data)

    async def get_request_headers(self, provider: str, content: str) -> Dict[str, str]:
        """Get billing headers bound to the serialized request content."""
        data = await self._request(
            "POST",
            f"/inference/providers/{provider}/headers",
            json_data={"content": content},
            timeout=get_settings().inference_timeout,
        )
        headers = data.get("headers", data)
        return {str(k): str(v) for k, v in headers.items()}

    async def process_response(self, provider: str, content: str, request_id: str) -> None:
        """Submit a completed response for verification and settlement.

        Raises:
            BrokerAPIError: If the gateway rejects the response
        """
        data = await self._request(
            "POST",
            f"/inference/providers/{provider}/responses",
            json_data={"content": content, "chatId": request_id},
        )
        if data.get("valid") is False:
            raise BrokerAPIError(
                "Response failed verification", response_data=data, code="VERIFICATION_REJECTED"
            )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()


def _error_body(response: Optional[requests.Response]) -> Dict[str, Any]:
    """Best-effort decode of a gateway error body."""
    if response is None:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
