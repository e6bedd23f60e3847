"""Abstract interfaces for the broker collaborators used by the orchestrator."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from tradeadvisor.broker.models import LedgerDetail, ServiceMetadata, SubAccount


class LedgerClient(ABC):
    """Primary ledger: balance queries and transfers to sub-accounts."""

    @abstractmethod
    async def get_ledger_detail(self) -> LedgerDetail:
        """Fetch the caller's primary ledger detail.

        Raises:
            BrokerError: If the ledger cannot be read
        """
        pass

    @abstractmethod
    async def transfer_fund(self, provider: str, service_type: str, amount: int) -> None:
        """Move ``amount`` base units from the primary ledger to a sub-account.

        The sub-account is created implicitly when it does not exist yet.

        Raises:
            BrokerError: If the transfer is rejected
        """
        pass


class InferenceRegistry(ABC):
    """Provider registry: acknowledgment, sub-accounts, metadata and headers."""

    @abstractmethod
    async def is_acknowledged(self, provider: str) -> bool:
        """Whether the caller has acknowledged the provider."""
        pass

    @abstractmethod
    async def get_sub_account(self, provider: str) -> Optional[SubAccount]:
        """Get the caller's sub-account for a provider, None if absent."""
        pass

    @abstractmethod
    async def get_service_metadata(self, provider: str) -> ServiceMetadata:
        """Resolve a provider's endpoint and model id."""
        pass

    @abstractmethod
    async def get_request_headers(self, provider: str, content: str) -> Dict[str, str]:
        """Get billing headers signed over the serialized request content."""
        pass


class ResponseVerifier(ABC):
    """Settlement of completed responses."""

    @abstractmethod
    async def process_response(self, provider: str, content: str, request_id: str) -> None:
        """Verify a response against its request id and settle usage.

        Raises:
            BrokerError: If verification or settlement fails
        """
        pass
