"""Broker collaborators: ledger, provider registry and response settlement."""

from tradeadvisor.broker.base import InferenceRegistry, LedgerClient, ResponseVerifier
from tradeadvisor.broker.exceptions import (
    BrokerAPIError,
    BrokerAuthenticationError,
    BrokerError,
    BrokerNotFoundError,
    BrokerTimeoutError,
)
from tradeadvisor.broker.models import LedgerDetail, Provider, ServiceMetadata, SubAccount

__all__ = [
    "BrokerAPIError",
    "BrokerAuthenticationError",
    "BrokerError",
    "BrokerNotFoundError",
    "BrokerTimeoutError",
    "InferenceRegistry",
    "LedgerClient",
    "LedgerDetail",
    "Provider",
    "ResponseVerifier",
    "ServiceMetadata",
    "SubAccount",
]
