"""Pydantic models for broker gateway data structures."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Provider(BaseModel):
    """An inference service provider selected by the caller."""

    model_config = ConfigDict(frozen=True)

    address: str
    name: Optional[str] = None
    model: Optional[str] = None
    endpoint: Optional[str] = None

    @property
    def label(self) -> str:
        """Human readable provider label."""
        if self.name and self.model:
            return f"{self.name} - {self.model}"
        return self.name or self.address


class LedgerDetail(BaseModel):
    """Primary ledger detail. ``ledger_info[0]`` is the total balance."""

    model_config = ConfigDict(populate_by_name=True)

    ledger_info: List[int] = Field(..., alias="ledgerInfo")
    infers: List[Any] = Field(default_factory=list)

    @property
    def total_balance(self) -> int:
        """Authoritative total balance in base units."""
        return self.ledger_info[0]


class SubAccount(BaseModel):
    """Per-provider sub-account balance."""

    provider: str
    balance: Optional[int] = None
    pending_refund: Optional[int] = Field(None, alias="pendingRefund")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def has_balance(self) -> bool:
        """True when the gateway reported a usable balance figure."""
        return self.balance is not None


class ServiceMetadata(BaseModel):
    """Provider endpoint and model resolved from the registry."""

    endpoint: str
    model: str


class TransferRequest(BaseModel):
    """Body of a primary-to-sub-account transfer."""

    model_config = ConfigDict(populate_by_name=True)

    provider: str
    service_type: str = Field("inference", alias="serviceType")
    amount: int

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for the gateway; amounts travel as decimal strings."""
        data = self.model_dump(by_alias=True)
        data["amount"] = str(self.amount)
        return data
