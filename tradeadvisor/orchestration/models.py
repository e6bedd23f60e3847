"""Models for orchestration requests, progress events and outcomes."""

from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from tradeadvisor.utils.helpers import validate_symbol


class FailureKind(str, Enum):
    """Machine-distinguishable failure categories."""

    INVALID_INPUT = "invalid_input"
    NOT_ACKNOWLEDGED = "not_acknowledged"
    LEDGER_UNAVAILABLE = "ledger_unavailable"
    INSUFFICIENT_PRIMARY_BALANCE = "insufficient_primary_balance"
    FUNDING_FAILED = "funding_failed"
    METADATA_UNAVAILABLE = "metadata_unavailable"
    TRANSPORT_ERROR = "transport_error"
    MALFORMED_RESPONSE = "malformed_response"
    CONTRACT_REVERTED = "contract_reverted"
    UNEXPECTED = "unexpected"
    # Soft: only ever reported as a warning on a Success
    VERIFICATION_FAILED = "verification_failed"


class Stage(str, Enum):
    """Named stages of one orchestration run."""

    INIT = "init"
    CHECK_ACK = "check_ack"
    CHECK_BALANCE = "check_balance"
    ENSURE_SUB_ACCOUNT = "ensure_sub_account"
    BUILD_REQUEST = "build_request"
    FETCH_METADATA = "fetch_metadata_and_headers"
    DISPATCH = "dispatch"
    PARSE_RESPONSE = "parse_response"
    VERIFY = "verify"
    DONE = "done"
    FAILED = "failed"


class AnalysisRequest(BaseModel):
    """Caller parameters for one analysis run."""

    symbol: str = "BTCUSDT"
    # Explicit price; when None the market snapshot is consulted
    price: Optional[str] = None

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        return validate_symbol(value)


class Success(BaseModel):
    """Content was produced. ``verified`` tells whether settlement was confirmed."""

    ok: Literal[True] = True
    content: str
    verified: bool = False
    request_id: Optional[str] = None
    transferred: int = Field(0, description="Base units moved into the sub-account")
    warning: Optional[str] = None
    warning_kind: Optional[FailureKind] = None


class Failure(BaseModel):
    """A hard gate failed before content was produced."""

    ok: Literal[False] = False
    kind: FailureKind
    detail: str
    hint: str
    status_code: Optional[int] = None

    @property
    def message(self) -> str:
        """One-line user-facing message: hint followed by the cause."""
        return f"{self.hint} ({self.detail})"


Outcome = Union[Success, Failure]


class ProgressEvent(BaseModel):
    """A stage transition. The last event of a run carries the outcome."""

    stage: Stage
    message: str
    level: Literal["info", "warning", "error", "success"] = "info"
    outcome: Optional[Union[Success, Failure]] = None

    @property
    def is_terminal(self) -> bool:
        return self.outcome is not None
