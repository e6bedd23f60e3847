"""Funding and verification orchestration of paid inference requests."""

from tradeadvisor.orchestration.funding import (
    MIN_PRIMARY_BALANCE,
    SUB_ACCOUNT_TOP_UP_AMOUNT,
    SUB_ACCOUNT_TOP_UP_THRESHOLD,
    SubAccountFunder,
)
from tradeadvisor.orchestration.models import (
    AnalysisRequest,
    Failure,
    FailureKind,
    Outcome,
    ProgressEvent,
    Stage,
    Success,
)
from tradeadvisor.orchestration.orchestrator import Orchestrator

__all__ = [
    "AnalysisRequest",
    "Failure",
    "FailureKind",
    "MIN_PRIMARY_BALANCE",
    "Orchestrator",
    "Outcome",
    "ProgressEvent",
    "SUB_ACCOUNT_TOP_UP_AMOUNT",
    "SUB_ACCOUNT_TOP_UP_THRESHOLD",
    "Stage",
    "SubAccountFunder",
    "Success",
]
