"""Translation of collaborator errors into classified failures.

Collaborators that report a machine-readable ``code`` are classified by that
code. Message substring matching is kept only as the fallback for error
sources that carry nothing but text (e.g. a reverted contract call relayed as
a plain message).
"""

from typing import Dict, List, Optional, Tuple

from tradeadvisor.orchestration.models import Failure, FailureKind

DEFAULT_HINTS: Dict[FailureKind, str] = {
    FailureKind.INVALID_INPUT: "Select a provider and configure the caller account first.",
    FailureKind.NOT_ACKNOWLEDGED: "Acknowledge the provider first.",
    FailureKind.LEDGER_UNAVAILABLE: "Create the primary ledger account first, then retry.",
    FailureKind.INSUFFICIENT_PRIMARY_BALANCE: "Fund the primary account (at least 1 unit), then retry.",
    FailureKind.FUNDING_FAILED: (
        "The provider sub-account could not be created or topped up; "
        "check the primary balance and retry."
    ),
    FailureKind.METADATA_UNAVAILABLE: (
        "Provider metadata could not be fetched; check that the provider is online "
        "and acknowledged."
    ),
    FailureKind.TRANSPORT_ERROR: "The provider endpoint failed; retry later or pick another provider.",
    FailureKind.MALFORMED_RESPONSE: (
        "The provider returned an unexpected response format; retry or pick another provider."
    ),
    FailureKind.CONTRACT_REVERTED: (
        "Contract call failed: make sure the provider is acknowledged and the account is funded."
    ),
    FailureKind.UNEXPECTED: "Analysis failed; see the detail for the underlying error.",
    FailureKind.VERIFICATION_FAILED: (
        "The answer is usable but its settlement could not be confirmed."
    ),
}

CODE_RULES: Dict[str, FailureKind] = {
    "NOT_ACKNOWLEDGED": FailureKind.NOT_ACKNOWLEDGED,
    "INSUFFICIENT_FUNDS": FailureKind.INSUFFICIENT_PRIMARY_BALANCE,
    "INSUFFICIENT_BALANCE": FailureKind.INSUFFICIENT_PRIMARY_BALANCE,
    "CALL_REVERTED": FailureKind.CONTRACT_REVERTED,
    "LEDGER_NOT_FOUND": FailureKind.LEDGER_UNAVAILABLE,
}

# Lower-cased phrases, checked in order
MESSAGE_RULES: List[Tuple[str, FailureKind]] = [
    ("missing revert data", FailureKind.CONTRACT_REVERTED),
    ("insufficient funds", FailureKind.INSUFFICIENT_PRIMARY_BALANCE),
    ("not acknowledged", FailureKind.NOT_ACKNOWLEDGED),
]


def classify(exc: BaseException) -> Optional[FailureKind]:
    """Recognise a known failure category, None if unrecognised."""
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code.upper() in CODE_RULES:
        return CODE_RULES[code.upper()]

    text = str(exc).lower()
    for phrase, kind in MESSAGE_RULES:
        if phrase in text:
            return kind
    return None


def make_failure(
    kind: FailureKind,
    detail: str,
    status_code: Optional[int] = None,
    hint: Optional[str] = None,
) -> Failure:
    """Build a Failure with the default hint for its kind."""
    return Failure(
        kind=kind,
        detail=detail,
        hint=hint or DEFAULT_HINTS[kind],
        status_code=status_code,
    )


def translate_error(exc: BaseException, kind: Optional[FailureKind] = None) -> Failure:
    """Map an exception to a Failure.

    Args:
        exc: Error raised by a collaborator
        kind: Failure kind of the step that raised. When None the error
            escaped every step and the kind is taken from classification,
            falling back to UNEXPECTED.

    Returns:
        Failure whose hint follows the recognised category when there is one
    """
    recognised = classify(exc)
    if kind is None:
        kind = recognised or FailureKind.UNEXPECTED

    hint = DEFAULT_HINTS[recognised] if recognised else DEFAULT_HINTS[kind]
    status_code = getattr(exc, "status_code", None)

    return Failure(
        kind=kind,
        detail=str(exc) or type(exc).__name__,
        hint=hint,
        status_code=status_code if isinstance(status_code, int) else None,
    )


class StepFailure(Exception):
    """Raised inside a run to stop at a terminal Failure."""

    def __init__(self, failure: Failure):
        super().__init__(failure.detail)
        self.failure = failure
