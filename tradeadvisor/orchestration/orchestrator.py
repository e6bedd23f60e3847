"""Funding and verification orchestrator for paid inference requests."""

import asyncio
import logging
from typing import AsyncIterator, Dict, Optional, Tuple

from tradeadvisor.broker.base import InferenceRegistry, LedgerClient, ResponseVerifier
from tradeadvisor.broker.models import Provider, ServiceMetadata
from tradeadvisor.config import get_settings
from tradeadvisor.inference.exceptions import MalformedResponseError
from tradeadvisor.inference.models import (
    ChatMessage,
    CompletionRequest,
    InferenceResult,
    TransportResponse,
    parse_completion,
)
from tradeadvisor.inference.prompt import build_user_message
from tradeadvisor.inference.transport import InferenceTransport
from tradeadvisor.market.snapshot import MarketSnapshot
from tradeadvisor.orchestration.errors import (
    DEFAULT_HINTS,
    StepFailure,
    make_failure,
    translate_error,
)
from tradeadvisor.orchestration.funding import (
    MIN_PRIMARY_BALANCE,
    FundingResult,
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
from tradeadvisor.utils.helpers import format_units

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


class Orchestrator:
    """Runs one paid analysis request end to end.

    Every run re-checks acknowledgment and balances; nothing is cached between
    runs. Each step gates the next, and the first hard failure ends the run.
    Verification is the one soft step: its failure is reported as a warning on
    an otherwise successful outcome.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        registry: InferenceRegistry,
        verifier: ResponseVerifier,
        transport: InferenceTransport,
        caller: Optional[str],
        snapshot: Optional[MarketSnapshot] = None,
        funder: Optional[SubAccountFunder] = None,
        ledger_timeout: Optional[float] = None,
        inference_timeout: Optional[float] = None,
    ):
        """Initialize orchestrator.

        Args:
            ledger: Primary ledger client
            registry: Provider registry client
            verifier: Response settlement client
            transport: HTTP transport to provider endpoints
            caller: Caller account address
            snapshot: Source of the latest known prices
            funder: Sub-account funder; one is created when None. Share one
                funder between orchestrators to share its funding locks.
            ledger_timeout: Budget for ledger and acknowledgment calls. If None, uses config value.
            inference_timeout: Budget for metadata, headers and completion calls. If None, uses config value.
        """
        settings = get_settings()
        self.ledger = ledger
        self.registry = registry
        self.verifier = verifier
        self.transport = transport
        self.caller = caller
        self.snapshot = snapshot
        self.ledger_timeout = settings.ledger_timeout if ledger_timeout is None else ledger_timeout
        self.inference_timeout = (
            settings.inference_timeout if inference_timeout is None else inference_timeout
        )
        self.funder = funder or SubAccountFunder(
            ledger,
            registry,
            lookup_timeout=self.ledger_timeout,
            transfer_timeout=self.inference_timeout,
        )

    async def run(self, provider: Optional[Provider], request: AnalysisRequest) -> Outcome:
        """Run to completion and return the terminal outcome."""
        outcome: Optional[Outcome] = None
        async for event in self.iter_run(provider, request):
            if event.outcome is not None:
                outcome = event.outcome
        return outcome

    def run_sync(self, provider: Optional[Provider], request: AnalysisRequest) -> Outcome:
        """Blocking wrapper around :meth:`run`."""
        return asyncio.run(self.run(provider, request))

    async def iter_run(
        self, provider: Optional[Provider], request: AnalysisRequest
    ) -> AsyncIterator[ProgressEvent]:
        """Run step by step, yielding a progress event at each stage.

        The sequence is finite: the last event has ``stage`` DONE or FAILED
        and carries the outcome.
        """
        try:
            yield ProgressEvent(stage=Stage.INIT, message="Validating request")
            self._validate(provider, request)

            yield ProgressEvent(stage=Stage.CHECK_ACK, message="Checking provider acknowledgment...")
            await self._check_acknowledged(provider)

            yield ProgressEvent(stage=Stage.CHECK_BALANCE, message="Checking primary account balance...")
            await self._check_primary_balance()

            yield ProgressEvent(stage=Stage.ENSURE_SUB_ACCOUNT, message="Checking sub-account...")
            funding = await self._ensure_sub_account(provider)
            if funding.transferred:
                verb = "Created" if funding.action == "created" else "Topped up"
                yield ProgressEvent(
                    stage=Stage.ENSURE_SUB_ACCOUNT,
                    message=f"{verb} sub-account with {format_units(funding.transferred)}",
                )

            yield ProgressEvent(stage=Stage.BUILD_REQUEST, message=f"Building analysis request for {request.symbol}")
            message = self._build_message(request)

            yield ProgressEvent(stage=Stage.FETCH_METADATA, message="Fetching provider metadata...")
            metadata, completion, headers = await self._prepare_completion(provider, message)

            yield ProgressEvent(stage=Stage.DISPATCH, message="Requesting AI analysis...")
            response = await self._dispatch(metadata, headers, completion)

            yield ProgressEvent(stage=Stage.PARSE_RESPONSE, message="Parsing provider response")
            result = self._parse(response)

            if result.request_id:
                yield ProgressEvent(stage=Stage.VERIFY, message="Verifying AI response...")
                outcome = await self._verify(provider, result)
            else:
                logger.info("Response carried no request id, skipping verification")
                outcome = Success(content=result.content, verified=False)
            outcome.transferred = funding.transferred

        except StepFailure as e:
            outcome = e.failure
        except Exception as e:
            logger.exception("Unexpected error during analysis run")
            outcome = translate_error(e)

        yield self._terminal_event(outcome)

    def _validate(self, provider: Optional[Provider], request: Optional[AnalysisRequest]) -> None:
        if provider is None or not provider.address:
            raise StepFailure(make_failure(FailureKind.INVALID_INPUT, "No provider selected"))
        if not self.caller:
            raise StepFailure(make_failure(FailureKind.INVALID_INPUT, "No caller account configured"))
        if request is None:
            raise StepFailure(make_failure(FailureKind.INVALID_INPUT, "No analysis request supplied"))

    async def _check_acknowledged(self, provider: Provider) -> None:
        """A failed check counts as not acknowledged; the detail says which."""
        detail = f"Provider {provider.address} is not acknowledged"
        try:
            acknowledged = await asyncio.wait_for(
                self.registry.is_acknowledged(provider.address), self.ledger_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Acknowledgment check for %s timed out", provider.address)
            acknowledged = False
            detail = "Acknowledgment check timed out"
        except Exception as e:
            logger.warning("Acknowledgment check for %s failed: %s", provider.address, e)
            acknowledged = False
            detail = f"Acknowledgment check failed: {e}"

        if not acknowledged:
            raise StepFailure(make_failure(FailureKind.NOT_ACKNOWLEDGED, detail))

    async def _check_primary_balance(self) -> int:
        try:
            detail = await asyncio.wait_for(self.ledger.get_ledger_detail(), self.ledger_timeout)
        except asyncio.TimeoutError:
            raise StepFailure(
                make_failure(FailureKind.LEDGER_UNAVAILABLE, "Ledger query timed out")
            )
        except Exception as e:
            logger.warning("Failed to fetch ledger detail: %s", e)
            raise StepFailure(translate_error(e, FailureKind.LEDGER_UNAVAILABLE))

        if detail is None or not detail.ledger_info:
            raise StepFailure(
                make_failure(FailureKind.LEDGER_UNAVAILABLE, "Ledger detail has no balance entries")
            )

        total = detail.total_balance
        logger.debug("Primary balance: %s", format_units(total))
        if total < MIN_PRIMARY_BALANCE:
            raise StepFailure(
                make_failure(
                    FailureKind.INSUFFICIENT_PRIMARY_BALANCE,
                    f"Primary balance {format_units(total)} is below "
                    f"{format_units(MIN_PRIMARY_BALANCE)}",
                )
            )
        return total

    async def _ensure_sub_account(self, provider: Provider) -> FundingResult:
        try:
            return await self.funder.ensure_funded(self.caller, provider.address)
        except asyncio.TimeoutError:
            raise StepFailure(
                make_failure(
                    FailureKind.FUNDING_FAILED,
                    "Sub-account transfer did not complete in time; it may still settle",
                )
            )
        except Exception as e:
            logger.error("Sub-account funding for %s failed: %s", provider.address, e)
            raise StepFailure(translate_error(e, FailureKind.FUNDING_FAILED))

    def _build_message(self, request: AnalysisRequest) -> ChatMessage:
        price = request.price
        if price is None and self.snapshot is not None:
            price = self.snapshot.latest_price(request.symbol)
        return build_user_message(request.symbol, price)

    async def _prepare_completion(
        self, provider: Provider, message: ChatMessage
    ) -> Tuple[ServiceMetadata, CompletionRequest, Dict[str, str]]:
        """Resolve the endpoint and model, then sign the request messages."""
        try:
            metadata = await asyncio.wait_for(
                self.registry.get_service_metadata(provider.address), self.inference_timeout
            )
            completion = CompletionRequest(messages=[message], model=metadata.model)
            headers = await asyncio.wait_for(
                self.registry.get_request_headers(provider.address, completion.signing_content()),
                self.inference_timeout,
            )
        except asyncio.TimeoutError:
            raise StepFailure(
                make_failure(FailureKind.METADATA_UNAVAILABLE, "Provider metadata request timed out")
            )
        except Exception as e:
            logger.warning("Failed to fetch metadata/headers for %s: %s", provider.address, e)
            raise StepFailure(translate_error(e, FailureKind.METADATA_UNAVAILABLE))
        return metadata, completion, headers

    async def _dispatch(
        self,
        metadata: ServiceMetadata,
        headers: Dict[str, str],
        completion: CompletionRequest,
    ) -> TransportResponse:
        url = f"{metadata.endpoint.rstrip('/')}/chat/completions"
        # Signed headers win on key collisions
        merged = {**JSON_HEADERS, **headers}
        try:
            response = await asyncio.wait_for(
                self.transport.post(url, merged, completion.to_payload()),
                self.inference_timeout,
            )
        except asyncio.TimeoutError:
            raise StepFailure(
                make_failure(FailureKind.TRANSPORT_ERROR, f"Request to {url} timed out")
            )
        except Exception as e:
            logger.warning("Request to %s failed: %s", url, e)
            raise StepFailure(translate_error(e, FailureKind.TRANSPORT_ERROR))

        if not response.ok:
            raise StepFailure(
                make_failure(
                    FailureKind.TRANSPORT_ERROR,
                    f"AI service responded with {response.status_code} {response.reason or ''}".rstrip(),
                    status_code=response.status_code,
                )
            )
        return response

    def _parse(self, response: TransportResponse) -> InferenceResult:
        try:
            return parse_completion(response.json_body)
        except MalformedResponseError as e:
            raise StepFailure(make_failure(FailureKind.MALFORMED_RESPONSE, str(e)))

    async def _verify(self, provider: Provider, result: InferenceResult) -> Success:
        """Settle the response. Errors here downgrade to a warning."""
        try:
            await asyncio.wait_for(
                asyncio.shield(
                    self.verifier.process_response(
                        provider.address, result.content, result.request_id
                    )
                ),
                self.inference_timeout,
            )
        except asyncio.TimeoutError:
            warning = "verification did not complete in time"
        except Exception as e:
            warning = f"verification failed: {e}"
        else:
            return Success(content=result.content, verified=True, request_id=result.request_id)

        logger.warning("%s (request %s)", warning, result.request_id)
        return Success(
            content=result.content,
            verified=False,
            request_id=result.request_id,
            warning=f"{warning}. {DEFAULT_HINTS[FailureKind.VERIFICATION_FAILED]}",
            warning_kind=FailureKind.VERIFICATION_FAILED,
        )

    def _terminal_event(self, outcome: Outcome) -> ProgressEvent:
        if isinstance(outcome, Failure):
            logger.warning("Analysis failed [%s]: %s", outcome.kind.value, outcome.detail)
            return ProgressEvent(
                stage=Stage.FAILED, message=outcome.message, level="error", outcome=outcome
            )
        if outcome.warning:
            return ProgressEvent(
                stage=Stage.DONE,
                message=f"AI analysis complete, but {outcome.warning}",
                level="warning",
                outcome=outcome,
            )
        message = "AI analysis complete and verified" if outcome.verified else "AI analysis complete"
        return ProgressEvent(stage=Stage.DONE, message=message, level="success", outcome=outcome)
