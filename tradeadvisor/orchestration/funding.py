"""Per-provider sub-account funding."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Literal, Optional, Tuple

from tradeadvisor.broker.base import InferenceRegistry, LedgerClient
from tradeadvisor.broker.models import SubAccount
from tradeadvisor.utils.helpers import format_units

logger = logging.getLogger(__name__)

# Amounts in 18-decimal base units
MIN_PRIMARY_BALANCE = 10**18
SUB_ACCOUNT_TOP_UP_THRESHOLD = 15 * 10**17
SUB_ACCOUNT_TOP_UP_AMOUNT = 2 * 10**18

INFERENCE_SERVICE = "inference"


@dataclass
class FundingResult:
    """What the funding step did."""

    action: Literal["skipped", "topped_up", "created"]
    balance_before: Optional[int]
    transferred: int = 0


class SubAccountFunder:
    """Keeps a provider sub-account above the top-up threshold.

    Funding for one (caller, provider) pair is serialised, so two concurrent
    runs cannot both see an underfunded account and both top it up.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        registry: InferenceRegistry,
        lookup_timeout: float = 10.0,
        transfer_timeout: float = 60.0,
    ):
        self.ledger = ledger
        self.registry = registry
        self.lookup_timeout = lookup_timeout
        self.transfer_timeout = transfer_timeout
        # (loop id, caller, provider) -> (lock, number of holders and waiters)
        self._locks: Dict[Tuple[int, str, str], Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _pair_lock(self, caller: str, provider: str) -> AsyncIterator[None]:
        """Hold the funding lock for one (caller, provider) pair.

        Locks are scoped to the running event loop and dropped once nobody
        holds or waits on them.
        """
        key = (id(asyncio.get_running_loop()), caller.lower(), provider.lower())
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    async def ensure_funded(self, caller: str, provider: str) -> FundingResult:
        """Top up the sub-account if it is absent or at/below the threshold.

        The locked section is shielded: if the caller stops waiting, an
        in-flight transfer still completes and the lock is held until it does.

        Raises:
            asyncio.TimeoutError: If the transfer does not finish in time
            Exception: Whatever the ledger raises for a rejected transfer
        """
        task = asyncio.ensure_future(self._ensure_locked(caller, provider))
        task.add_done_callback(self._log_abandoned)
        return await asyncio.wait_for(asyncio.shield(task), self.transfer_timeout)

    @staticmethod
    def _log_abandoned(task: asyncio.Task) -> None:
        # Retrieve the exception so a timed-out transfer that later fails is logged once
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Funding task finished with error: %s", task.exception())

    async def _ensure_locked(self, caller: str, provider: str) -> FundingResult:
        async with self._pair_lock(caller, provider):
            account = await self._lookup(provider)

            if account is not None and account.has_balance:
                logger.debug(
                    "Sub-account balance for %s: %s", provider, format_units(account.balance)
                )
                if account.balance > SUB_ACCOUNT_TOP_UP_THRESHOLD:
                    return FundingResult(action="skipped", balance_before=account.balance)
                action = "topped_up"
                logger.info("Sub-account for %s is low, topping up", provider)
            else:
                action = "created"
                logger.info("Sub-account for %s not found, creating and funding", provider)

            await self.ledger.transfer_fund(
                provider, INFERENCE_SERVICE, SUB_ACCOUNT_TOP_UP_AMOUNT
            )
            logger.info(
                "Transferred %s to sub-account for %s",
                format_units(SUB_ACCOUNT_TOP_UP_AMOUNT),
                provider,
            )
            return FundingResult(
                action=action,
                balance_before=account.balance if account is not None else None,
                transferred=SUB_ACCOUNT_TOP_UP_AMOUNT,
            )

    async def _lookup(self, provider: str) -> Optional[SubAccount]:
        """Fetch the sub-account; a failed lookup counts as absent."""
        try:
            return await asyncio.wait_for(
                self.registry.get_sub_account(provider), self.lookup_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Sub-account lookup for %s timed out, treating as absent", provider)
        except Exception as e:
            logger.warning("Sub-account lookup for %s failed (%s), treating as absent", provider, e)
        return None
