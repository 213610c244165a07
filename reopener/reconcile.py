import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from reopener import config
from reopener.helpscout import HelpScoutClient, HelpScoutError
from reopener.store import ScheduleStore, ScheduledReopen

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def retry_delay_ms(attempts: int, base_seconds: int) -> int:
    """Backoff after the n-th failed attempt: base, 2*base, 4*base, ..."""
    return base_seconds * 1000 * (2 ** max(attempts - 1, 0))


def partition_due(items, now: int) -> tuple[List[ScheduledReopen], List[ScheduledReopen]]:
    due: List[ScheduledReopen] = []
    not_due: List[ScheduledReopen] = []
    for item in items:
        (due if item.is_due(now) else not_due).append(item)
    return due, not_due


class ReopenJob:
    """
    One reconciliation tick: reopen every conversation whose due time has
    passed and drop its schedule once Help Scout confirms.

    Ticks never overlap; a tick that starts while another is running is
    skipped.
    """

    def __init__(
        self,
        store: ScheduleStore,
        client: HelpScoutClient,
        max_attempts: int = config.REOPEN_MAX_ATTEMPTS,
        retry_base_seconds: int = config.REOPEN_RETRY_BASE_SECONDS,
        timeout: float = config.RECONCILE_TIMEOUT_SECONDS,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.client = client
        self.max_attempts = max_attempts
        self.retry_base_seconds = retry_base_seconds
        self.timeout = timeout
        self.clock = clock
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def tick(self, now: Optional[int] = None) -> Dict[str, Any]:
        if self._lock.locked():
            logger.warning("Reopen tick skipped: previous tick still running")
            return {"job": "reopen", "skipped": True}

        async with self._lock:
            try:
                return await asyncio.wait_for(self._run(now), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.error("Reopen tick timed out after %.0fs", self.timeout)
                return {"job": "reopen", "skipped": False, "timed_out": True}

    async def _run(self, now: Optional[int]) -> Dict[str, Any]:
        now = self.clock() if now is None else now
        due, not_due = partition_due(self.store.list_all(), now)

        result: Dict[str, Any] = {
            "job": "reopen",
            "skipped": False,
            "checked": len(due) + len(not_due),
            "due": len(due),
            "reopened": 0,
            "failed": 0,
            "abandoned": 0,
        }
        if not due:
            logger.info("Reopen tick: %d scheduled, none due", result["checked"])
            return result

        try:
            token = await self.client.get_access_token()
        except HelpScoutError as e:
            # nothing is attempted, so nothing counts against the items
            logger.error("Reopen tick aborted, token exchange failed: %s", e)
            result["error"] = "token"
            return result

        outcomes = await asyncio.gather(
            *(self._reopen_one(item, token, now) for item in due),
            return_exceptions=True,
        )

        for item, outcome in zip(due, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Reopen of %s hit an unexpected error: %r", item.conversation_id, outcome
                )
                result["failed"] += 1
            else:
                result[outcome] += 1

        logger.info(
            "Reopen tick: %d due, %d reopened, %d failed, %d abandoned",
            result["due"], result["reopened"], result["failed"], result["abandoned"],
        )
        return result

    async def _reopen_one(self, item: ScheduledReopen, token: str, now: int) -> str:
        cid = item.conversation_id
        try:
            await self.client.reopen_conversation(cid, token)
        except HelpScoutError as e:
            attempts = item.attempts + 1
            give_up = attempts >= self.max_attempts
            next_at = None if give_up else now + retry_delay_ms(attempts, self.retry_base_seconds)
            if not self.store.record_failure(cid, str(e), next_at, give_up=give_up, version=item.version):
                logger.info("Schedule for %s was replaced during the tick, keeping the new one", cid)
                return "failed"
            if give_up:
                logger.error("Giving up on reopening %s after %d attempts: %s", cid, attempts, e)
                return "abandoned"
            logger.warning("Reopen of %s failed (attempt %d/%d): %s", cid, attempts, self.max_attempts, e)
            return "failed"

        if not self.store.delete(cid, version=item.version):
            logger.info("Schedule for %s was replaced during the tick, keeping the new one", cid)
        return "reopened"
