"""
Bounded polling of remote custody transactions.

Remote statuses are folded into a small state machine:

    SUBMITTED -> CONFIRMING -> CONFIRMED
    SUBMITTED | CONFIRMING  -> FAILED
    SUBMITTED | CONFIRMING  -> ATTEMPTS_EXHAUSTED once the budget runs out
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ._rate_limited_log import rate_limited_log

logger = logging.getLogger(__name__)


class PollState(str, Enum):
    SUBMITTED = "submitted"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"


# Remote status strings (case-insensitive) mapped onto poll states.
# Anything unlisted is still in flight.
REMOTE_STATUS_STATES = {
    "confirming": PollState.CONFIRMING,
    "completed": PollState.CONFIRMED,
    "success": PollState.CONFIRMED,
    "failed": PollState.FAILED,
    "rejected": PollState.FAILED,
}

_PROGRESS = {
    PollState.SUBMITTED: 0,
    PollState.CONFIRMING: 1,
    PollState.CONFIRMED: 2,
}


def classify_status(status: Optional[str]) -> PollState:
    if not status:
        return PollState.SUBMITTED
    return REMOTE_STATUS_STATES.get(status.lower(), PollState.SUBMITTED)


@dataclass(frozen=True)
class PollPolicy:
    """
    Attempt budget and backoff for status polling.

    The wait before attempt ``n`` (1-based, after the first) is
    ``interval * backoff_factor ** (n - 2)`` capped at ``max_interval``.
    """
    max_attempts: int = 100
    interval: float = 2.0
    backoff_factor: float = 1.5
    max_interval: float = 15.0

    def delay(self, attempt: int) -> float:
        return min(self.interval * (self.backoff_factor ** max(attempt - 2, 0)), self.max_interval)


@dataclass
class PollOutcome:
    state: PollState
    attempts: int
    detail: Dict[str, Any] = field(default_factory=dict)

    @property
    def last_status(self) -> Optional[str]:
        return self.detail.get("status")


class TransactionPoller:
    """
    Polls a status function until a target state is reached.

    Args:
        fetch: Callable returning the remote transaction detail for an id
        policy: Attempt budget and backoff
        sleep: Sleep function, injectable so tests need no real delays
    """

    def __init__(
        self,
        fetch: Callable[[str], Dict[str, Any]],
        policy: Optional[PollPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.fetch = fetch
        self.policy = policy or PollPolicy()
        self.sleep = sleep

    def wait(
        self,
        transaction_id: str,
        target: PollState = PollState.CONFIRMING,
        ready: Optional[Callable[[Dict[str, Any]], bool]] = None,
    ) -> PollOutcome:
        """
        Poll until ``target`` (or a later state) is reached.

        Args:
            transaction_id: Remote transaction id
            target: CONFIRMING or CONFIRMED
            ready: Extra predicate on the detail, e.g. "has a transaction hash"

        Returns:
            Outcome whose state is the reached state, FAILED, or ATTEMPTS_EXHAUSTED.
            Errors from ``fetch`` propagate to the caller unchanged.
        """
        detail: Dict[str, Any] = {}
        state = PollState.SUBMITTED
        for attempt in range(1, self.policy.max_attempts + 1):
            if attempt > 1:
                self.sleep(self.policy.delay(attempt))

            detail = self.fetch(transaction_id)
            state = classify_status(detail.get("status"))

            if state == PollState.FAILED:
                logger.error(f"Transaction {transaction_id} failed with status {detail.get('status')}")
                return PollOutcome(PollState.FAILED, attempt, detail)

            if _PROGRESS[state] >= _PROGRESS[target] and (ready is None or ready(detail)):
                logger.debug(f"Transaction {transaction_id} reached {state.value} after {attempt} attempts")
                return PollOutcome(state, attempt, detail)

            rate_limited_log(
                f"Waiting for transaction {transaction_id}: status {detail.get('status')}",
                level="info",
                logger_instance=logger,
            )

        logger.error(
            f"Transaction {transaction_id} still {state.value} after {self.policy.max_attempts} attempts"
        )
        return PollOutcome(PollState.ATTEMPTS_EXHAUSTED, self.policy.max_attempts, detail)
