"""
Deal lifecycle state machine.

LIFECYCLE CONTRACT:
===================

Phases (LifecyclePhase):
  IDLE            -> waiting for the countdown to expire
  QUORUM_CHECK    -> reading fillable deposits
  CREATING_DEAL   -> last mix block advanced, deal creation tx in flight
  EXECUTING_DEAL  -> deal submitted to the compute network
  VERIFYING_ONLY  -> quorum not met, deposits submitted for verification
  DONE            -> run finished

Transitions:
  IDLE           -> QUORUM_CHECK    (countdown expired)
  QUORUM_CHECK   -> CREATING_DEAL   (quorum reached)
  QUORUM_CHECK   -> VERIFYING_ONLY  (quorum not reached)
  CREATING_DEAL  -> EXECUTING_DEAL  (deal created)
  CREATING_DEAL  -> DONE            (deal creation failed)
  EXECUTING_DEAL -> DONE
  VERIFYING_ONLY -> DONE
  DONE           -> IDLE            (next countdown expiry)

Quorum is broadcast as 0 as soon as a deal is carved out, whether or not
creation or execution succeed. Creation and execution failures of any kind
are logged and not retried.

A deal only takes one amount bucket. When fillable deposits of other
amounts remain, QuorumChanged(0) still goes out after the deal and
compute_quorum() keeps counting the leftovers; the next registration
broadcasts the real count again.
===================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from core.constants import ErrorCode, Topic
from core.exceptions import InvalidTransitionError, SaladError
from core.logging import get_logger
from core.models import Deal
from deals.manager import DealManager, execution_task_opts
from deals.registry import DepositRegistry
from events.broadcaster import EventBroadcaster

logger = get_logger(__name__)


def _error_code(error: Exception) -> str:
    if isinstance(error, SaladError):
        return error.code.value
    return ErrorCode.UNKNOWN.value


class LifecyclePhase(str, Enum):
    """Deal lifecycle phases."""
    IDLE = "IDLE"
    QUORUM_CHECK = "QUORUM_CHECK"
    CREATING_DEAL = "CREATING_DEAL"
    EXECUTING_DEAL = "EXECUTING_DEAL"
    VERIFYING_ONLY = "VERIFYING_ONLY"
    DONE = "DONE"


class LifecycleOutcome(str, Enum):
    """How a lifecycle run ended."""
    DEAL_EXECUTED = "DEAL_EXECUTED"
    DEAL_EXECUTION_FAILED = "DEAL_EXECUTION_FAILED"
    DEAL_CREATION_FAILED = "DEAL_CREATION_FAILED"
    QUORUM_NOT_REACHED = "QUORUM_NOT_REACHED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    ABORTED = "ABORTED"


# Valid phase transitions
VALID_TRANSITIONS: Dict[LifecyclePhase, List[LifecyclePhase]] = {
    LifecyclePhase.IDLE: [LifecyclePhase.QUORUM_CHECK],
    LifecyclePhase.QUORUM_CHECK: [LifecyclePhase.CREATING_DEAL, LifecyclePhase.VERIFYING_ONLY],
    LifecyclePhase.CREATING_DEAL: [LifecyclePhase.EXECUTING_DEAL, LifecyclePhase.DONE],
    LifecyclePhase.EXECUTING_DEAL: [LifecyclePhase.DONE],
    LifecyclePhase.VERIFYING_ONLY: [LifecyclePhase.DONE],
    LifecyclePhase.DONE: [LifecyclePhase.IDLE],
}


@dataclass
class StateTransition:
    """Record of a phase transition."""
    from_phase: LifecyclePhase
    to_phase: LifecyclePhase
    timestamp: str = ""
    reason: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()


@dataclass
class LifecycleRun:
    """One pass through the lifecycle, triggered by a countdown expiry."""
    run_id: int
    history: List[StateTransition] = field(default_factory=list)
    outcome: Optional[LifecycleOutcome] = None
    deal_id: Optional[str] = None
    deposits: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "outcome": self.outcome.value if self.outcome else None,
            "deal_id": self.deal_id,
            "deposits": self.deposits,
            "error": self.error,
            "history": [
                {
                    "from_phase": t.from_phase.value,
                    "to_phase": t.to_phase.value,
                    "timestamp": t.timestamp,
                    "reason": t.reason,
                }
                for t in self.history
            ],
        }


class DealLifecycle:
    """
    Drives a deal from quorum check to execution.

    Not reentrant: the countdown scheduler awaits each run before the next.
    """

    def __init__(
        self,
        registry: DepositRegistry,
        manager: DealManager,
        broadcaster: EventBroadcaster,
        threshold: int,
        minimum_amount: int = 0,
    ):
        self.registry = registry
        self.manager = manager
        self.broadcaster = broadcaster
        self.threshold = threshold
        self.minimum_amount = minimum_amount
        self._phase = LifecyclePhase.IDLE
        self._runs = 0
        self.last_run: Optional[LifecycleRun] = None

    @property
    def phase(self) -> LifecyclePhase:
        return self._phase

    @property
    def runs(self) -> int:
        return self._runs

    def can_transition_to(self, new_phase: LifecyclePhase) -> bool:
        return new_phase in VALID_TRANSITIONS.get(self._phase, [])

    def _transition(self, run: LifecycleRun, new_phase: LifecyclePhase, reason: str = "") -> None:
        if not self.can_transition_to(new_phase):
            raise InvalidTransitionError(
                f"Cannot transition from {self._phase.value} to {new_phase.value}. "
                f"Valid transitions: {[p.value for p in VALID_TRANSITIONS.get(self._phase, [])]}"
            )
        run.history.append(StateTransition(self._phase, new_phase, reason=reason))
        self._phase = new_phase

    def _start_run(self) -> LifecycleRun:
        self._runs += 1
        run = LifecycleRun(run_id=self._runs)

        if self._phase == LifecyclePhase.DONE:
            self._transition(run, LifecyclePhase.IDLE, "next countdown expiry")
        elif self._phase != LifecyclePhase.IDLE:
            # Previous run raised mid-flight
            logger.warning(
                f"Resetting lifecycle left in {self._phase.value}",
                extra={"context": {"run_id": run.run_id}},
            )
            self._phase = LifecyclePhase.IDLE

        self.last_run = run
        return run

    async def handle_deal_execution(self) -> LifecycleRun:
        """
        Run the lifecycle once: create and execute a deal when quorum is
        reached, otherwise verify the pending deposits.

        Errors while creating, executing or verifying are logged, except a
        failure to advance the last mix block, which aborts the run.
        """
        run = self._start_run()
        try:
            self._transition(run, LifecyclePhase.QUORUM_CHECK, "countdown expired")
            deposits = await self.registry.balance_fillable_deposits(self.minimum_amount)
            run.deposits = len(deposits)

            if len(deposits) >= self.threshold:
                await self._create_and_execute(run, deposits)
            else:
                await self._verify_only(run, deposits)

            self._transition(run, LifecyclePhase.DONE)
        except Exception as e:
            run.outcome = LifecycleOutcome.ABORTED
            run.error = str(e)
            raise

        return run

    async def _create_and_execute(self, run: LifecycleRun, deposits: list) -> None:
        logger.info(
            "Quorum reached",
            extra={"context": {"run_id": run.run_id, "deposits": len(deposits), "threshold": self.threshold}},
        )
        self._transition(run, LifecyclePhase.CREATING_DEAL, "quorum reached")

        # Advance before creation so a failed creation cannot re-trigger immediately
        await self.manager.update_last_mix_block()

        deal: Optional[Deal] = None
        amount = deposits[0].amount
        try:
            deal = await self.manager.create_deal(amount, deposits)
            run.deal_id = deal.id
            logger.debug("Broadcasting new deal", extra={"context": {"deal_id": deal.id}})
            self.broadcaster.emit(Topic.DEAL_CREATED, {"deal": deal.to_dict()})
            self.broadcaster.emit(Topic.QUORUM_CHANGED, {"quorum": 0})
        except Exception as e:
            logger.error(
                f"Deal creation error: {e}",
                extra={"context": {"run_id": run.run_id, "error_code": _error_code(e)}},
                exc_info=True,
            )
            self.broadcaster.emit(Topic.QUORUM_CHANGED, {"quorum": 0})

        # Resetting quorum
        self.broadcaster.emit(Topic.QUORUM_CHANGED, {"quorum": 0})

        if deal is None:
            run.outcome = LifecycleOutcome.DEAL_CREATION_FAILED
            return

        self._transition(run, LifecyclePhase.EXECUTING_DEAL, "deal created")
        opts = execution_task_opts(len(deposits))
        try:
            logger.debug(
                "Deal created on the ledger, executing...",
                extra={"context": {"deal_id": deal.id, "task_gas_limit": opts.task_gas_limit}},
            )
            deal = await self.manager.execute_deal(deal, deposits, opts)
        except Exception as e:
            run.outcome = LifecycleOutcome.DEAL_EXECUTION_FAILED
            logger.error(
                f"Deal execution error: {e}",
                extra={"context": {"deal_id": deal.id, "error_code": _error_code(e)}},
                exc_info=True,
            )
            return

        if deal.execution_receipt is not None and not deal.execution_receipt.succeeded:
            run.outcome = LifecycleOutcome.DEAL_EXECUTION_FAILED
            logger.error(
                "Deal execution reported failure",
                extra={"context": {"deal_id": deal.id, "task_id": deal.execution_receipt.task_id}},
            )
            return

        run.outcome = LifecycleOutcome.DEAL_EXECUTED
        self.broadcaster.emit(Topic.DEAL_EXECUTED, {"deal": deal.to_dict()})

    async def _verify_only(self, run: LifecycleRun, deposits: list) -> None:
        logger.info(
            "Quorum not reached skipping deal execution",
            extra={"context": {"run_id": run.run_id, "deposits": len(deposits), "threshold": self.threshold}},
        )
        self._transition(run, LifecyclePhase.VERIFYING_ONLY, "quorum not reached")
        run.outcome = LifecycleOutcome.QUORUM_NOT_REACHED

        if deposits:
            try:
                await self.manager.verify_deposits(
                    deposits[0].amount,
                    deposits,
                    execution_task_opts(len(deposits)),
                )
            except Exception as e:
                run.outcome = LifecycleOutcome.VERIFICATION_FAILED
                logger.error(
                    f"Unable to verify deposits: {e}",
                    extra={"context": {"run_id": run.run_id, "error_code": _error_code(e)}},
                    exc_info=True,
                )
                return

        self.broadcaster.emit(Topic.QUORUM_NOT_REACHED, {})

    def get_status(self) -> Dict[str, Any]:
        return {
            "phase": self._phase.value,
            "runs": self._runs,
            "threshold": self.threshold,
            "last_run": self.last_run.to_dict() if self.last_run else None,
        }
