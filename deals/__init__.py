"""
deals/ - Deal orchestration.

Modules:
- registry: deposit registry and quorum
- manager: deal creation, execution and the block countdown
- state_machine: deal lifecycle phases
- scheduler: block countdown polling loop
- operator_api: outward operator capabilities
"""

from deals.registry import DepositRegistry
from deals.manager import (
    DealManager,
    execution_task_opts,
    generate_deal_id,
)
from deals.state_machine import (
    DealLifecycle,
    LifecycleOutcome,
    LifecyclePhase,
    LifecycleRun,
    VALID_TRANSITIONS,
)
from deals.scheduler import CountdownScheduler
from deals.operator_api import OperatorApi, build_operator

__all__ = [
    "DepositRegistry",
    "DealManager",
    "execution_task_opts",
    "generate_deal_id",
    "DealLifecycle",
    "LifecycleOutcome",
    "LifecyclePhase",
    "LifecycleRun",
    "VALID_TRANSITIONS",
    "CountdownScheduler",
    "OperatorApi",
    "build_operator",
]
