"""
monitoring/health.py - Operator health report.

STATUS CONTRACT:
- HEALTHY:   encryption key cached AND scheduler RUNNING
- DEGRADED:  key not cached yet, or scheduler STOPPED
- UNHEALTHY: key fetch exhausted its retry budget (UNAVAILABLE)
"""

from typing import TYPE_CHECKING, Any, Dict

from core.constants import HealthStatus, KeyState, ServiceState
from core.time import now_iso

if TYPE_CHECKING:
    from deals.operator_api import OperatorApi


def derive_status(key_state: KeyState, scheduler_state: ServiceState) -> HealthStatus:
    if key_state == KeyState.UNAVAILABLE:
        return HealthStatus.UNHEALTHY
    if key_state == KeyState.CACHED and scheduler_state == ServiceState.RUNNING:
        return HealthStatus.HEALTHY
    return HealthStatus.DEGRADED


def build_health_report(api: "OperatorApi") -> Dict[str, Any]:
    """Build a point-in-time health report for the operator."""
    scheduler = api.scheduler
    status = derive_status(api.keys.state, scheduler.state)

    return {
        "timestamp": now_iso(),
        "status": status.value,
        "key_state": api.keys.state.value,
        "key": api.keys.get_status(),
        "scheduler_state": scheduler.state.value,
        "last_countdown": scheduler.last_countdown.to_dict() if scheduler.last_countdown else None,
        "last_tick_at": scheduler.last_tick_at,
        "lifecycle_runs": scheduler.lifecycle_runs,
        "lifecycle_phase": api.lifecycle.phase.value,
        "last_error": scheduler.last_error,
        "rpc": api.get_rpc_stats(),
        "events": api.broadcaster.get_stats(),
    }
