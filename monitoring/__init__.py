"""
Monitoring package for the Salad operator.

These exports MUST remain stable:
- build_health_report
- derive_status
"""

from monitoring.health import (
    build_health_report,
    derive_status,
)

__all__ = [
    "build_health_report",
    "derive_status",
]
