"""
events/ - In-process publish/subscribe.

Modules:
- broadcaster: topic -> ordered handler registry
"""

from events.broadcaster import (
    Event,
    EventBroadcaster,
    Handler,
)

__all__ = [
    "Event",
    "EventBroadcaster",
    "Handler",
]
