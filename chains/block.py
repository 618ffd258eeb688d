"""
chains/block.py - Block countdown.

    raw = interval - (current_height - last_mix_block)

raw <= 0 means the next mix point is reached. Reported values are clamped
to 0; the raw value drives the decision.
"""

from dataclasses import dataclass

from chains.ledger import LedgerClient
from core.exceptions import SaladError, TransientNetworkError
from core.logging import get_logger
from core.time import now_ms

logger = get_logger(__name__)


@dataclass(frozen=True)
class BlockCountdown:
    """Blocks remaining until the next allowed mix point."""
    current_height: int
    last_mix_block: int
    interval: int
    timestamp_ms: int = 0

    @property
    def raw(self) -> int:
        return self.interval - (self.current_height - self.last_mix_block)

    @property
    def remaining(self) -> int:
        return max(self.raw, 0)

    @property
    def deadline_reached(self) -> bool:
        return self.raw <= 0

    def age_ms(self) -> int:
        return now_ms() - self.timestamp_ms

    def to_dict(self) -> dict:
        return {
            "current_height": self.current_height,
            "last_mix_block": self.last_mix_block,
            "interval": self.interval,
            "block_countdown": self.remaining,
        }


def compute_countdown(current_height: int, last_mix_block: int, interval: int) -> BlockCountdown:
    return BlockCountdown(
        current_height=current_height,
        last_mix_block=last_mix_block,
        interval=interval,
        timestamp_ms=now_ms(),
    )


async def fetch_block_height(ledger: LedgerClient) -> int:
    """
    Fetch current block height.

    Raises:
        TransientNetworkError: If the ledger cannot be reached
    """
    try:
        return await ledger.get_height()
    except SaladError:
        raise
    except Exception as e:
        raise TransientNetworkError(f"Failed to fetch block height: {e}") from e
