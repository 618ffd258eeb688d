"""
chains/ - Ledger interaction layer.

Modules:
- providers: JSON-RPC provider management with failover
- ledger: Ledger client capability (height, transactions, contract reads)
- block: Block countdown until the next mix point
"""

from chains.providers import (
    RPCProvider,
    RPCResponse,
    RPCStats,
)
from chains.ledger import (
    ContractCall,
    LedgerClient,
    RPCLedgerClient,
    TxOpts,
)
from chains.block import (
    BlockCountdown,
    compute_countdown,
    fetch_block_height,
)

__all__ = [
    # Providers
    "RPCProvider",
    "RPCResponse",
    "RPCStats",
    # Ledger
    "ContractCall",
    "LedgerClient",
    "RPCLedgerClient",
    "TxOpts",
    # Block
    "BlockCountdown",
    "compute_countdown",
    "fetch_block_height",
]
