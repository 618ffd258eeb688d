"""
enclave/ - Compute network interaction layer.

Modules:
- client: ComputeClient capability and its JSON-RPC implementation
- keys: one-time encryption key bootstrap with bounded retry
"""

from enclave.client import (
    ComputeClient,
    RPCComputeClient,
    pack_encrypted_recipients,
)
from enclave.keys import (
    EncryptionKeyBootstrapper,
    default_key_task_opts,
)

__all__ = [
    "ComputeClient",
    "RPCComputeClient",
    "pack_encrypted_recipients",
    "EncryptionKeyBootstrapper",
    "default_key_task_opts",
]
