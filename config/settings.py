"""
config/settings.py - Operator configuration.

Defaults come from config/operator.yaml, then environment variables
(optionally from a .env file) override individual values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from core.constants import (
    DEFAULT_DEAL_INTERVAL_BLOCKS,
    DEFAULT_KEY_FETCH_BACKOFF_MULTIPLIER,
    DEFAULT_KEY_FETCH_INITIAL_BACKOFF_SECONDS,
    DEFAULT_KEY_FETCH_MAX_ATTEMPTS,
    DEFAULT_KEY_FETCH_MAX_BACKOFF_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_RECEIPT_MAX_POLLS,
    DEFAULT_RECEIPT_POLL_SECONDS,
    DEFAULT_TX_GAS_LIMIT,
)
from core.exceptions import ConfigError

DEFAULT_CONFIG_PATH = Path(__file__).parent / "operator.yaml"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass
class KeyFetchPolicy:
    """Retry policy for the encryption key bootstrap."""
    max_attempts: int = DEFAULT_KEY_FETCH_MAX_ATTEMPTS
    initial_backoff_seconds: float = DEFAULT_KEY_FETCH_INITIAL_BACKOFF_SECONDS
    max_backoff_seconds: float = DEFAULT_KEY_FETCH_MAX_BACKOFF_SECONDS
    backoff_multiplier: float = DEFAULT_KEY_FETCH_BACKOFF_MULTIPLIER

    def backoff_for(self, attempt: int) -> float:
        """Delay after the given (1-indexed) failed attempt."""
        delay = self.initial_backoff_seconds * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_backoff_seconds)


@dataclass
class OperatorConfig:
    """Full operator configuration."""

    # Ledger
    ledger_rpc_urls: list[str] = field(default_factory=lambda: ["http://localhost:8545"])
    ledger_timeout_seconds: int = 30
    account_index: int = 0
    salad_contract_address: str = ZERO_ADDRESS
    tx_gas_limit: int = DEFAULT_TX_GAS_LIMIT
    gas_price_wei: int | None = None
    receipt_poll_seconds: float = DEFAULT_RECEIPT_POLL_SECONDS
    receipt_max_polls: int = DEFAULT_RECEIPT_MAX_POLLS

    # Compute network
    enigma_url: str = "http://localhost:3346"
    enigma_timeout_seconds: int = 60
    secret_contract_address: str = ""

    # Deals
    threshold: int = 2
    minimum_amount: int = 0
    deal_interval_blocks: int = DEFAULT_DEAL_INTERVAL_BLOCKS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    key_fetch: KeyFetchPolicy = field(default_factory=KeyFetchPolicy)

    # Store
    store_path: str | None = None

    def validate(self) -> "OperatorConfig":
        """
        Check invariants the engine relies on.

        Raises:
            ConfigError: On the first invalid value
        """
        if self.threshold < 1:
            raise ConfigError("threshold must be >= 1", details={"threshold": self.threshold})
        if self.minimum_amount < 0:
            raise ConfigError("minimum_amount must be >= 0", details={"minimum_amount": self.minimum_amount})
        if self.deal_interval_blocks <= 0:
            raise ConfigError(
                "deal_interval_blocks must be > 0",
                details={"deal_interval_blocks": self.deal_interval_blocks},
            )
        if self.poll_interval_seconds <= 0:
            raise ConfigError(
                "poll_interval_seconds must be > 0",
                details={"poll_interval_seconds": self.poll_interval_seconds},
            )
        if not self.ledger_rpc_urls:
            raise ConfigError("At least one ledger RPC URL is required")
        if self.key_fetch.max_attempts < 1:
            raise ConfigError(
                "key_fetch.max_attempts must be >= 1",
                details={"max_attempts": self.key_fetch.max_attempts},
            )
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "ledger_rpc_urls": list(self.ledger_rpc_urls),
            "account_index": self.account_index,
            "salad_contract_address": self.salad_contract_address,
            "enigma_url": self.enigma_url,
            "secret_contract_address": self.secret_contract_address,
            "threshold": self.threshold,
            "minimum_amount": self.minimum_amount,
            "deal_interval_blocks": self.deal_interval_blocks,
            "poll_interval_seconds": self.poll_interval_seconds,
            "key_fetch_max_attempts": self.key_fetch.max_attempts,
            "store_path": self.store_path,
        }


def _env_int(name: str, current: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return current
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer", details={"value": raw}) from e


def _apply_env_overrides(config: OperatorConfig) -> OperatorConfig:
    """Apply environment variable overrides in place."""
    rpc_urls = os.getenv("LEDGER_RPC_URLS")
    if rpc_urls:
        config.ledger_rpc_urls = [u.strip() for u in rpc_urls.split(",") if u.strip()]

    config.enigma_url = os.getenv("ENIGMA_URL", config.enigma_url)
    config.salad_contract_address = os.getenv("SALAD_CONTRACT_ADDRESS", config.salad_contract_address)
    config.secret_contract_address = os.getenv("SECRET_CONTRACT_ADDRESS", config.secret_contract_address)
    config.store_path = os.getenv("STORE_PATH", config.store_path) or None

    config.threshold = _env_int("PARTICIPATION_THRESHOLD", config.threshold)
    config.account_index = _env_int("OPERATOR_ACCOUNT_INDEX", config.account_index)
    config.deal_interval_blocks = _env_int("DEAL_INTERVAL_BLOCKS", config.deal_interval_blocks)
    config.gas_price_wei = _env_int("GAS_PRICE", config.gas_price_wei)

    return config


def load_operator_config(
    config_path: Path | None = None,
    use_env: bool = True,
) -> OperatorConfig:
    """
    Load operator configuration from YAML, then the environment.

    Args:
        config_path: Path to operator.yaml (default: bundled config/operator.yaml)
        use_env: Apply environment overrides (loads .env first)

    Returns:
        Validated OperatorConfig

    Raises:
        ConfigError: If a value is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    ledger = data.get("ledger", {}) or {}
    enclave = data.get("enclave", {}) or {}
    deals = data.get("deals", {}) or {}
    key_fetch = data.get("key_fetch", {}) or {}
    store = data.get("store", {}) or {}

    defaults = OperatorConfig()
    config = OperatorConfig(
        ledger_rpc_urls=list(ledger.get("rpc_urls", defaults.ledger_rpc_urls)),
        ledger_timeout_seconds=int(ledger.get("timeout_seconds", defaults.ledger_timeout_seconds)),
        account_index=int(ledger.get("account_index", defaults.account_index)),
        salad_contract_address=ledger.get("salad_contract_address", defaults.salad_contract_address),
        tx_gas_limit=int(ledger.get("tx_gas_limit", defaults.tx_gas_limit)),
        gas_price_wei=ledger.get("gas_price_wei", defaults.gas_price_wei),
        receipt_poll_seconds=float(ledger.get("receipt_poll_seconds", defaults.receipt_poll_seconds)),
        receipt_max_polls=int(ledger.get("receipt_max_polls", defaults.receipt_max_polls)),
        enigma_url=enclave.get("url", defaults.enigma_url),
        enigma_timeout_seconds=int(enclave.get("timeout_seconds", defaults.enigma_timeout_seconds)),
        secret_contract_address=enclave.get("secret_contract_address", defaults.secret_contract_address),
        threshold=int(deals.get("threshold", defaults.threshold)),
        minimum_amount=int(deals.get("minimum_amount", defaults.minimum_amount)),
        deal_interval_blocks=int(deals.get("deal_interval_blocks", defaults.deal_interval_blocks)),
        poll_interval_seconds=float(deals.get("poll_interval_seconds", defaults.poll_interval_seconds)),
        key_fetch=KeyFetchPolicy(
            max_attempts=int(key_fetch.get("max_attempts", DEFAULT_KEY_FETCH_MAX_ATTEMPTS)),
            initial_backoff_seconds=float(
                key_fetch.get("initial_backoff_seconds", DEFAULT_KEY_FETCH_INITIAL_BACKOFF_SECONDS)
            ),
            max_backoff_seconds=float(
                key_fetch.get("max_backoff_seconds", DEFAULT_KEY_FETCH_MAX_BACKOFF_SECONDS)
            ),
            backoff_multiplier=float(
                key_fetch.get("backoff_multiplier", DEFAULT_KEY_FETCH_BACKOFF_MULTIPLIER)
            ),
        ),
        store_path=store.get("path"),
    )

    if use_env:
        load_dotenv()
        _apply_env_overrides(config)

    return config.validate()
