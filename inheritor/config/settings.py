"""
Inheritor Settings - Unified configuration.

Resolved from environment variables with the INHERITOR_ prefix.
The inactivity threshold is deliberately absent: it lives on the ledger
contract and is fetched on every cycle.
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger("inheritor.config")


class Settings:
    """Inheritor configuration, resolved from the environment."""

    # Redis
    redis_host: str = "127.0.0.1"
    redis_port: int = 6379
    redis_db: int = 0
    key_prefix: str = "inheritor"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    cors_origins: str = ""

    # Ledger
    rpc_url: str = "http://127.0.0.1:8545"
    rpc_timeout: float = 30.0
    contract_address: str = ""
    operator_address: str = ""
    threshold_function: str = "inactivityThreshold()"
    disburse_function: str = "distributeFunds(address)"

    # Keeper
    tick_interval_seconds: int = 86400
    gas_margin: int = 20000
    max_concurrent_disbursements: int = 1
    cycle_history_limit: int = 100
    embed_scheduler: bool = False

    # Paths
    log_dir: Path = Path.home() / ".inheritor"

    def __init__(self):
        self.redis_host = os.getenv("INHERITOR_REDIS_HOST", self.redis_host)
        self.redis_port = int(os.getenv("INHERITOR_REDIS_PORT", str(self.redis_port)))
        self.redis_db = int(os.getenv("INHERITOR_REDIS_DB", str(self.redis_db)))
        self.key_prefix = os.getenv("INHERITOR_KEY_PREFIX", self.key_prefix)

        self.api_host = os.getenv("INHERITOR_API_HOST", self.api_host)
        self.api_port = int(os.getenv("INHERITOR_API_PORT", str(self.api_port)))
        self.cors_origins = os.getenv("INHERITOR_CORS_ORIGINS", self.cors_origins)

        self.rpc_url = os.getenv("INHERITOR_RPC_URL", self.rpc_url)
        self.rpc_timeout = float(os.getenv("INHERITOR_RPC_TIMEOUT", str(self.rpc_timeout)))
        self.contract_address = os.getenv("INHERITOR_CONTRACT_ADDRESS", self.contract_address)
        self.operator_address = os.getenv("INHERITOR_OPERATOR_ADDRESS", self.operator_address)
        self.threshold_function = os.getenv("INHERITOR_THRESHOLD_FUNCTION", self.threshold_function)
        self.disburse_function = os.getenv("INHERITOR_DISBURSE_FUNCTION", self.disburse_function)

        self.tick_interval_seconds = int(
            os.getenv("INHERITOR_TICK_INTERVAL_SECONDS", str(self.tick_interval_seconds))
        )
        self.gas_margin = int(os.getenv("INHERITOR_GAS_MARGIN", str(self.gas_margin)))
        self.max_concurrent_disbursements = int(
            os.getenv(
                "INHERITOR_MAX_CONCURRENT_DISBURSEMENTS",
                str(self.max_concurrent_disbursements),
            )
        )
        self.cycle_history_limit = int(
            os.getenv("INHERITOR_CYCLE_HISTORY_LIMIT", str(self.cycle_history_limit))
        )
        self.embed_scheduler = os.getenv("INHERITOR_EMBED_SCHEDULER", "").lower() in ("1", "true", "yes")

        log_dir = os.getenv("INHERITOR_LOG_DIR")
        if log_dir:
            self.log_dir = Path(log_dir)

        if self.max_concurrent_disbursements < 1:
            logger.warning(
                "INHERITOR_MAX_CONCURRENT_DISBURSEMENTS=%d is invalid, using 1",
                self.max_concurrent_disbursements,
            )
            self.max_concurrent_disbursements = 1

    @property
    def ledger_configured(self) -> bool:
        """Both the contract and the operator account are required to disburse."""
        return bool(self.contract_address and self.operator_address)


settings = Settings()
