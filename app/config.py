from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # HyperSync indexing backend
    hypersync_url: str = "https://monad-testnet.hypersync.xyz"
    hypersync_api_token: str = ""

    # Plain JSON-RPC endpoint, only used as a chain height fallback
    rpc_url: str = "https://testnet-rpc.monad.xyz"

    # Per-call limits
    request_timeout_seconds: float = 30.0
    max_retries: int = 2
    retry_backoff_seconds: float = 0.5
    max_pages_per_query: int = 20

    # Used when neither HyperSync nor RPC can report a height
    fallback_block_height: int = 100000

    # Contract log phase
    contract_log_batch_size: int = 50
    contract_log_concurrency: int = 5

    # Progress throttling for the direct transaction phase
    progress_interval_seconds: float = 5.0
    progress_every_contracts: int = 25

    # Fraction of failed sub-queries above which a scan is logged as degraded
    degraded_failure_ratio: float = 0.5

    # Registry
    registry_dir: str = "data/dapps"

    # Server
    rate_limit_per_minute: int = 60
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
