"""
Configuration Management Module

Trader settings kept in a YAML file, with environment overrides for the
values that usually differ per machine (RPC endpoint, log level).
Secrets never live here; see ``wallet.SecureKeyManager``.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict, replace

import yaml

import logging
logger = logging.getLogger(__name__)


# Environment variable -> Config field
ENV_OVERRIDES = {
    "RPC_URL": "rpc_url",
    "PUMPPORTAL_URL": "pumpportal_url",
    "LOG_LEVEL": "log_level",
}


@dataclass
class Config:
    """Trader configuration settings."""

    # Network
    rpc_url: str = "https://api.mainnet-beta.solana.com"

    # PumpPortal trade builder
    pumpportal_url: str = "https://pumpportal.fun/api/trade-local"
    pool: str = "pump"
    request_timeout_seconds: float = 10.0

    # Trading defaults
    slippage_percent: float = 5.0
    priority_fee: float = 0.005  # SOL

    # Submission
    max_send_retries: int = 3
    skip_preflight: bool = False

    # Operation
    log_level: str = "INFO"
    log_file: Optional[str] = None
    key_file: str = "./.pump_wallet.enc"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        # Filter only valid fields
        valid_fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)

    def with_env_overrides(self, environ: Optional[Dict[str, str]] = None) -> "Config":
        """Return a copy with values taken from the environment where set."""
        environ = os.environ if environ is None else environ
        updates = {
            field_name: environ[var]
            for var, field_name in ENV_OVERRIDES.items()
            if environ.get(var)
        }
        return replace(self, **updates)


class ConfigManager:
    """Reads and writes the YAML configuration file."""

    def __init__(self, config_path: Path = Path("./pump_trader.yaml")):
        self.config_path = Path(config_path)

    def exists(self) -> bool:
        return self.config_path.exists()

    def load_config(self) -> Config:
        """Load configuration, or defaults when the file is missing."""
        if not self.config_path.exists():
            logger.info(f"No config file at {self.config_path}, using defaults")
            return Config()

        with open(self.config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        config = Config.from_dict(data)
        logger.info("Configuration loaded successfully")
        return config

    def save_config(self, config: Config):
        """Save configuration to YAML file."""
        # Ensure directory exists
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)

        # Set restrictive permissions (owner read/write only)
        os.chmod(self.config_path, 0o600)

        logger.info(f"Configuration saved to {self.config_path}")
