"""
Configuration Manager for the Hype client
Loads configuration from YAML files with environment variable support
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from solders.pubkey import Pubkey

from hype.core.addresses import DEFAULT_PROGRAM_ID


DEFAULT_VERSION = 0
DEFAULT_RPC_URL = "https://rpc-mainnet.hype.vote"

_ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')


@dataclass
class ProtocolConfig:
    """On-chain program and node settings"""
    program_id: str = str(DEFAULT_PROGRAM_ID)
    version: int = DEFAULT_VERSION
    rpc_url: str = DEFAULT_RPC_URL
    commitment: str = "confirmed"
    accounts_batch_limit: int = 100  # max addresses per multi-account request

    @property
    def program_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.program_id)


@dataclass
class LogConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "json"
    output_file: Optional[str] = None


@dataclass
class MetricsConfig:
    """Metrics configuration"""
    enable_histogram: bool = True


@dataclass
class ComputeBudgetConfig:
    """Compute budget attached to trade transactions"""
    units: int = 200_000
    unit_price: int = 0  # micro-lamports per compute unit


@dataclass
class HypeConfig:
    """Complete client configuration"""
    protocol: ProtocolConfig = field(default_factory=ProtocolConfig)
    log_config: LogConfig = field(default_factory=LogConfig)
    metrics_config: MetricsConfig = field(default_factory=MetricsConfig)
    compute_budget: ComputeBudgetConfig = field(default_factory=ComputeBudgetConfig)


class ConfigurationManager:
    """Manages client configuration from YAML files and environment variables"""

    def __init__(self, config_path: str):
        """
        Initialize configuration manager

        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path)
        self._config_data: Optional[Dict[str, Any]] = None
        self._hype_config: Optional[HypeConfig] = None

    def load_config(self) -> HypeConfig:
        """
        Load and validate configuration from file

        Returns:
            HypeConfig: Validated configuration object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}"
            )

        with open(self.config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        # Substitute environment variables
        self._config_data = self._substitute_env_vars(raw_config)

        # Parse and validate
        self._hype_config = self._parse_config(self._config_data)

        return self._hype_config

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Args:
            key: Dot-notation key (e.g., "protocol.version")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if self._config_data is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")

        value = self._config_data
        for k in key.split('.'):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def _substitute_env_vars(self, config: Any) -> Any:
        """
        Recursively substitute environment variables in config

        Environment variables are specified as ${VAR_NAME}, either as the
        whole value or embedded in a longer string.

        Raises:
            ValueError: If a referenced variable is not set
        """
        if isinstance(config, dict):
            return {k: self._substitute_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            def replace_var(match):
                var_name = match.group(1)
                value = os.getenv(var_name)
                if value is None:
                    raise ValueError(
                        f"Environment variable {var_name} not found"
                    )
                return value

            return _ENV_VAR_PATTERN.sub(replace_var, config)
        else:
            return config

    def _parse_config(self, config: Dict[str, Any]) -> HypeConfig:
        """
        Parse raw configuration into typed objects

        Raises:
            ValueError: If configuration is invalid
        """
        protocol_data = config.get('protocol', {})
        protocol = ProtocolConfig(
            program_id=protocol_data.get('program_id', str(DEFAULT_PROGRAM_ID)),
            version=int(protocol_data.get('version', DEFAULT_VERSION)),
            rpc_url=protocol_data.get('rpc_url', DEFAULT_RPC_URL),
            commitment=protocol_data.get('commitment', 'confirmed'),
            accounts_batch_limit=int(protocol_data.get('accounts_batch_limit', 100))
        )

        try:
            Pubkey.from_string(protocol.program_id)
        except ValueError as e:
            raise ValueError(f"Invalid program_id {protocol.program_id!r}: {e}") from e

        if protocol.accounts_batch_limit <= 0:
            raise ValueError("accounts_batch_limit must be positive")

        log_data = config.get('logging', {})
        log_config = LogConfig(
            level=log_data.get('level', 'INFO'),
            format=log_data.get('format', 'json'),
            output_file=log_data.get('output_file')
        )

        metrics_data = config.get('metrics', {})
        metrics_config = MetricsConfig(
            enable_histogram=metrics_data.get('enable_histogram', True)
        )

        budget_data = config.get('compute_budget', {})
        compute_budget = ComputeBudgetConfig(
            units=int(budget_data.get('units', 200_000)),
            unit_price=int(budget_data.get('unit_price', 0))
        )

        return HypeConfig(
            protocol=protocol,
            log_config=log_config,
            metrics_config=metrics_config,
            compute_budget=compute_budget
        )
