"""Configuration management for the claim lifecycle coordinator."""

import os
import yaml
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .errors import ConfigError

# Ensure environment variables are loaded
load_dotenv()

LEDGER_BACKENDS = ("memory", "http")
GATEWAY_BACKENDS = ("simulated", "relayer")


@dataclass
class LedgerConfig:
    """Ledger client configuration."""
    backend: str
    endpoint: str
    contract_address: str
    timeout: float
    finality_poll_interval: float = 1.0
    finality_timeout: float = 120.0


@dataclass
class GatewayConfig:
    """Encryption gateway configuration."""
    backend: str
    endpoint: str
    timeout: float
    secret: str = ""


@dataclass
class FraudConfig:
    """Fraud statistics configuration."""
    threshold: int = 10000


@dataclass
class StatusConfig:
    """Operation status stream configuration."""
    history_size: int = 100
    success_dismiss_seconds: float = 2.0
    error_dismiss_seconds: float = 3.0


@dataclass
class SessionConfig:
    """Default caller identity for the local session."""
    caller_address: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


@dataclass
class Config:
    """Main configuration class."""
    ledger: LedgerConfig
    gateway: GatewayConfig
    fraud: FraudConfig = field(default_factory=FraudConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: str = "config.yaml") -> "Config":
        """
        Load configuration from file and environment variables.

        Environment variables override config file values:
        - LEDGER_BACKEND
        - LEDGER_ENDPOINT
        - CONTRACT_ADDRESS
        - GATEWAY_BACKEND
        - GATEWAY_ENDPOINT
        - GATEWAY_SECRET
        - CALLER_ADDRESS
        - FRAUD_THRESHOLD
        - LOG_LEVEL

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            ConfigError: If the file is missing or a value is invalid
        """
        if not os.path.exists(config_path):
            raise ConfigError.missing(config_path)

        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        return cls.from_dict(config_data)

    @classmethod
    def from_dict(cls, config_data: Dict[str, Any]) -> "Config":
        """
        Build configuration from an already parsed mapping.

        Args:
            config_data: Parsed YAML content

        Returns:
            Config instance with environment overrides applied
        """
        ledger_data = config_data.get("ledger", {}) or {}
        gateway_data = config_data.get("gateway", {}) or {}
        fraud_data = config_data.get("fraud", {}) or {}
        status_data = config_data.get("status", {}) or {}
        session_data = config_data.get("session", {}) or {}
        logging_data = config_data.get("logging", {}) or {}

        # Ledger configuration with environment overrides
        ledger_config = LedgerConfig(
            backend=os.getenv("LEDGER_BACKEND", ledger_data.get("backend", "memory")),
            endpoint=os.getenv("LEDGER_ENDPOINT", ledger_data.get("endpoint", "")),
            contract_address=os.getenv("CONTRACT_ADDRESS", ledger_data.get("contract_address", "")),
            timeout=_as_float("ledger.timeout", ledger_data.get("timeout", 30)),
            finality_poll_interval=_as_float(
                "ledger.finality_poll_interval", ledger_data.get("finality_poll_interval", 1.0)
            ),
            finality_timeout=_as_float("ledger.finality_timeout", ledger_data.get("finality_timeout", 120.0)),
        )
        if ledger_config.backend not in LEDGER_BACKENDS:
            raise ConfigError.invalid("ledger.backend", f"expected one of {LEDGER_BACKENDS}")
        if ledger_config.backend == "http" and not ledger_config.endpoint:
            raise ConfigError.invalid("ledger.endpoint", "required for the http backend")
        if not ledger_config.contract_address:
            raise ConfigError.invalid("ledger.contract_address", "must not be empty")

        # Encryption gateway configuration
        gateway_config = GatewayConfig(
            backend=os.getenv("GATEWAY_BACKEND", gateway_data.get("backend", "simulated")),
            endpoint=os.getenv("GATEWAY_ENDPOINT", gateway_data.get("endpoint", "")),
            timeout=_as_float("gateway.timeout", gateway_data.get("timeout", 60)),
            secret=os.getenv("GATEWAY_SECRET", gateway_data.get("secret", "")),
        )
        if gateway_config.backend not in GATEWAY_BACKENDS:
            raise ConfigError.invalid("gateway.backend", f"expected one of {GATEWAY_BACKENDS}")
        if gateway_config.backend == "relayer" and not gateway_config.endpoint:
            raise ConfigError.invalid("gateway.endpoint", "required for the relayer backend")
        if gateway_config.backend == "simulated" and not gateway_config.secret:
            raise ConfigError.invalid("gateway.secret", "required for the simulated backend")

        threshold = _as_int("fraud.threshold", os.getenv("FRAUD_THRESHOLD", fraud_data.get("threshold", 10000)))
        if threshold < 0:
            raise ConfigError.invalid("fraud.threshold", "must be non-negative")

        status_config = StatusConfig(
            history_size=_as_int("status.history_size", status_data.get("history_size", 100)),
            success_dismiss_seconds=_as_float(
                "status.success_dismiss_seconds", status_data.get("success_dismiss_seconds", 2.0)
            ),
            error_dismiss_seconds=_as_float(
                "status.error_dismiss_seconds", status_data.get("error_dismiss_seconds", 3.0)
            ),
        )

        session_config = SessionConfig(
            caller_address=os.getenv("CALLER_ADDRESS", session_data.get("caller_address")) or None
        )

        logging_config = LoggingConfig(
            level=os.getenv("LOG_LEVEL", logging_data.get("level", "INFO")),
            format=logging_data.get("format", LoggingConfig.format),
            file=logging_data.get("file"),
        )

        return cls(
            ledger=ledger_config,
            gateway=gateway_config,
            fraud=FraudConfig(threshold=threshold),
            status=status_config,
            session=session_config,
            logging=logging_config,
        )


def _as_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError.invalid(key, f"expected an integer, got {value!r}")


def _as_float(key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError.invalid(key, f"expected a number, got {value!r}")
