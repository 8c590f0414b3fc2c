"""
Service entry point for the claim lifecycle coordinator.

This module wires configuration, the ledger client, the encryption gateway
and the coordinator together, and exposes a lazily built shared coordinator
for the HTTP server.
"""

import logging
from typing import Optional

from dotenv import load_dotenv

from .gateway.base import EncryptionGateway
from .gateway.relayer import RelayerGateway
from .gateway.simulated import SimulatedGateway
from .ledger.base import LedgerClient
from .ledger.http_client import HttpLedgerClient
from .ledger.memory import InMemoryLedger
from .models.session import SessionContext
from .orchestration.coordinator import ClaimLifecycleCoordinator
from .orchestration.status import StatusBroadcaster
from .storage.claim_repository import ClaimRepository
from .utils.config import Config
from .utils.errors import ConfigError
from .utils.logging import setup_logging

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# Global instances (initialized on first use)
_config: Optional[Config] = None
_coordinator: Optional[ClaimLifecycleCoordinator] = None


def build_gateway(config: Config) -> EncryptionGateway:
    """Create the encryption gateway selected by ``gateway.backend``."""
    if config.gateway.backend == "relayer":
        return RelayerGateway(endpoint=config.gateway.endpoint, timeout=config.gateway.timeout)
    return SimulatedGateway(secret=config.gateway.secret)


def build_ledger(config: Config, gateway: EncryptionGateway) -> LedgerClient:
    """
    Create the ledger client selected by ``ledger.backend``.

    The in-memory ledger checks proofs with the simulated gateway's keys, so
    it can only be paired with that gateway.

    Raises:
        ConfigError: If the memory ledger is combined with another gateway
    """
    if config.ledger.backend == "http":
        return HttpLedgerClient(
            endpoint=config.ledger.endpoint,
            timeout=config.ledger.timeout,
            finality_poll_interval=config.ledger.finality_poll_interval,
            finality_timeout=config.ledger.finality_timeout,
        )

    if not isinstance(gateway, SimulatedGateway):
        raise ConfigError.invalid("ledger.backend", "the memory ledger requires the simulated gateway")
    return InMemoryLedger(
        contract_address=config.ledger.contract_address,
        decryption_verifier=gateway.verify_decryption,
        input_verifier=gateway.verify_input,
    )


def build_coordinator(config: Config) -> ClaimLifecycleCoordinator:
    """
    Build a coordinator and its collaborators from configuration.

    Args:
        config: Loaded configuration

    Returns:
        A coordinator bound to the configured session
    """
    gateway = build_gateway(config)
    ledger = build_ledger(config, gateway)
    status = StatusBroadcaster(
        history_size=config.status.history_size,
        success_dismiss_seconds=config.status.success_dismiss_seconds,
        error_dismiss_seconds=config.status.error_dismiss_seconds,
    )
    session = SessionContext(
        contract_address=config.ledger.contract_address,
        caller_address=config.session.caller_address,
    )

    logger.info(
        f"Building coordinator: ledger={config.ledger.backend}, gateway={config.gateway.backend}, "
        f"contract={config.ledger.contract_address}"
    )
    return ClaimLifecycleCoordinator(
        ledger=ledger,
        gateway=gateway,
        session=session,
        repository=ClaimRepository(),
        status=status,
        fraud_threshold=config.fraud.threshold,
    )


def get_config(config_path: str = "config.yaml") -> Config:
    global _config

    if _config is None:
        _config = Config.load(config_path)
    return _config


def get_coordinator(config_path: str = "config.yaml") -> ClaimLifecycleCoordinator:
    """
    Return the shared coordinator, building it on first use.

    This is called lazily so importing the module does not read configuration
    or open connections.
    """
    global _coordinator

    if _coordinator is not None:
        return _coordinator

    config = get_config(config_path)
    setup_logging(level=config.logging.level, log_format=config.logging.format, log_file=config.logging.file)
    logger.info("Initializing claim lifecycle service")

    _coordinator = build_coordinator(config)
    logger.info("Service initialization complete")
    return _coordinator


async def shutdown() -> None:
    """Close the shared coordinator and forget it."""
    global _config, _coordinator

    if _coordinator is not None:
        await _coordinator.close()
    _coordinator = None
    _config = None
