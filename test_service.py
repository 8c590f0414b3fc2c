"""Tests for service wiring."""

import pytest

from claimguard import service
from claimguard.gateway.relayer import RelayerGateway
from claimguard.gateway.simulated import SimulatedGateway
from claimguard.ledger.http_client import HttpLedgerClient
from claimguard.ledger.memory import InMemoryLedger
from claimguard.utils.config import Config
from claimguard.utils.errors import ConfigError


def _config(ledger=None, gateway=None, **extra):
    data = {
        "ledger": {"backend": "memory", "contract_address": "0xContract", **(ledger or {})},
        "gateway": {"backend": "simulated", "secret": "s", **(gateway or {})},
        "session": {"caller_address": "0xCaller"},
    }
    data.update(extra)
    return Config.from_dict(data)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("LEDGER_BACKEND", "GATEWAY_BACKEND", "CALLER_ADDRESS", "GATEWAY_SECRET", "CONTRACT_ADDRESS"):
        monkeypatch.delenv(name, raising=False)


def test_default_wiring_uses_memory_ledger_and_simulated_gateway():
    coordinator = service.build_coordinator(_config(fraud={"threshold": 42}))

    assert isinstance(coordinator.ledger, InMemoryLedger)
    assert isinstance(coordinator.gateway, SimulatedGateway)
    assert coordinator.session.caller_address == "0xCaller"
    assert coordinator.session.contract_address == "0xContract"
    assert coordinator.fraud_threshold == 42


@pytest.mark.asyncio
async def test_remote_wiring():
    config = _config(
        ledger={"backend": "http", "endpoint": "http://ledger.test"},
        gateway={"backend": "relayer", "endpoint": "http://relayer.test"},
    )
    coordinator = service.build_coordinator(config)
    try:
        assert isinstance(coordinator.ledger, HttpLedgerClient)
        assert isinstance(coordinator.gateway, RelayerGateway)
    finally:
        await coordinator.close()


def test_memory_ledger_requires_simulated_gateway():
    config = _config(gateway={"backend": "relayer", "endpoint": "http://relayer.test"})

    with pytest.raises(ConfigError):
        service.build_coordinator(config)
