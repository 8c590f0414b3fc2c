"""Tests for configuration loading."""

from pathlib import Path

import pytest

from claimguard.utils.config import Config
from claimguard.utils.errors import ConfigError, ErrorType

OVERRIDE_VARS = (
    "LEDGER_BACKEND", "LEDGER_ENDPOINT", "CONTRACT_ADDRESS",
    "GATEWAY_BACKEND", "GATEWAY_ENDPOINT", "GATEWAY_SECRET",
    "CALLER_ADDRESS", "FRAUD_THRESHOLD", "LOG_LEVEL",
)

BASE_YAML = """
ledger:
  backend: memory
  contract_address: "0xContract"
gateway:
  backend: simulated
  secret: "s3cret"
fraud:
  threshold: 2500
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in OVERRIDE_VARS:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


def test_load_reads_yaml_with_defaults(tmp_path):
    config = Config.load(_write(tmp_path, BASE_YAML))

    assert config.ledger.backend == "memory"
    assert config.ledger.contract_address == "0xContract"
    assert config.ledger.timeout == 30.0
    assert config.gateway.secret == "s3cret"
    assert config.fraud.threshold == 2500
    assert config.status.history_size == 100
    assert config.session.caller_address is None
    assert config.logging.level == "INFO"


def test_environment_overrides_file_values(tmp_path, monkeypatch):
    monkeypatch.setenv("FRAUD_THRESHOLD", "777")
    monkeypatch.setenv("CALLER_ADDRESS", "0xCaller")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = Config.load(_write(tmp_path, BASE_YAML))

    assert config.fraud.threshold == 777
    assert config.session.caller_address == "0xCaller"
    assert config.logging.level == "DEBUG"


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError) as exc_info:
        Config.load(str(tmp_path / "absent.yaml"))
    assert exc_info.value.error_type is ErrorType.CONFIG_MISSING


@pytest.mark.parametrize(
    "data, key",
    [
        ({"ledger": {"backend": "carrier-pigeon", "contract_address": "0x1"}}, "ledger.backend"),
        ({"ledger": {"backend": "http", "contract_address": "0x1"}}, "ledger.endpoint"),
        ({"ledger": {"backend": "memory"}}, "ledger.contract_address"),
        ({"ledger": {"contract_address": "0x1"}, "gateway": {"backend": "relayer"}}, "gateway.endpoint"),
        ({"ledger": {"contract_address": "0x1"}, "gateway": {"backend": "simulated"}}, "gateway.secret"),
        (
            {"ledger": {"contract_address": "0x1"}, "gateway": {"secret": "x"}, "fraud": {"threshold": -1}},
            "fraud.threshold",
        ),
        (
            {"ledger": {"contract_address": "0x1", "timeout": "soon"}, "gateway": {"secret": "x"}},
            "ledger.timeout",
        ),
    ],
)
def test_invalid_values_raise(data, key):
    with pytest.raises(ConfigError) as exc_info:
        Config.from_dict(data)

    assert exc_info.value.error_type is ErrorType.CONFIG_INVALID
    assert key in exc_info.value.context.message


def test_repository_config_file_is_valid():
    config = Config.load(str(Path(__file__).parent / "config.yaml"))
    assert config.ledger.backend in ("memory", "http")
    assert config.fraud.threshold == 10000
