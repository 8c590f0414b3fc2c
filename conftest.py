"""Shared fixtures: a coordinator wired to the in-memory ledger and simulated gateway."""

from datetime import date

import pytest

from claimguard.gateway.simulated import SimulatedGateway
from claimguard.ledger.memory import InMemoryLedger
from claimguard.models.claim import ClaimInput
from claimguard.models.session import SessionContext
from claimguard.orchestration.coordinator import ClaimLifecycleCoordinator
from claimguard.orchestration.status import StatusBroadcaster
from claimguard.storage.claim_repository import ClaimRepository

CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CALLER_ADDRESS = "0xAbC1230000000000000000000000000000000001"
OTHER_ADDRESS = "0xDef4560000000000000000000000000000000002"
START_TIME = 1_700_000_000.0


class FakeClock:
    """Controllable time source in seconds since epoch."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_claim_input(amount: int = 5000, policy_number: str = "POL-001", provider: str = "ACME Health") -> ClaimInput:
    return ClaimInput(
        policy_number=policy_number,
        provider=provider,
        claim_date=date(2024, 3, 15),
        amount=amount,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return SimulatedGateway("test-secret")


@pytest.fixture
def ledger(gateway, clock):
    return InMemoryLedger(
        contract_address=CONTRACT_ADDRESS,
        decryption_verifier=gateway.verify_decryption,
        input_verifier=gateway.verify_input,
        clock=clock,
    )


@pytest.fixture
def session():
    return SessionContext(contract_address=CONTRACT_ADDRESS, caller_address=CALLER_ADDRESS)


@pytest.fixture
def status():
    return StatusBroadcaster()


@pytest.fixture
def repository():
    return ClaimRepository()


@pytest.fixture
def coordinator(ledger, gateway, session, repository, status, clock):
    return ClaimLifecycleCoordinator(
        ledger=ledger,
        gateway=gateway,
        session=session,
        repository=repository,
        status=status,
        fraud_threshold=10000,
        clock=clock,
    )
