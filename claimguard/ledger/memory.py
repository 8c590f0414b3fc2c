"""In-process, append-only ledger used for local runs and tests."""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Dict, List, Optional

from ..models.encryption import ciphertext_handle
from ..models.ledger import LedgerClaimRecord, PendingTransaction, TransactionReceipt
from ..utils.errors import LedgerError
from .base import LedgerClient

logger = logging.getLogger(__name__)

InputVerifier = Callable[[bytes, bytes], bool]
DecryptionVerifier = Callable[[List[str], bytes, bytes], Optional[Dict[str, int]]]


@dataclass
class LedgerStats:
    """Write counters, mainly for asserting single-submission guarantees."""
    claim_submissions: int = 0
    verification_submissions: int = 0


class InMemoryLedger(LedgerClient):
    """
    Ledger implementation that keeps claim records in process memory.

    Mirrors the claims contract: records are never deleted, a claim's
    ciphertext handle is fixed at creation, and a decryption proof is checked
    by ``decryption_verifier`` before the claim flips to verified.

    Attributes:
        contract_address: Address reported for the simulated contract
        latency: Seconds each call (and each finality wait) is delayed by
        available: Value returned by ``is_service_available``
        stats: Submission counters
    """

    def __init__(
        self,
        contract_address: str,
        decryption_verifier: DecryptionVerifier,
        input_verifier: Optional[InputVerifier] = None,
        latency: float = 0.0,
        clock: Callable[[], float] = time.time,
    ):
        self.contract_address = contract_address
        self.latency = latency
        self.available = True
        self.stats = LedgerStats()
        self._decryption_verifier = decryption_verifier
        self._input_verifier = input_verifier
        self._clock = clock
        self._records: Dict[str, LedgerClaimRecord] = {}
        self._tx_counter = itertools.count(1)
        self._block = 0

        logger.info(f"Initialized InMemoryLedger for contract {contract_address}")

    async def list_claim_ids(self) -> List[str]:
        await self._tick()
        return list(self._records)

    async def get_claim(self, claim_id: str) -> LedgerClaimRecord:
        await self._tick()
        return self._require(claim_id)

    async def submit_claim(
        self,
        claim_id: str,
        policy_number: str,
        provider: str,
        ciphertext: bytes,
        proof: bytes,
        public_amount_hint: int,
        claim_date: date,
        caller_address: str,
    ) -> PendingTransaction:
        await self._tick()
        self.stats.claim_submissions += 1

        if claim_id in self._records:
            raise LedgerError.transaction_failed("submit_claim", f"Claim '{claim_id}' already exists")
        if self._input_verifier is not None and not self._input_verifier(ciphertext, proof):
            raise LedgerError.transaction_failed("submit_claim", "Invalid input proof")

        self._records[claim_id] = LedgerClaimRecord(
            claim_id=claim_id,
            policy_number=policy_number,
            provider=provider,
            public_amount_hint=public_amount_hint,
            timestamp=int(self._clock()),
            is_verified=False,
            decrypted_value=None,
            creator=caller_address,
            encrypted_amount_handle=ciphertext_handle(ciphertext),
            claim_date=claim_date,
        )
        logger.info(f"Stored claim {claim_id} from {caller_address}")
        return self._mined()

    async def get_encrypted_handle(self, claim_id: str) -> str:
        await self._tick()
        return self._require(claim_id).encrypted_amount_handle

    async def submit_verification(
        self,
        claim_id: str,
        clear_value_payload: bytes,
        proof: bytes,
        caller_address: str,
    ) -> PendingTransaction:
        await self._tick()
        self.stats.verification_submissions += 1

        record = self._require(claim_id)
        if record.is_verified:
            raise LedgerError.already_verified(claim_id)

        handle = record.encrypted_amount_handle
        values = self._decryption_verifier([handle], clear_value_payload, proof)
        if values is None or handle not in values:
            raise LedgerError.proof_rejected(claim_id, "Invalid decryption proof")

        self._records[claim_id] = replace(record, is_verified=True, decrypted_value=values[handle])
        logger.info(f"Claim {claim_id} verified by {caller_address}")
        return self._mined()

    async def is_service_available(self) -> bool:
        await self._tick()
        return self.available

    def _require(self, claim_id: str) -> LedgerClaimRecord:
        record = self._records.get(claim_id)
        if record is None:
            raise LedgerError.claim_not_found(claim_id)
        return record

    def _mined(self) -> PendingTransaction:
        self._block += 1
        tx_hash = f"0x{next(self._tx_counter):064x}"
        receipt = TransactionReceipt(tx_hash=tx_hash, status="success", block_number=self._block)

        async def waiter() -> TransactionReceipt:
            await self._tick()
            return receipt

        return PendingTransaction(tx_hash, waiter)

    async def _tick(self) -> None:
        # Every ledger call is a suspension point, even with zero latency
        await asyncio.sleep(self.latency)
