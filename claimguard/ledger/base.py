"""Ledger client interface consumed by the claim lifecycle coordinator."""

from abc import ABC, abstractmethod
from datetime import date
from typing import List

from ..models.ledger import LedgerClaimRecord, PendingTransaction


class LedgerClient(ABC):
    """
    Read and write access to the shared, append-only claim store.

    Every method is a suspension point. Implementations raise
    ``LedgerError`` with one of TRANSACTION_REJECTED, TRANSACTION_FAILED,
    LEDGER_UNREACHABLE, PROOF_REJECTED, ALREADY_VERIFIED or CLAIM_NOT_FOUND.
    """

    @abstractmethod
    async def list_claim_ids(self) -> List[str]:
        """Return the ids of every claim stored on the ledger."""

    @abstractmethod
    async def get_claim(self, claim_id: str) -> LedgerClaimRecord:
        """
        Fetch one claim record.

        Raises:
            LedgerError: CLAIM_NOT_FOUND for unknown ids
        """

    @abstractmethod
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
        """
        Submit a new claim carrying the encrypted amount and its input proof.

        The write is authenticated by the caller and irrevocable once accepted.

        Args:
            claim_id: Identifier assigned by the coordinator
            policy_number: Policy identifier
            provider: Provider identifier
            ciphertext: Encrypted claim amount
            proof: Input proof for the ciphertext
            public_amount_hint: Plaintext amount stored alongside the ciphertext
            claim_date: Date of the claim
            caller_address: Signer submitting the transaction

        Returns:
            PendingTransaction to await for finality
        """

    @abstractmethod
    async def get_encrypted_handle(self, claim_id: str) -> str:
        """Return the ciphertext handle stored for a claim."""

    @abstractmethod
    async def submit_verification(
        self,
        claim_id: str,
        clear_value_payload: bytes,
        proof: bytes,
        caller_address: str,
    ) -> PendingTransaction:
        """
        Submit a decryption proof to the ledger's verification entry point.

        Args:
            claim_id: Claim being verified
            clear_value_payload: Encoded revealed clear values
            proof: Decryption proof produced by the encryption gateway
            caller_address: Signer submitting the transaction

        Returns:
            PendingTransaction to await for finality

        Raises:
            LedgerError: ALREADY_VERIFIED or PROOF_REJECTED
        """

    @abstractmethod
    async def is_service_available(self) -> bool:
        """Return whether the claims contract reports itself available."""

    async def close(self) -> None:
        """Release any network resources held by the client."""
        return None
