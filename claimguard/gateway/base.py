"""Encryption gateway interface consumed by the claim lifecycle coordinator.

The gateway wraps the homomorphic-encryption capability as an opaque service:
it turns a plaintext integer into a ciphertext plus input proof, and turns
ciphertext handles back into clear values plus a proof the ledger can check.
Decryption is a two-phase protocol: ``prove_decryption`` only produces the
proof; submitting it to the ledger is the coordinator's job.
"""

from abc import ABC, abstractmethod
from typing import List

from ..models.encryption import DecryptionProof, EncryptedInput


class EncryptionGateway(ABC):
    """
    Stateless-per-call adapter around the encryption capability.

    Implementations raise ``GatewayError`` with ENCRYPTION_FAILED,
    DECRYPTION_FAILED or GATEWAY_INIT_FAILED.
    """

    def __init__(self):
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Prepare the gateway for use (fetch public keys, warm up, ...).

        Safe to call more than once; subsequent calls are no-ops.
        """
        self._initialized = True

    @abstractmethod
    async def encrypt(self, contract_address: str, caller_address: str, value: int) -> EncryptedInput:
        """
        Encrypt a plaintext integer bound to a destination contract and caller.

        Args:
            contract_address: Contract that will store the ciphertext
            caller_address: Signer that will submit the ciphertext
            value: Non-negative plaintext integer

        Returns:
            EncryptedInput with ciphertext and input proof
        """

    @abstractmethod
    async def prove_decryption(
        self,
        handles: List[str],
        contract_address: str,
        caller_address: str,
    ) -> DecryptionProof:
        """
        Decrypt ciphertext handles and produce an on-chain-checkable proof.

        Args:
            handles: Ciphertext handles to reveal
            contract_address: Contract the handles belong to
            caller_address: Signer requesting the reveal

        Returns:
            DecryptionProof with clear values, encoded payload and proof
        """

    async def close(self) -> None:
        """Release any network resources held by the gateway."""
        return None
