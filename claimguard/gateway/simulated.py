"""Local encryption gateway for development and tests.

Amounts are sealed with AES-256-GCM under a key derived from a shared secret;
the contract and caller addresses are bound in as associated data. Input and
decryption proofs are HMAC-SHA256 tags under the same key, which lets
``InMemoryLedger`` play the role of the on-chain proof check.

Ciphertext layout:
    [nonce (12 bytes)] [binding length (2 bytes)] [binding] [sealed amount]
"""

import hashlib
import hmac
import json
import logging
import secrets
from typing import Dict, List, Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..models.encryption import DecryptionProof, EncryptedInput, ciphertext_handle
from ..utils.errors import GatewayError
from .base import EncryptionGateway

logger = logging.getLogger(__name__)

NONCE_SIZE = 12  # 96 bits (standard for GCM)
AMOUNT_SIZE = 8  # amounts are sealed as unsigned 64-bit integers
MAX_AMOUNT = 2 ** (8 * AMOUNT_SIZE) - 1


def encode_clear_values(clear_values: Dict[str, int]) -> bytes:
    """Canonical encoding of revealed values, as submitted to the ledger."""
    return json.dumps(clear_values, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_clear_values(payload: bytes) -> Dict[str, int]:
    """
    Inverse of ``encode_clear_values``.

    Raises:
        ValueError: If the payload is not a mapping of handle to integer
    """
    data = json.loads(payload.decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("clear value payload must be a mapping")
    return {str(handle): int(value) for handle, value in data.items()}


class SimulatedGateway(EncryptionGateway):
    """
    In-process stand-in for the encryption relayer.

    Keeps a registry of the ciphertexts it produced, keyed by handle, the way
    a relayer resolves handles against the ledger's ciphertext storage.
    The registry is unbounded and lives as long as the gateway instance;
    this adapter is meant for development and tests only.
    """

    def __init__(self, secret: Union[str, bytes]):
        super().__init__()
        if not secret:
            raise ValueError("SimulatedGateway requires a non-empty secret")
        raw = secret.encode("utf-8") if isinstance(secret, str) else secret
        self._key = hashlib.sha256(raw).digest()
        self._cipher = AESGCM(self._key)
        self._ciphertexts: Dict[str, bytes] = {}

    async def encrypt(self, contract_address: str, caller_address: str, value: int) -> EncryptedInput:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_AMOUNT:
            raise GatewayError.encryption_failed(ValueError(f"value out of range: {value!r}"))

        binding = _binding(contract_address, caller_address)
        nonce = secrets.token_bytes(NONCE_SIZE)
        sealed = self._cipher.encrypt(nonce, value.to_bytes(AMOUNT_SIZE, "big"), binding)
        ciphertext = nonce + len(binding).to_bytes(2, "big") + binding + sealed

        handle = ciphertext_handle(ciphertext)
        self._ciphertexts[handle] = ciphertext
        logger.debug(f"Encrypted amount for {contract_address} as handle {handle[:18]}...")

        return EncryptedInput(ciphertext=ciphertext, proof=self._tag(b"input", ciphertext))

    async def prove_decryption(
        self,
        handles: List[str],
        contract_address: str,
        caller_address: str,
    ) -> DecryptionProof:
        clear_values: Dict[str, int] = {}
        for handle in handles:
            ciphertext = self._ciphertexts.get(handle)
            if ciphertext is None:
                raise GatewayError.decryption_failed(handles, KeyError(f"unknown handle {handle}"))
            try:
                bound_contract, value = self._open(ciphertext)
            except (InvalidTag, ValueError) as e:
                raise GatewayError.decryption_failed(handles, e)
            if bound_contract != contract_address:
                raise GatewayError.decryption_failed(
                    handles, PermissionError(f"handle {handle} is not bound to {contract_address}")
                )
            clear_values[handle] = value

        payload = encode_clear_values(clear_values)
        return DecryptionProof(
            clear_values=clear_values,
            clear_value_payload=payload,
            proof=self._tag(b"decrypt", payload),
        )

    def verify_input(self, ciphertext: bytes, proof: bytes) -> bool:
        """Check an input proof the way the contract does on claim submission."""
        return hmac.compare_digest(self._tag(b"input", ciphertext), proof)

    def verify_decryption(self, handles: List[str], payload: bytes, proof: bytes) -> Optional[Dict[str, int]]:
        """
        Check a decryption proof the way the contract does on verification.

        Returns:
            The revealed values when the proof is valid and covers exactly the
            given handles, otherwise None
        """
        if not hmac.compare_digest(self._tag(b"decrypt", payload), proof):
            return None
        try:
            values = decode_clear_values(payload)
        except ValueError:
            return None
        if set(values) != set(handles):
            return None
        return values

    def _tag(self, purpose: bytes, data: bytes) -> bytes:
        return hmac.new(self._key, purpose + b"|" + data, hashlib.sha256).digest()

    def _open(self, ciphertext: bytes) -> Tuple[str, int]:
        if len(ciphertext) < NONCE_SIZE + 2:
            raise ValueError("ciphertext too short")
        nonce = ciphertext[:NONCE_SIZE]
        binding_len = int.from_bytes(ciphertext[NONCE_SIZE:NONCE_SIZE + 2], "big")
        binding = ciphertext[NONCE_SIZE + 2:NONCE_SIZE + 2 + binding_len]
        sealed = ciphertext[NONCE_SIZE + 2 + binding_len:]
        plaintext = self._cipher.decrypt(nonce, sealed, binding)
        contract_address = binding.decode("utf-8").split("|", 1)[0]
        return contract_address, int.from_bytes(plaintext, "big")


def _binding(contract_address: str, caller_address: str) -> bytes:
    return f"{contract_address}|{caller_address}".encode("utf-8")
