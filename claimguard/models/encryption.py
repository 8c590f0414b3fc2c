"""Value objects exchanged with the encryption gateway."""

import hashlib
from dataclasses import dataclass, field
from typing import Dict


@dataclass(frozen=True)
class EncryptedInput:
    """
    Ciphertext of a plaintext integer plus the proof that it is well formed.

    Attributes:
        ciphertext: Opaque encrypted value, bound to contract and caller
        proof: Input proof the ledger checks when the ciphertext is stored
    """
    ciphertext: bytes
    proof: bytes


@dataclass(frozen=True)
class DecryptionProof:
    """
    Result of the off-ledger half of the decrypt-and-verify protocol.

    Attributes:
        clear_values: Revealed integer per requested ciphertext handle
        clear_value_payload: Encoded clear values, as submitted to the ledger
        proof: Proof the ledger checks before accepting the clear values
    """
    clear_values: Dict[str, int] = field(default_factory=dict)
    clear_value_payload: bytes = b""
    proof: bytes = b""


def ciphertext_handle(ciphertext: bytes) -> str:
    """Derive the ledger handle under which a ciphertext is stored."""
    return "0x" + hashlib.sha256(ciphertext).hexdigest()
