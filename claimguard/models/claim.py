"""Claim data models."""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

from ..utils.errors import CoordinatorError


@dataclass(frozen=True)
class Claim:
    """
    One insurance claim tracked through its encrypted-to-verified lifecycle.

    Attributes:
        id: Unique identifier assigned by the coordinator at creation
        policy_number: Policy identifier supplied by the caller
        provider: Provider identifier supplied by the caller
        claim_date: Calendar date supplied by the caller (display only)
        public_amount_hint: Plaintext amount submitted alongside the ciphertext
        encrypted_amount_handle: Ledger reference to the encrypted amount
        is_verified: Whether the decrypt-and-verify protocol completed on-chain
        decrypted_value: Authoritative cleartext amount, set only once verified
        creator: Address of the submitting caller
        timestamp: Ledger-assigned creation time (seconds since epoch)
    """
    id: str
    policy_number: str
    provider: str
    claim_date: date
    public_amount_hint: int
    encrypted_amount_handle: str
    is_verified: bool
    creator: str
    timestamp: int
    decrypted_value: Optional[int] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Claim id must not be empty")
        if self.is_verified and self.decrypted_value is None:
            raise ValueError(f"Verified claim '{self.id}' is missing its decrypted value")
        if not self.is_verified and self.decrypted_value is not None:
            raise ValueError(f"Unverified claim '{self.id}' must not carry a decrypted value")

    @property
    def status(self) -> str:
        return "Verified" if self.is_verified else "Pending"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "policy_number": self.policy_number,
            "provider": self.provider,
            "claim_date": self.claim_date.isoformat(),
            "public_amount_hint": self.public_amount_hint,
            "encrypted_amount_handle": self.encrypted_amount_handle,
            "is_verified": self.is_verified,
            "decrypted_value": self.decrypted_value,
            "status": self.status,
            "creator": self.creator,
            "timestamp": self.timestamp,
        }


@dataclass
class ClaimInput:
    """
    Input data for a claim submission.

    Attributes:
        policy_number: Policy identifier, must be non-empty
        provider: Provider identifier, must be non-empty
        claim_date: Date of the claim
        amount: Claim amount as a non-negative integer
    """
    policy_number: str
    provider: str
    claim_date: date
    amount: int

    def validate(self) -> None:
        """
        Check the input before anything is encrypted or submitted.

        Raises:
            CoordinatorError: INVALID_INPUT naming the offending field
        """
        if not isinstance(self.policy_number, str) or not self.policy_number.strip():
            raise CoordinatorError.invalid_input("policy_number", "must be a non-empty string")
        if not isinstance(self.provider, str) or not self.provider.strip():
            raise CoordinatorError.invalid_input("provider", "must be a non-empty string")
        if not isinstance(self.claim_date, date):
            raise CoordinatorError.invalid_input("claim_date", "must be a date")
        # bool is an int subclass; reject it explicitly
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise CoordinatorError.invalid_input("amount", "must be an integer")
        if self.amount < 0:
            raise CoordinatorError.invalid_input("amount", "must be non-negative")
