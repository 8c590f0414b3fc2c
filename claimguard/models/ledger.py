"""Records and transaction objects returned by the ledger client."""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from .claim import Claim


@dataclass(frozen=True)
class LedgerClaimRecord:
    """
    A claim record as stored by the ledger.

    Ledgers commonly report a zero decrypted value for unverified claims;
    ``to_claim`` normalizes that so the decrypted value exists only once
    the claim is verified.
    """
    claim_id: str
    policy_number: str
    provider: str
    public_amount_hint: int
    timestamp: int
    is_verified: bool
    decrypted_value: Optional[int]
    creator: str
    encrypted_amount_handle: str
    claim_date: Optional[date] = None

    def to_claim(self) -> Claim:
        """Project the raw ledger record onto the Claim entity."""
        claim_date = self.claim_date
        if claim_date is None:
            claim_date = datetime.fromtimestamp(self.timestamp, tz=timezone.utc).date()

        return Claim(
            id=self.claim_id,
            policy_number=self.policy_number,
            provider=self.provider,
            claim_date=claim_date,
            public_amount_hint=int(self.public_amount_hint or 0),
            encrypted_amount_handle=self.encrypted_amount_handle,
            is_verified=bool(self.is_verified),
            decrypted_value=int(self.decrypted_value or 0) if self.is_verified else None,
            creator=self.creator,
            timestamp=int(self.timestamp),
        )

    @classmethod
    def from_dict(cls, claim_id: str, data: Dict[str, Any]) -> "LedgerClaimRecord":
        """
        Parse a record from a ledger gateway JSON payload.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field cannot be converted
        """
        raw_date = data.get("claim_date")
        return cls(
            claim_id=claim_id,
            policy_number=str(data["policy_number"]),
            provider=str(data["provider"]),
            public_amount_hint=int(data.get("public_amount_hint") or 0),
            timestamp=int(data["timestamp"]),
            is_verified=bool(data.get("is_verified", False)),
            decrypted_value=(
                int(data["decrypted_value"]) if data.get("decrypted_value") is not None else None
            ),
            creator=str(data.get("creator", "")),
            encrypted_amount_handle=str(data["encrypted_amount_handle"]),
            claim_date=date.fromisoformat(raw_date) if raw_date else None,
        )


@dataclass(frozen=True)
class TransactionReceipt:
    """Final outcome of a ledger write."""
    tx_hash: str
    status: str  # "success" | "reverted"
    block_number: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class PendingTransaction:
    """
    A submitted ledger write whose finality has not yet been observed.

    The write is irrevocable once this object exists; ``wait`` only observes
    the outcome. Awaiting ``wait`` more than once returns the same receipt.
    """

    def __init__(self, tx_hash: str, waiter: Callable[[], Awaitable[TransactionReceipt]]):
        self.tx_hash = tx_hash
        self._waiter = waiter
        self._receipt: Optional[TransactionReceipt] = None
        self._lock = asyncio.Lock()

    async def wait(self) -> TransactionReceipt:
        async with self._lock:
            if self._receipt is None:
                self._receipt = await self._waiter()
            return self._receipt

    def __repr__(self) -> str:
        return f"PendingTransaction(tx_hash={self.tx_hash!r})"
