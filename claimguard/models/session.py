"""Caller session context passed explicitly into the coordinator."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SessionContext:
    """
    Identity and destination of the current client session.

    Attributes:
        caller_address: Address of the connected signer, None when disconnected
        contract_address: Address of the claims contract the session targets
    """
    contract_address: str
    caller_address: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.caller_address and self.caller_address.strip())

    def with_caller(self, caller_address: Optional[str]) -> "SessionContext":
        """Return a copy of this session bound to another signer."""
        return SessionContext(contract_address=self.contract_address, caller_address=caller_address)
