"""Client-side claim storage."""

from .claim_repository import ClaimRepository

__all__ = ["ClaimRepository"]
