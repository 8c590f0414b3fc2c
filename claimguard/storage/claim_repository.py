"""In-memory projection of the claims known to the client."""

import logging
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

from ..models.claim import Claim

logger = logging.getLogger(__name__)


class ClaimRepository:
    """
    Copy-on-write store of Claim snapshots keyed by claim id.

    The whole mapping is replaced on every refresh; readers holding a
    previous snapshot keep seeing a complete, consistent set. Claims are
    frozen, so nothing in a published snapshot changes afterwards.

    Attributes:
        version: Number of snapshots published so far
    """

    def __init__(self):
        self._state: Tuple[Mapping[str, Claim], Tuple[Claim, ...]] = (MappingProxyType({}), ())
        self._published_generation = 0
        self._generation_counter = 0
        self.version = 0

    def snapshot(self) -> Tuple[Claim, ...]:
        """Return all claims ordered by creation time, then id."""
        return self._state[1]

    def as_mapping(self) -> Mapping[str, Claim]:
        """Return a read-only view of the current snapshot keyed by id."""
        return self._state[0]

    def get(self, claim_id: str) -> Optional[Claim]:
        return self._state[0].get(claim_id)

    def __contains__(self, claim_id: object) -> bool:
        return claim_id in self._state[0]

    def __len__(self) -> int:
        return len(self._state[0])

    def replace(self, claims: Iterable[Claim], generation: Optional[int] = None) -> bool:
        """
        Publish a new snapshot in a single assignment.

        Verification is monotonic: if an incoming record shows a claim as
        unverified while the current snapshot has it verified, the verified
        record is kept.

        Args:
            claims: Complete claim set as read from the ledger
            generation: Start order of the refresh that produced the set;
                a set older than the one already published is discarded

        Returns:
            True if the snapshot was published, False if it was stale

        Raises:
            ValueError: If the claim set contains duplicate ids
        """
        if generation is not None and generation < self._published_generation:
            logger.info(
                f"Discarding stale claim snapshot (generation {generation} < {self._published_generation})"
            )
            return False

        incoming: Dict[str, Claim] = {}
        for claim in claims:
            if claim.id in incoming:
                raise ValueError(f"Duplicate claim id in snapshot: {claim.id}")

            previous = self._state[0].get(claim.id)
            if previous is not None and previous.is_verified and not claim.is_verified:
                logger.warning(f"Ledger reported verified claim {claim.id} as unverified; keeping verified record")
                claim = previous
            incoming[claim.id] = claim

        ordered = tuple(sorted(incoming.values(), key=lambda c: (c.timestamp, c.id)))

        self._state = (MappingProxyType(incoming), ordered)
        if generation is not None:
            self._published_generation = generation
        self.version += 1

        logger.debug(f"Published claim snapshot v{self.version} with {len(ordered)} claims")
        return True

    def next_generation(self) -> int:
        """Reserve the generation number for a refresh that is about to start."""
        self._generation_counter += 1
        return self._generation_counter
