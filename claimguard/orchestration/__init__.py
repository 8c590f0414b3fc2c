"""Orchestration layer for the claim lifecycle."""

from .status import OperationKind, OperationStatus, StatusBroadcaster, StatusPhase
from .coordinator import ClaimLifecycleCoordinator

__all__ = [
    "OperationKind",
    "OperationStatus",
    "StatusBroadcaster",
    "StatusPhase",
    "ClaimLifecycleCoordinator"
]
