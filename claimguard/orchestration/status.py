"""Operation status stream for lifecycle operations."""

import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from ..utils.errors import ClaimLifecycleError

logger = logging.getLogger(__name__)


class StatusPhase(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class OperationKind(str, Enum):
    CREATE_CLAIM = "create_claim"
    DECRYPT_AND_VERIFY = "decrypt_and_verify"
    REFRESH_CLAIMS = "refresh_claims"
    CHECK_AVAILABILITY = "check_availability"
    INITIALIZE_GATEWAY = "initialize_gateway"


@dataclass(frozen=True)
class OperationStatus:
    """
    One progress or result signal for a lifecycle operation.

    Attributes:
        operation_id: Identifier shared by every status of one operation
        operation_kind: Which lifecycle operation emitted the status
        phase: pending, success or error
        message: Human-readable message for the presentation layer
        claim_id: Claim the operation concerns, if any
        error_type: Error type value for error statuses
        dismiss_after: Suggested display time in seconds for terminal statuses
        timestamp: When the status was emitted
    """
    operation_id: int
    operation_kind: OperationKind
    phase: StatusPhase
    message: str
    claim_id: Optional[str] = None
    error_type: Optional[str] = None
    dismiss_after: Optional[float] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.phase is not StatusPhase.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "operation_kind": self.operation_kind.value,
            "phase": self.phase.value,
            "message": self.message,
            "claim_id": self.claim_id,
            "error_type": self.error_type,
            "dismiss_after": self.dismiss_after,
            "timestamp": self.timestamp.isoformat(),
        }


StatusObserver = Callable[[OperationStatus], None]


class OperationHandle:
    """
    Status emitter for a single operation.

    Any number of pending updates may be emitted, followed by exactly one
    terminal success or error.
    """

    def __init__(
        self,
        broadcaster: "StatusBroadcaster",
        operation_id: int,
        kind: OperationKind,
        claim_id: Optional[str] = None,
    ):
        self._broadcaster = broadcaster
        self.operation_id = operation_id
        self.kind = kind
        self.claim_id = claim_id
        self.finished = False

    def pending(self, message: str) -> OperationStatus:
        return self._emit(StatusPhase.PENDING, message)

    def succeed(self, message: str) -> OperationStatus:
        return self._emit(
            StatusPhase.SUCCESS, message, dismiss_after=self._broadcaster.success_dismiss_seconds
        )

    def fail(self, message: str, error: Optional[ClaimLifecycleError] = None) -> OperationStatus:
        return self._emit(
            StatusPhase.ERROR,
            message,
            error_type=error.error_type.value if error is not None else None,
            dismiss_after=self._broadcaster.error_dismiss_seconds,
        )

    def _emit(
        self,
        phase: StatusPhase,
        message: str,
        error_type: Optional[str] = None,
        dismiss_after: Optional[float] = None,
    ) -> OperationStatus:
        if self.finished:
            raise RuntimeError(f"Operation {self.operation_id} ({self.kind.value}) already reported its outcome")
        if phase is not StatusPhase.PENDING:
            self.finished = True

        status = OperationStatus(
            operation_id=self.operation_id,
            operation_kind=self.kind,
            phase=phase,
            message=message,
            claim_id=self.claim_id,
            error_type=error_type,
            dismiss_after=dismiss_after,
        )
        self._broadcaster.publish(status)
        return status


class StatusBroadcaster:
    """
    Fan-out of operation statuses to observers, with a bounded history.

    Attributes:
        history_size: Maximum number of statuses retained
        success_dismiss_seconds: Display hint attached to success statuses
        error_dismiss_seconds: Display hint attached to error statuses
    """

    def __init__(
        self,
        history_size: int = 100,
        success_dismiss_seconds: float = 2.0,
        error_dismiss_seconds: float = 3.0,
    ):
        self.history_size = history_size
        self.success_dismiss_seconds = success_dismiss_seconds
        self.error_dismiss_seconds = error_dismiss_seconds
        self._history: Deque[OperationStatus] = deque(maxlen=history_size)
        self._observers: List[StatusObserver] = []
        self._ids = itertools.count(1)

    def begin(self, kind: OperationKind, claim_id: Optional[str] = None) -> OperationHandle:
        """Start tracking a new operation."""
        return OperationHandle(self, next(self._ids), kind, claim_id)

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        """
        Register an observer called synchronously for every status.

        Args:
            observer: Callable receiving each OperationStatus

        Returns:
            Function that removes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def publish(self, status: OperationStatus) -> None:
        self._history.append(status)

        log = logger.warning if status.phase is StatusPhase.ERROR else logger.info
        log(f"[{status.operation_kind.value}#{status.operation_id}] {status.phase.value}: {status.message}")

        for observer in list(self._observers):
            try:
                observer(status)
            except Exception as e:
                logger.error(f"Status observer {observer!r} failed: {str(e)}", exc_info=True)

    def history(self) -> List[OperationStatus]:
        return list(self._history)

    def latest(
        self,
        kind: Optional[OperationKind] = None,
        claim_id: Optional[str] = None,
    ) -> Optional[OperationStatus]:
        """Return the most recent status, optionally filtered by kind and claim."""
        for status in reversed(self._history):
            if kind is not None and status.operation_kind is not kind:
                continue
            if claim_id is not None and status.claim_id != claim_id:
                continue
            return status
        return None
