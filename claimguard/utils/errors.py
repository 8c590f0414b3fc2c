"""Error handling utilities for the encrypted claim lifecycle."""

from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum


class ErrorType(Enum):
    """Enumeration of error types in the claim lifecycle."""

    # Session Errors
    UNAUTHENTICATED = "UNAUTHENTICATED"
    INVALID_INPUT = "INVALID_INPUT"

    # Encryption Gateway Errors
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"
    GATEWAY_INIT_FAILED = "GATEWAY_INIT_FAILED"

    # Ledger Errors
    TRANSACTION_REJECTED = "TRANSACTION_REJECTED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    LEDGER_UNREACHABLE = "LEDGER_UNREACHABLE"
    PROOF_REJECTED = "PROOF_REJECTED"
    ALREADY_VERIFIED = "ALREADY_VERIFIED"
    CLAIM_NOT_FOUND = "CLAIM_NOT_FOUND"
    MALFORMED_RECORD = "MALFORMED_RECORD"

    # Coordination Errors
    VERIFICATION_IN_PROGRESS = "VERIFICATION_IN_PROGRESS"

    # Configuration Errors
    CONFIG_MISSING = "CONFIG_MISSING"
    CONFIG_INVALID = "CONFIG_INVALID"

    # General Errors
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass
class ErrorContext:
    """
    Context information for errors in the claim lifecycle.

    Attributes:
        error_type: Type of error from ErrorType enum
        message: Human-readable error message
        recoverable: Whether the caller may retry the operation
        fallback_action: Optional description of fallback action taken
        details: Optional additional error details
        original_exception: Optional original exception that caused this error
    """

    error_type: ErrorType
    message: str
    recoverable: bool
    fallback_action: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    original_exception: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error context to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error context
        """
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "fallback_action": self.fallback_action,
            "details": self.details or {},
            "original_exception": str(self.original_exception) if self.original_exception else None
        }


class ClaimLifecycleError(Exception):
    """
    Base exception for all claim lifecycle errors.

    This exception wraps errors with additional context so the coordinator
    can turn them into operation statuses and callers can decide on retries.

    Attributes:
        context: ErrorContext with detailed error information
    """

    def __init__(self, context: ErrorContext):
        """
        Initialize claim lifecycle error.

        Args:
            context: ErrorContext with error details
        """
        self.context = context
        super().__init__(context.message)

    @property
    def error_type(self) -> ErrorType:
        """Shortcut to the wrapped error type."""
        return self.context.error_type

    @property
    def recoverable(self) -> bool:
        return self.context.recoverable

    def __str__(self) -> str:
        """String representation of the error."""
        base = f"{self.context.error_type.value}: {self.context.message}"
        if self.context.fallback_action:
            base += f" (Fallback: {self.context.fallback_action})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error
        """
        return self.context.to_dict()


class LedgerError(ClaimLifecycleError):
    """Exception for ledger read/write failures."""

    # Message fragments emitted by wallets and the claims contract
    _REJECTION_MARKERS = ("user rejected", "user denied", "rejected by user")
    _ALREADY_VERIFIED_MARKERS = ("already verified",)
    _PROOF_MARKERS = ("invalid proof", "proof rejected", "invalid decryption proof")

    @classmethod
    def from_ledger_response(
        cls,
        code: Optional[str],
        message: str,
        operation: str,
        claim_id: Optional[str] = None
    ) -> "LedgerError":
        """
        Create LedgerError from an error code and/or message returned by the ledger.

        The code takes precedence; when it is missing or unknown the message is
        matched against the texts wallets and the contract are known to emit.

        Args:
            code: Optional error code from the ledger gateway
            message: Error message from the ledger gateway
            operation: Description of operation that failed
            claim_id: Optional claim the operation targeted

        Returns:
            LedgerError instance
        """
        lowered = (message or "").lower()
        normalized = (code or "").upper()
        target = claim_id or "unknown"

        if normalized in ("USER_REJECTED", "TRANSACTION_REJECTED") or any(
            m in lowered for m in cls._REJECTION_MARKERS
        ):
            return cls.transaction_rejected(operation)

        if normalized == "ALREADY_VERIFIED" or any(m in lowered for m in cls._ALREADY_VERIFIED_MARKERS):
            return cls.already_verified(target)

        if normalized in ("PROOF_REJECTED", "INVALID_PROOF") or any(m in lowered for m in cls._PROOF_MARKERS):
            return cls.proof_rejected(target, message)

        if normalized in ("NOT_FOUND", "CLAIM_NOT_FOUND"):
            return cls.claim_not_found(target)

        return cls.transaction_failed(operation, message, code=code)

    @classmethod
    def transaction_rejected(cls, operation: str) -> "LedgerError":
        """
        Create error for a transaction the caller declined to sign.

        Args:
            operation: Description of operation that was declined

        Returns:
            LedgerError instance
        """
        context = ErrorContext(
            error_type=ErrorType.TRANSACTION_REJECTED,
            message="Transaction rejected by user",
            recoverable=False,
            details={"operation": operation}
        )
        return cls(context)

    @classmethod
    def transaction_failed(
        cls,
        operation: str,
        reason: str,
        code: Optional[str] = None,
        error: Optional[Exception] = None
    ) -> "LedgerError":
        """
        Create error for a ledger-side rejection or reverted transaction.

        Args:
            operation: Description of operation that failed
            reason: Underlying reason reported by the ledger
            code: Optional ledger error code
            error: Optional original exception

        Returns:
            LedgerError instance
        """
        context = ErrorContext(
            error_type=ErrorType.TRANSACTION_FAILED,
            message=f"Ledger transaction failed during {operation}: {reason}",
            recoverable=False,
            details={"operation": operation, "reason": reason, "code": code},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def unreachable(cls, operation: str, error: Exception) -> "LedgerError":
        """
        Create error for a network/RPC failure talking to the ledger.

        Args:
            operation: Description of operation that failed
            error: Original transport exception

        Returns:
            LedgerError instance
        """
        context = ErrorContext(
            error_type=ErrorType.LEDGER_UNREACHABLE,
            message=f"Ledger unreachable during {operation}: {str(error)}",
            recoverable=True,
            fallback_action="Retry the operation once the ledger is reachable",
            details={"operation": operation},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def proof_rejected(cls, claim_id: str, reason: str) -> "LedgerError":
        """
        Create error for a decryption proof the ledger refused.

        Args:
            claim_id: Claim whose verification was refused
            reason: Reason reported by the ledger, surfaced verbatim

        Returns:
            LedgerError instance
        """
        context = ErrorContext(
            error_type=ErrorType.PROOF_REJECTED,
            message=reason,
            recoverable=False,
            details={"claim_id": claim_id}
        )
        return cls(context)

    @classmethod
    def already_verified(cls, claim_id: str) -> "LedgerError":
        """
        Create the non-error signal for a claim that is already verified on-chain.

        Args:
            claim_id: Claim that is already verified

        Returns:
            LedgerError instance
        """
        context = ErrorContext(
            error_type=ErrorType.ALREADY_VERIFIED,
            message=f"Data already verified for claim '{claim_id}'",
            recoverable=True,
            fallback_action="Read the stored decrypted value",
            details={"claim_id": claim_id}
        )
        return cls(context)

    @classmethod
    def claim_not_found(cls, claim_id: str) -> "LedgerError":
        """
        Create error for a claim id unknown to the ledger.

        Args:
            claim_id: Claim identifier that was not found

        Returns:
            LedgerError instance
        """
        context = ErrorContext(
            error_type=ErrorType.CLAIM_NOT_FOUND,
            message=f"Claim '{claim_id}' does not exist",
            recoverable=False,
            details={"claim_id": claim_id}
        )
        return cls(context)

    @classmethod
    def malformed_record(cls, claim_id: str, error: Exception) -> "LedgerError":
        """
        Create error for a claim record the ledger returned in an unreadable shape.

        Args:
            claim_id: Claim whose record could not be parsed
            error: Original parsing exception

        Returns:
            LedgerError instance
        """
        context = ErrorContext(
            error_type=ErrorType.MALFORMED_RECORD,
            message=f"Malformed claim record for '{claim_id}': {str(error)}",
            recoverable=False,
            details={"claim_id": claim_id},
            original_exception=error
        )
        return cls(context)


class GatewayError(ClaimLifecycleError):
    """Exception for encryption gateway failures."""

    @classmethod
    def encryption_failed(cls, error: Exception) -> "GatewayError":
        """
        Create error for a failed encrypt-with-proof request.

        Args:
            error: Original exception

        Returns:
            GatewayError instance
        """
        context = ErrorContext(
            error_type=ErrorType.ENCRYPTION_FAILED,
            message=f"Failed to encrypt claim amount: {str(error)}",
            recoverable=False,
            fallback_action="No ledger write attempted",
            original_exception=error
        )
        return cls(context)

    @classmethod
    def decryption_failed(cls, handles: list, error: Exception) -> "GatewayError":
        """
        Create error for a failed decryption-proof request.

        Args:
            handles: Ciphertext handles that were requested
            error: Original exception

        Returns:
            GatewayError instance
        """
        context = ErrorContext(
            error_type=ErrorType.DECRYPTION_FAILED,
            message=f"Failed to produce decryption proof: {str(error)}",
            recoverable=False,
            details={"handles": list(handles)},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def initialization_failed(cls, error: Exception) -> "GatewayError":
        """
        Create error for a gateway that could not be initialized.

        Args:
            error: Original exception

        Returns:
            GatewayError instance
        """
        context = ErrorContext(
            error_type=ErrorType.GATEWAY_INIT_FAILED,
            message=f"Encryption gateway initialization failed: {str(error)}",
            recoverable=True,
            fallback_action="Initialization is retried on the next operation",
            original_exception=error
        )
        return cls(context)


class CoordinatorError(ClaimLifecycleError):
    """Exception raised by the lifecycle coordinator itself."""

    @classmethod
    def unauthenticated(cls, operation: str) -> "CoordinatorError":
        """
        Create error for an operation attempted without a signer identity.

        Args:
            operation: Operation that required authentication

        Returns:
            CoordinatorError instance
        """
        context = ErrorContext(
            error_type=ErrorType.UNAUTHENTICATED,
            message="Please connect wallet first",
            recoverable=True,
            details={"operation": operation}
        )
        return cls(context)

    @classmethod
    def invalid_input(cls, field_name: str, reason: str) -> "CoordinatorError":
        """
        Create error for a claim input that failed validation.

        Args:
            field_name: Name of the offending field
            reason: Why the value was rejected

        Returns:
            CoordinatorError instance
        """
        context = ErrorContext(
            error_type=ErrorType.INVALID_INPUT,
            message=f"Invalid {field_name}: {reason}",
            recoverable=False,
            details={"field": field_name}
        )
        return cls(context)

    @classmethod
    def verification_in_progress(cls, claim_id: str) -> "CoordinatorError":
        """
        Create error for a verification already running for a claim.

        Args:
            claim_id: Claim with an in-flight verification

        Returns:
            CoordinatorError instance
        """
        context = ErrorContext(
            error_type=ErrorType.VERIFICATION_IN_PROGRESS,
            message=f"Verification already in progress for claim '{claim_id}'",
            recoverable=True,
            fallback_action="Await the in-flight verification",
            details={"claim_id": claim_id}
        )
        return cls(context)


class ConfigError(ClaimLifecycleError):
    """Exception for configuration loading errors."""

    @classmethod
    def missing(cls, config_path: str) -> "ConfigError":
        context = ErrorContext(
            error_type=ErrorType.CONFIG_MISSING,
            message=f"Configuration file not found at '{config_path}'",
            recoverable=False,
            details={"config_path": config_path}
        )
        return cls(context)

    @classmethod
    def invalid(cls, key: str, reason: str) -> "ConfigError":
        context = ErrorContext(
            error_type=ErrorType.CONFIG_INVALID,
            message=f"Invalid configuration value for '{key}': {reason}",
            recoverable=False,
            details={"key": key}
        )
        return cls(context)


def wrap_unexpected_error(error: Exception, operation: str) -> ClaimLifecycleError:
    """
    Wrap an unexpected exception so it can flow through the status stream.

    Args:
        error: Original exception
        operation: Description of operation that failed

    Returns:
        The error itself when it is already a ClaimLifecycleError, otherwise
        a ClaimLifecycleError of type UNKNOWN_ERROR
    """
    if isinstance(error, ClaimLifecycleError):
        return error

    context = ErrorContext(
        error_type=ErrorType.UNKNOWN_ERROR,
        message=f"Unexpected error during {operation}: {str(error) or type(error).__name__}",
        recoverable=False,
        details={"operation": operation},
        original_exception=error
    )
    return ClaimLifecycleError(context)
