"""Lifecycle coordinator for encrypted insurance claims."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from ..analytics.fraud_stats import DEFAULT_FRAUD_THRESHOLD, FraudStatistics, compute_fraud_stats
from ..gateway.base import EncryptionGateway
from ..ledger.base import LedgerClient
from ..models.claim import Claim, ClaimInput
from ..models.encryption import EncryptedInput, ciphertext_handle
from ..models.session import SessionContext
from ..storage.claim_repository import ClaimRepository
from ..utils.errors import (
    ClaimLifecycleError,
    CoordinatorError,
    ErrorType,
    GatewayError,
    LedgerError,
    wrap_unexpected_error,
)
from ..utils.logging import set_context, with_context
from .status import OperationHandle, OperationKind, StatusBroadcaster

logger = logging.getLogger(__name__)

# Outcomes of the verification protocol
VERIFIED = "verified"
ALREADY_VERIFIED = "already_verified"


@dataclass
class _InflightVerification:
    """Bookkeeping for the single in-flight verification of one claim."""
    task: "asyncio.Task[Tuple[int, str]]"
    waiters: int = 0
    submitting: bool = False


class ClaimLifecycleCoordinator:
    """
    Client-side state machine for encrypted claims.

    Turns plaintext claims into encrypted ledger submissions, drives the
    decrypt-and-verify protocol, keeps the claim repository in step with the
    ledger and reports every operation on the status stream.

    All collaborators are injected; the coordinator holds no ambient state
    beyond the session it was given.

    Attributes:
        ledger: Ledger client used for reads and writes
        gateway: Encryption gateway used for encrypt and decryption proofs
        repository: Claim repository refreshed after every write
        status: Status broadcaster receiving operation statuses
        fraud_threshold: Amount above which verified claims count as potential fraud
    """

    def __init__(
        self,
        ledger: LedgerClient,
        gateway: EncryptionGateway,
        session: SessionContext,
        repository: Optional[ClaimRepository] = None,
        status: Optional[StatusBroadcaster] = None,
        fraud_threshold: int = DEFAULT_FRAUD_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the coordinator.

        Args:
            ledger: Ledger client
            gateway: Encryption gateway
            session: Caller identity and destination contract
            repository: Optional claim repository (a new one by default)
            status: Optional status broadcaster (a new one by default)
            fraud_threshold: Threshold for the potential-fraud statistic
            clock: Time source in seconds since epoch
        """
        self.ledger = ledger
        self.gateway = gateway
        self.repository = repository or ClaimRepository()
        self.status = status or StatusBroadcaster()
        self.fraud_threshold = fraud_threshold
        self._session = session
        self._clock = clock

        self._inflight: Dict[str, _InflightVerification] = {}
        self._gateway_init: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._last_id_ms = 0

        logger.info(
            f"Initialized ClaimLifecycleCoordinator for contract {session.contract_address} "
            f"(threshold={fraud_threshold})"
        )

    # ------------------------------------------------------------------
    # Session and read-only views
    # ------------------------------------------------------------------

    @property
    def session(self) -> SessionContext:
        return self._session

    def set_session(self, session: SessionContext) -> None:
        """Switch to another session, e.g. after a wallet connects or disconnects."""
        logger.info(f"Session caller changed to {session.caller_address or 'none'}")
        self._session = session

    def claims(self) -> Tuple[Claim, ...]:
        """Return the current read-only claim snapshot."""
        return self.repository.snapshot()

    def get_claim(self, claim_id: str) -> Optional[Claim]:
        return self.repository.get(claim_id)

    def fraud_stats(self, now: Optional[float] = None) -> FraudStatistics:
        """Compute fraud statistics over the current snapshot."""
        return compute_fraud_stats(
            self.repository.snapshot(),
            threshold=self.fraud_threshold,
            now=self._clock() if now is None else now,
        )

    # ------------------------------------------------------------------
    # Claim creation
    # ------------------------------------------------------------------

    async def create_claim(self, claim_input: ClaimInput) -> Claim:
        """
        Encrypt and submit a new claim, then refresh the repository.

        Steps run strictly in order: encrypt the amount, submit exactly one
        ledger write, await finality, refresh. A failure before the write
        leaves the ledger untouched. Once the write has been submitted the
        remaining steps run to completion even if the caller is cancelled.

        Args:
            claim_input: Policy number, provider, claim date and amount

        Returns:
            The new claim, unverified

        Raises:
            CoordinatorError: UNAUTHENTICATED or INVALID_INPUT
            GatewayError: ENCRYPTION_FAILED
            LedgerError: TRANSACTION_REJECTED, TRANSACTION_FAILED or LEDGER_UNREACHABLE
        """
        op = self.status.begin(OperationKind.CREATE_CLAIM)
        session = self._session

        try:
            if not session.is_authenticated:
                raise CoordinatorError.unauthenticated("create_claim")
            claim_input.validate()

            op.pending("Creating encrypted claim record...")
            claim_id = self._next_claim_id(session.caller_address)
            op.claim_id = claim_id
            set_context(claim_id=claim_id, operation=OperationKind.CREATE_CLAIM.value)

            encrypted = await self._encrypt(session, claim_input.amount)
        except asyncio.CancelledError:
            op.fail("Claim creation cancelled before submission")
            raise
        except Exception as e:
            error = wrap_unexpected_error(e, "create_claim")
            op.fail(self._creation_failure_message(error), error)
            if error is e:
                raise
            raise error from e

        # The ledger write is irrevocable; finish it regardless of caller cancellation
        return await self._run_shielded(
            self._submit_claim(op, session, claim_id, claim_input, encrypted)
        )

    async def _encrypt(self, session: SessionContext, amount: int) -> EncryptedInput:
        try:
            await self._ensure_gateway()
            return await self.gateway.encrypt(session.contract_address, session.caller_address, amount)
        except GatewayError as e:
            if e.error_type is ErrorType.ENCRYPTION_FAILED:
                raise
            raise GatewayError.encryption_failed(e) from e
        except Exception as e:
            raise GatewayError.encryption_failed(e) from e

    async def _submit_claim(
        self,
        op: OperationHandle,
        session: SessionContext,
        claim_id: str,
        claim_input: ClaimInput,
        encrypted: EncryptedInput,
    ) -> Claim:
        try:
            tx = await self.ledger.submit_claim(
                claim_id=claim_id,
                policy_number=claim_input.policy_number.strip(),
                provider=claim_input.provider.strip(),
                ciphertext=encrypted.ciphertext,
                proof=encrypted.proof,
                public_amount_hint=claim_input.amount,
                claim_date=claim_input.claim_date,
                caller_address=session.caller_address,
            )
            logger.info(f"Submitted claim {claim_id} in transaction {tx.tx_hash}")

            op.pending("Waiting for transaction confirmation...")
            receipt = await tx.wait()
            if not receipt.succeeded:
                raise LedgerError.transaction_failed("submit_claim", f"transaction {receipt.tx_hash} reverted")
        except Exception as e:
            error = wrap_unexpected_error(e, "create_claim")
            op.fail(self._creation_failure_message(error), error)
            if error is e:
                raise
            raise error from e

        await self._reload()

        claim = self.repository.get(claim_id)
        if claim is None:
            claim = await self._read_back(session, claim_id, claim_input, encrypted)

        op.succeed("Claim record created successfully!")
        return claim

    async def _read_back(
        self,
        session: SessionContext,
        claim_id: str,
        claim_input: ClaimInput,
        encrypted: EncryptedInput,
    ) -> Claim:
        """
        Fetch a just-created claim straight from the ledger.

        If that read fails too, a provisional record built from the submitted
        fields is returned; the next successful refresh replaces it. Failing
        here would invite a retry and a duplicate claim.
        """
        try:
            return (await self.ledger.get_claim(claim_id)).to_claim()
        except (LedgerError, ValueError) as e:
            logger.warning(f"Could not read back claim {claim_id}, returning provisional record: {e}")
            return Claim(
                id=claim_id,
                policy_number=claim_input.policy_number.strip(),
                provider=claim_input.provider.strip(),
                claim_date=claim_input.claim_date,
                public_amount_hint=claim_input.amount,
                encrypted_amount_handle=ciphertext_handle(encrypted.ciphertext),
                is_verified=False,
                creator=session.caller_address,
                timestamp=int(self._clock()),
            )

    def _next_claim_id(self, caller_address: str) -> str:
        """Claim ids combine creation time in ms with the caller; ms is bumped on collision."""
        now_ms = int(self._clock() * 1000)
        if now_ms <= self._last_id_ms:
            now_ms = self._last_id_ms + 1
        self._last_id_ms = now_ms
        return f"claim-{now_ms}-{caller_address.lower()[:10]}"

    @staticmethod
    def _creation_failure_message(error: ClaimLifecycleError) -> str:
        if error.error_type in (ErrorType.UNAUTHENTICATED, ErrorType.TRANSACTION_REJECTED):
            return error.context.message
        return f"Submission failed: {error.context.message}"

    # ------------------------------------------------------------------
    # Decrypt and verify
    # ------------------------------------------------------------------

    async def decrypt_and_verify(self, claim_id: str, wait_for_inflight: bool = True) -> int:
        """
        Reveal a claim's amount and have the ledger verify the reveal.

        A claim the repository already shows as verified returns its stored
        value without touching the gateway or the ledger. For any claim id at
        most one verification is in flight: concurrent callers either join it
        (``wait_for_inflight=True``) or are refused with
        VERIFICATION_IN_PROGRESS. A ledger answer of ALREADY_VERIFIED
        resolves to the stored value.

        Args:
            claim_id: Identifier of an existing claim
            wait_for_inflight: Join an in-flight verification instead of failing

        Returns:
            The revealed claim amount

        Raises:
            CoordinatorError: UNAUTHENTICATED or VERIFICATION_IN_PROGRESS
            GatewayError: DECRYPTION_FAILED
            LedgerError: PROOF_REJECTED, CLAIM_NOT_FOUND, TRANSACTION_REJECTED,
                TRANSACTION_FAILED or LEDGER_UNREACHABLE
        """
        op = self.status.begin(OperationKind.DECRYPT_AND_VERIFY, claim_id)
        session = self._session

        if not session.is_authenticated:
            error = CoordinatorError.unauthenticated("decrypt_and_verify")
            op.fail(error.context.message, error)
            raise error

        cached = self.repository.get(claim_id)
        if cached is not None and cached.is_verified:
            op.succeed("Data already verified on-chain")
            return cached.decrypted_value

        entry = self._inflight.get(claim_id)
        if entry is None:
            op.pending("Decrypting claim amount...")
            entry = self._start_verification(claim_id, session, op)
        elif not wait_for_inflight:
            error = CoordinatorError.verification_in_progress(claim_id)
            op.fail(error.context.message, error)
            raise error
        else:
            logger.info(f"Joining in-flight verification for claim {claim_id}")
            op.pending("Waiting for in-flight verification...")

        entry.waiters += 1
        try:
            value, outcome = await asyncio.shield(entry.task)
        except asyncio.CancelledError:
            entry.waiters -= 1
            if entry.waiters == 0 and not entry.submitting and not entry.task.done():
                # No proof submitted yet: abandon the protocol locally; later callers start afresh
                if self._inflight.get(claim_id) is entry:
                    del self._inflight[claim_id]
                self._background.add(entry.task)
                entry.task.add_done_callback(self._background_done)
                entry.task.cancel()
                op.fail("Decryption cancelled before submission")
            elif not op.finished:
                op.fail("Caller stopped waiting; verification continues on the ledger")
            raise
        except Exception as e:
            entry.waiters -= 1
            error = wrap_unexpected_error(e, "decrypt_and_verify")
            if error.error_type is ErrorType.UNAUTHENTICATED:
                message = error.context.message
            else:
                message = f"Decryption failed: {error.context.message}"
            op.fail(message, error)
            if error is e:
                raise
            raise error from e

        entry.waiters -= 1
        if outcome == ALREADY_VERIFIED:
            op.succeed("Data is already verified on-chain")
        else:
            op.succeed("Claim amount decrypted and verified!")
        return value

    def _start_verification(
        self,
        claim_id: str,
        session: SessionContext,
        op: OperationHandle,
    ) -> _InflightVerification:
        entry = _InflightVerification(task=None)  # type: ignore[arg-type]

        def report(message: str) -> None:
            if not op.finished:
                op.pending(message)

        entry.task = asyncio.ensure_future(self._verify(claim_id, session, entry, report))
        self._inflight[claim_id] = entry

        def release(task: asyncio.Task) -> None:
            if self._inflight.get(claim_id) is entry:
                del self._inflight[claim_id]
            # Mark the outcome as retrieved even when every waiter was cancelled
            if not task.cancelled():
                task.exception()

        entry.task.add_done_callback(release)
        return entry

    async def _verify(
        self,
        claim_id: str,
        session: SessionContext,
        entry: _InflightVerification,
        report: Callable[[str], None],
    ) -> Tuple[int, str]:
        set_context(claim_id=claim_id, operation=OperationKind.DECRYPT_AND_VERIFY.value)

        record = await self.ledger.get_claim(claim_id)
        if record.is_verified:
            logger.info(f"Claim {claim_id} already verified on the ledger")
            await self._reload()
            return record.to_claim().decrypted_value, ALREADY_VERIFIED

        handle = await self.ledger.get_encrypted_handle(claim_id)
        proof = await self._prove(handle, session)

        clear_value = proof.clear_values.get(handle)
        if clear_value is None:
            raise GatewayError.decryption_failed([handle], KeyError(f"no clear value for {handle}"))

        report("Verifying decryption on-chain...")
        entry.submitting = True
        try:
            tx = await self.ledger.submit_verification(
                claim_id=claim_id,
                clear_value_payload=proof.clear_value_payload,
                proof=proof.proof,
                caller_address=session.caller_address,
            )
            logger.info(f"Submitted decryption proof for claim {claim_id} in transaction {tx.tx_hash}")
            receipt = await tx.wait()
            if not receipt.succeeded:
                raise LedgerError.transaction_failed(
                    "submit_verification", f"transaction {receipt.tx_hash} reverted"
                )
        except LedgerError as e:
            if e.error_type is not ErrorType.ALREADY_VERIFIED:
                raise
            logger.info(f"Ledger reports claim {claim_id} already verified; reading stored value")
            return await self._stored_value(claim_id), ALREADY_VERIFIED

        await self._reload()
        verified = self.repository.get(claim_id)
        if verified is not None and verified.is_verified:
            return verified.decrypted_value, VERIFIED
        return clear_value, VERIFIED

    async def _prove(self, handle: str, session: SessionContext):
        try:
            await self._ensure_gateway()
            return await self.gateway.prove_decryption(
                [handle], session.contract_address, session.caller_address
            )
        except GatewayError as e:
            if e.error_type is ErrorType.DECRYPTION_FAILED:
                raise
            raise GatewayError.decryption_failed([handle], e) from e
        except Exception as e:
            raise GatewayError.decryption_failed([handle], e) from e

    async def _stored_value(self, claim_id: str) -> int:
        await self._reload()
        cached = self.repository.get(claim_id)
        if cached is not None and cached.is_verified:
            return cached.decrypted_value

        record = await self.ledger.get_claim(claim_id)
        if not record.is_verified:
            raise LedgerError.transaction_failed(
                "submit_verification", "ledger reported already verified but holds no verified value"
            )
        return record.to_claim().decrypted_value

    # ------------------------------------------------------------------
    # Refresh, availability, gateway initialization
    # ------------------------------------------------------------------

    @with_context(operation="refresh_claims")
    async def refresh_claims(self) -> bool:
        """
        Replace the repository with the ledger's current claim set.

        Read failures are reported on the status stream and leave the previous
        snapshot in place.

        Returns:
            True if a new snapshot was loaded, False otherwise
        """
        op = self.status.begin(OperationKind.REFRESH_CLAIMS)
        op.pending("Loading claims...")
        try:
            await self._reload(raise_errors=True)
        except Exception as e:
            error = wrap_unexpected_error(e, "refresh_claims")
            logger.error(f"Claim refresh failed: {error}")
            op.fail("Failed to load claims", error)
            return False

        op.succeed(f"Loaded {len(self.repository)} claims")
        return True

    async def _reload(self, raise_errors: bool = False) -> bool:
        """
        Pull every claim from the ledger and publish a new snapshot.

        Records that cannot be parsed are skipped; any ledger read error
        aborts the reload and keeps the previous snapshot.

        Args:
            raise_errors: Propagate read errors instead of logging them

        Returns:
            True if a snapshot was published
        """
        generation = self.repository.next_generation()
        try:
            claim_ids = await self.ledger.list_claim_ids()
            results = await asyncio.gather(
                *(self.ledger.get_claim(claim_id) for claim_id in claim_ids),
                return_exceptions=True,
            )

            claims: List[Claim] = []
            for claim_id, result in zip(claim_ids, results):
                if isinstance(result, LedgerError) and result.error_type is ErrorType.CLAIM_NOT_FOUND:
                    logger.warning(f"Claim {claim_id} was listed but could not be found; skipping")
                    continue
                if isinstance(result, LedgerError) and result.error_type is ErrorType.MALFORMED_RECORD:
                    logger.error(f"Error loading claim data for {claim_id}: {result.context.message}")
                    continue
                if isinstance(result, BaseException):
                    raise result
                try:
                    claims.append(result.to_claim())
                except ValueError as e:
                    logger.error(f"Error loading claim data for {claim_id}: {str(e)}")

            return self.repository.replace(claims, generation=generation)
        except Exception as e:
            if raise_errors:
                raise
            logger.warning(
                f"Claim reload failed, keeping previous snapshot: {wrap_unexpected_error(e, 'refresh_claims')}"
            )
            return False

    async def check_availability(self) -> bool:
        """Ask the ledger whether the claims contract is available."""
        op = self.status.begin(OperationKind.CHECK_AVAILABILITY)
        try:
            available = await self.ledger.is_service_available()
        except Exception as e:
            error = wrap_unexpected_error(e, "check_availability")
            op.fail("Availability check failed", error)
            return False

        op.succeed(f"Contract is {'available' if available else 'unavailable'}")
        return available

    async def initialize_gateway(self) -> bool:
        """
        Initialize the encryption gateway for the connected session.

        Returns:
            True once the gateway is ready, False if there is no session or
            initialization failed
        """
        op = self.status.begin(OperationKind.INITIALIZE_GATEWAY)
        if not self._session.is_authenticated:
            error = CoordinatorError.unauthenticated("initialize_gateway")
            op.fail(error.context.message, error)
            return False

        try:
            await self._ensure_gateway()
        except ClaimLifecycleError as e:
            op.fail("Encryption gateway initialization failed", e)
            return False

        op.succeed("Encryption gateway ready")
        return True

    async def _ensure_gateway(self) -> None:
        """Initialize the gateway once; concurrent callers share the attempt and failures are retried later."""
        if self.gateway.is_initialized:
            return

        if self._gateway_init is None or (
            self._gateway_init.done() and (self._gateway_init.cancelled() or self._gateway_init.exception())
        ):
            self._gateway_init = asyncio.ensure_future(self._initialize_gateway())

        await asyncio.shield(self._gateway_init)

    async def _initialize_gateway(self) -> None:
        try:
            await self.gateway.initialize()
        except GatewayError:
            raise
        except Exception as e:
            raise GatewayError.initialization_failed(e) from e
        logger.info("Encryption gateway initialized")

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    async def _run_shielded(self, coro):
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return await asyncio.shield(task)

    def _background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Shielded lifecycle step finished with {task.exception()!r}")

    async def drain(self) -> None:
        """Wait for shielded ledger steps and in-flight verifications to finish."""
        pending = list(self._background) + [entry.task for entry in self._inflight.values()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Finish outstanding ledger work and release adapter resources."""
        await self.drain()
        await self.ledger.close()
        await self.gateway.close()
