"""FastAPI frontend for the encrypted claim lifecycle coordinator."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from claimguard import service
from claimguard.models.claim import ClaimInput
from claimguard.orchestration.coordinator import ClaimLifecycleCoordinator
from claimguard.orchestration.status import OperationKind, StatusPhase
from claimguard.utils.errors import ClaimLifecycleError, ErrorType


APP_TITLE = "ClaimGuard - Encrypted Claim Lifecycle"

ERROR_STATUS_CODES = {
    ErrorType.UNAUTHENTICATED: 401,
    ErrorType.INVALID_INPUT: 400,
    ErrorType.CLAIM_NOT_FOUND: 404,
    ErrorType.TRANSACTION_REJECTED: 409,
    ErrorType.VERIFICATION_IN_PROGRESS: 409,
    ErrorType.PROOF_REJECTED: 422,
    ErrorType.ENCRYPTION_FAILED: 502,
    ErrorType.DECRYPTION_FAILED: 502,
    ErrorType.GATEWAY_INIT_FAILED: 502,
    ErrorType.TRANSACTION_FAILED: 502,
    ErrorType.MALFORMED_RECORD: 502,
    ErrorType.LEDGER_UNREACHABLE: 503,
}


class ClaimCreateRequest(BaseModel):
    """Body of ``POST /api/claims``."""

    policy_number: str
    provider: str
    claim_date: date
    amount: int


class SessionUpdateRequest(BaseModel):
    """Body of ``PUT /api/session``; a null caller disconnects."""

    caller_address: Optional[str] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await service.shutdown()


app = FastAPI(title=APP_TITLE, lifespan=lifespan)


def get_coordinator() -> ClaimLifecycleCoordinator:
    return service.get_coordinator()


@app.exception_handler(ClaimLifecycleError)
async def lifecycle_error_handler(request: Request, exc: ClaimLifecycleError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(exc.error_type, 500)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


def _operation_failed(
    coordinator: ClaimLifecycleCoordinator,
    kind: OperationKind,
    default_code: int,
    default_message: str,
) -> HTTPException:
    """Build an HTTP error from the latest error status reported for ``kind``."""
    status = next(
        (
            s for s in reversed(coordinator.status.history())
            if s.operation_kind is kind and s.phase is StatusPhase.ERROR
        ),
        None,
    )
    if status is None:
        return HTTPException(status_code=default_code, detail=default_message)
    status_code = default_code
    if status.error_type is not None:
        status_code = ERROR_STATUS_CODES.get(ErrorType(status.error_type), default_code)
    return HTTPException(status_code=status_code, detail=status.message)


def _session_payload(coordinator: ClaimLifecycleCoordinator) -> Dict[str, Any]:
    session = coordinator.session
    return {
        "contract_address": session.contract_address,
        "caller_address": session.caller_address,
        "authenticated": session.is_authenticated,
    }


@app.get("/api/claims")
async def list_claims(coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator)) -> Dict[str, Any]:
    claims = coordinator.claims()
    return {"claims": [claim.to_dict() for claim in claims], "count": len(claims)}


@app.post("/api/claims/refresh")
async def refresh_claims(coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator)) -> JSONResponse:
    refreshed = await coordinator.refresh_claims()
    if not refreshed:
        raise _operation_failed(coordinator, OperationKind.REFRESH_CLAIMS, 503, "Failed to load claims")
    return JSONResponse({"refreshed": True, "count": len(coordinator.claims())})


@app.get("/api/claims/{claim_id}")
async def get_claim(claim_id: str, coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator)) -> Dict[str, Any]:
    claim = coordinator.get_claim(claim_id)
    if claim is None:
        raise HTTPException(status_code=404, detail="Claim not found.")
    return claim.to_dict()


@app.post("/api/claims", status_code=201)
async def create_claim(
    body: ClaimCreateRequest,
    coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    claim = await coordinator.create_claim(
        ClaimInput(
            policy_number=body.policy_number,
            provider=body.provider,
            claim_date=body.claim_date,
            amount=body.amount,
        )
    )
    return claim.to_dict()


@app.post("/api/claims/{claim_id}/verify")
async def verify_claim(
    claim_id: str,
    wait: bool = True,
    coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    value = await coordinator.decrypt_and_verify(claim_id, wait_for_inflight=wait)
    claim = coordinator.get_claim(claim_id)
    return {
        "claim_id": claim_id,
        "decrypted_value": value,
        "claim": claim.to_dict() if claim is not None else None,
    }


@app.get("/api/stats")
async def fraud_stats(coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator)) -> Dict[str, Any]:
    return coordinator.fraud_stats().to_dict()


@app.get("/api/status")
async def operation_status(
    limit: int = 20,
    coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator),
) -> Dict[str, List[Dict[str, Any]]]:
    history = coordinator.status.history()
    recent = history[-limit:] if limit > 0 else []
    return {"statuses": [status.to_dict() for status in reversed(recent)]}


@app.get("/api/availability")
async def availability(coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator)) -> Dict[str, Any]:
    available = await coordinator.check_availability()
    return {"available": available, "contract_address": coordinator.session.contract_address}


@app.get("/api/session")
async def get_session(coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator)) -> Dict[str, Any]:
    return _session_payload(coordinator)


@app.put("/api/session")
async def update_session(
    body: SessionUpdateRequest,
    coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator),
) -> Dict[str, Any]:
    coordinator.set_session(coordinator.session.with_caller(body.caller_address))
    return _session_payload(coordinator)


@app.post("/api/gateway/initialize")
async def initialize_gateway(coordinator: ClaimLifecycleCoordinator = Depends(get_coordinator)) -> Dict[str, Any]:
    ready = await coordinator.initialize_gateway()
    if not ready:
        raise _operation_failed(
            coordinator, OperationKind.INITIALIZE_GATEWAY, 502, "Encryption gateway initialization failed"
        )
    return {"initialized": True}


@app.get("/healthz")
async def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}
