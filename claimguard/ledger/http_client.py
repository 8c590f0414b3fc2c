"""Ledger client for a claims-contract gateway reachable over HTTP.

Endpoints (JSON, binary fields as 0x-prefixed hex):
    GET  /v1/claims                        -> {claim_ids: [...]}
    GET  /v1/claims/{id}                   -> claim record
    GET  /v1/claims/{id}/handle            -> {handle}
    POST /v1/claims                        -> {tx_hash}
    POST /v1/claims/{id}/verification      -> {tx_hash}
    GET  /v1/transactions/{tx_hash}        -> {status, block_number, reason}
    GET  /v1/availability                  -> {available}
Writes carry the signer in the ``X-Caller-Address`` header. Errors come back
as ``{"error": {"code": ..., "message": ...}}``.
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from ..models.ledger import LedgerClaimRecord, PendingTransaction, TransactionReceipt
from ..utils.errors import LedgerError
from .base import LedgerClient

logger = logging.getLogger(__name__)

# Gateway-side outages are transient; everything else is a ledger answer
TRANSIENT_STATUS_CODES = {502, 503, 504}


class HttpLedgerClient(LedgerClient):
    """Adapter for a remote claims-contract gateway."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 30.0,
        finality_poll_interval: float = 1.0,
        finality_timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._poll_interval = finality_poll_interval
        self._finality_timeout = finality_timeout
        self._client = httpx.AsyncClient(base_url=self.endpoint, timeout=timeout, transport=transport)

        logger.info(f"Initialized HttpLedgerClient: endpoint={self.endpoint}, timeout={timeout}")

    async def list_claim_ids(self) -> List[str]:
        data = await self._request("GET", "/v1/claims", operation="list_claim_ids")
        return [str(claim_id) for claim_id in data.get("claim_ids", [])]

    async def get_claim(self, claim_id: str) -> LedgerClaimRecord:
        data = await self._request("GET", f"/v1/claims/{claim_id}", operation="get_claim", claim_id=claim_id)
        try:
            return LedgerClaimRecord.from_dict(claim_id, data)
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError.malformed_record(claim_id, e)

    async def submit_claim(
        self,
        claim_id: str,
        policy_number: str,
        provider: str,
        ciphertext: bytes,
        proof: bytes,
        public_amount_hint: int,
        claim_date: date,
        caller_address: str,
    ) -> PendingTransaction:
        payload = {
            "claim_id": claim_id,
            "policy_number": policy_number,
            "provider": provider,
            "ciphertext": "0x" + ciphertext.hex(),
            "proof": "0x" + proof.hex(),
            "public_amount_hint": public_amount_hint,
            "claim_date": claim_date.isoformat(),
        }
        data = await self._request(
            "POST", "/v1/claims", operation="submit_claim",
            claim_id=claim_id, json=payload, caller_address=caller_address,
        )
        return self._pending(data, operation="submit_claim", claim_id=claim_id)

    async def get_encrypted_handle(self, claim_id: str) -> str:
        data = await self._request(
            "GET", f"/v1/claims/{claim_id}/handle", operation="get_encrypted_handle", claim_id=claim_id
        )
        return str(data["handle"])

    async def submit_verification(
        self,
        claim_id: str,
        clear_value_payload: bytes,
        proof: bytes,
        caller_address: str,
    ) -> PendingTransaction:
        payload = {
            "payload": "0x" + clear_value_payload.hex(),
            "proof": "0x" + proof.hex(),
        }
        data = await self._request(
            "POST", f"/v1/claims/{claim_id}/verification", operation="submit_verification",
            claim_id=claim_id, json=payload, caller_address=caller_address,
        )
        return self._pending(data, operation="submit_verification", claim_id=claim_id)

    async def is_service_available(self) -> bool:
        data = await self._request("GET", "/v1/availability", operation="is_service_available")
        return bool(data.get("available", False))

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        claim_id: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        caller_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"X-Caller-Address": caller_address} if caller_address else None
        try:
            resp = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TransportError as e:
            logger.warning(f"Ledger transport error during {operation}: {e}")
            raise LedgerError.unreachable(operation, e)

        if resp.status_code in TRANSIENT_STATUS_CODES:
            raise LedgerError.unreachable(operation, RuntimeError(f"HTTP {resp.status_code}"))

        if resp.status_code >= 400:
            code, message = _error_fields(resp)
            if resp.status_code == 404 and not code:
                code = "NOT_FOUND"
            raise LedgerError.from_ledger_response(code, message, operation, claim_id=claim_id)

        try:
            return resp.json()
        except ValueError as e:
            raise LedgerError.transaction_failed(operation, "invalid JSON from ledger gateway", error=e)

    def _pending(self, data: Dict[str, Any], operation: str, claim_id: str) -> PendingTransaction:
        tx_hash = str(data["tx_hash"])

        async def waiter() -> TransactionReceipt:
            return await self._wait_for_finality(tx_hash, operation, claim_id)

        return PendingTransaction(tx_hash, waiter)

    async def _wait_for_finality(self, tx_hash: str, operation: str, claim_id: str) -> TransactionReceipt:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._finality_timeout

        while True:
            data = await self._request("GET", f"/v1/transactions/{tx_hash}", operation=operation, claim_id=claim_id)
            status = data.get("status", "pending")

            if status == "success":
                return TransactionReceipt(tx_hash=tx_hash, status=status, block_number=data.get("block_number"))
            if status == "reverted":
                reason = data.get("reason") or "transaction reverted"
                raise LedgerError.from_ledger_response(data.get("code"), reason, operation, claim_id=claim_id)

            if loop.time() >= deadline:
                raise LedgerError.unreachable(
                    operation, TimeoutError(f"transaction {tx_hash} not final after {self._finality_timeout}s")
                )
            await asyncio.sleep(self._poll_interval)


def _error_fields(resp: httpx.Response) -> tuple:
    try:
        body = resp.json()
    except ValueError:
        return None, resp.text or f"HTTP {resp.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("code"), error.get("message") or f"HTTP {resp.status_code}"
    if isinstance(error, str):
        return None, error
    return None, f"HTTP {resp.status_code}"
