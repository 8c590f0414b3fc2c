"""Tests for the ledger client adapters."""

import json
from datetime import date

import httpx
import pytest

from claimguard.ledger.http_client import HttpLedgerClient
from claimguard.utils.errors import ErrorType, LedgerError
from conftest import CALLER_ADDRESS, START_TIME

RECORD = {
    "policy_number": "POL-9",
    "provider": "ACME",
    "public_amount_hint": 1200,
    "timestamp": 1_700_000_000,
    "is_verified": False,
    "decrypted_value": 0,
    "creator": CALLER_ADDRESS,
    "encrypted_amount_handle": "0xhandle",
    "claim_date": "2024-03-15",
}


async def _submit(ledger, gateway, claim_id="claim-1", amount=1200, contract="0xContract"):
    encrypted = await gateway.encrypt(contract, CALLER_ADDRESS, amount)
    tx = await ledger.submit_claim(
        claim_id=claim_id,
        policy_number="POL-9",
        provider="ACME",
        ciphertext=encrypted.ciphertext,
        proof=encrypted.proof,
        public_amount_hint=amount,
        claim_date=date(2024, 3, 15),
        caller_address=CALLER_ADDRESS,
    )
    return await tx.wait()


# ----------------------------------------------------------------------
# InMemoryLedger
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_memory_ledger_stores_claims(ledger, gateway):
    receipt = await _submit(ledger, gateway)

    assert receipt.succeeded
    assert await ledger.list_claim_ids() == ["claim-1"]
    record = await ledger.get_claim("claim-1")
    assert record.timestamp == int(START_TIME)
    assert record.is_verified is False
    assert await ledger.get_encrypted_handle("claim-1") == record.encrypted_amount_handle


@pytest.mark.asyncio
async def test_memory_ledger_rejects_duplicates_and_bad_input_proofs(ledger, gateway):
    await _submit(ledger, gateway)

    with pytest.raises(LedgerError) as exc_info:
        await _submit(ledger, gateway)
    assert exc_info.value.error_type is ErrorType.TRANSACTION_FAILED

    with pytest.raises(LedgerError):
        await ledger.submit_claim(
            claim_id="claim-2", policy_number="P", provider="A",
            ciphertext=b"forged", proof=b"nope", public_amount_hint=1,
            claim_date=date(2024, 1, 1), caller_address=CALLER_ADDRESS,
        )


@pytest.mark.asyncio
async def test_memory_ledger_verification_rules(ledger, gateway):
    await _submit(ledger, gateway, contract=ledger.contract_address)
    handle = await ledger.get_encrypted_handle("claim-1")
    proof = await gateway.prove_decryption([handle], ledger.contract_address, CALLER_ADDRESS)

    with pytest.raises(LedgerError) as exc_info:
        await ledger.submit_verification("claim-1", proof.clear_value_payload, b"forged", CALLER_ADDRESS)
    assert exc_info.value.error_type is ErrorType.PROOF_REJECTED

    await (await ledger.submit_verification("claim-1", proof.clear_value_payload, proof.proof, CALLER_ADDRESS)).wait()
    record = await ledger.get_claim("claim-1")
    assert record.is_verified is True
    assert record.decrypted_value == 1200

    with pytest.raises(LedgerError) as exc_info:
        await ledger.submit_verification("claim-1", proof.clear_value_payload, proof.proof, CALLER_ADDRESS)
    assert exc_info.value.error_type is ErrorType.ALREADY_VERIFIED


@pytest.mark.asyncio
async def test_memory_ledger_unknown_claim(ledger):
    with pytest.raises(LedgerError) as exc_info:
        await ledger.get_claim("missing")
    assert exc_info.value.error_type is ErrorType.CLAIM_NOT_FOUND


# ----------------------------------------------------------------------
# HttpLedgerClient
# ----------------------------------------------------------------------

def _client(handler, **kwargs) -> HttpLedgerClient:
    kwargs.setdefault("finality_poll_interval", 0)
    return HttpLedgerClient("http://ledger.test", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_http_ledger_reads():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/claims":
            return httpx.Response(200, json={"claim_ids": ["claim-1"]})
        if request.url.path == "/v1/claims/claim-1":
            return httpx.Response(200, json=RECORD)
        if request.url.path == "/v1/claims/claim-1/handle":
            return httpx.Response(200, json={"handle": "0xhandle"})
        if request.url.path == "/v1/availability":
            return httpx.Response(200, json={"available": True})
        return httpx.Response(404, json={"error": {"code": "NOT_FOUND", "message": "no such claim"}})

    client = _client(handler)
    try:
        assert await client.list_claim_ids() == ["claim-1"]
        record = await client.get_claim("claim-1")
        assert record.claim_date == date(2024, 3, 15)
        assert record.to_claim().decrypted_value is None
        assert await client.get_encrypted_handle("claim-1") == "0xhandle"
        assert await client.is_service_available() is True

        with pytest.raises(LedgerError) as exc_info:
            await client.get_claim("claim-2")
        assert exc_info.value.error_type is ErrorType.CLAIM_NOT_FOUND
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_http_ledger_unreadable_record_is_malformed():
    def handler(request: httpx.Request) -> httpx.Response:
        record = {key: value for key, value in RECORD.items() if key != "encrypted_amount_handle"}
        return httpx.Response(200, json=record)

    client = _client(handler)
    try:
        with pytest.raises(LedgerError) as exc_info:
            await client.get_claim("claim-1")
        assert exc_info.value.error_type is ErrorType.MALFORMED_RECORD
        assert exc_info.value.context.details == {"claim_id": "claim-1"}
        assert not exc_info.value.recoverable
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_http_ledger_submit_waits_for_finality():
    polls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/v1/claims":
            assert request.headers["X-Caller-Address"] == CALLER_ADDRESS
            body = json.loads(request.content)
            assert body["ciphertext"] == "0x0a0b"
            assert body["claim_date"] == "2024-03-15"
            return httpx.Response(200, json={"tx_hash": "0xtx"})
        if request.url.path == "/v1/transactions/0xtx":
            polls.append(request)
            status = "pending" if len(polls) < 3 else "success"
            return httpx.Response(200, json={"status": status, "block_number": 7})
        return httpx.Response(404)

    client = _client(handler)
    try:
        tx = await client.submit_claim(
            claim_id="claim-1", policy_number="P", provider="A",
            ciphertext=b"\x0a\x0b", proof=b"\x01", public_amount_hint=5,
            claim_date=date(2024, 3, 15), caller_address=CALLER_ADDRESS,
        )
        receipt = await tx.wait()
        assert receipt.succeeded
        assert receipt.block_number == 7
        assert len(polls) == 3
        assert (await tx.wait()) is receipt
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_http_ledger_reverted_verification_maps_reason():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/claims/claim-1/verification":
            return httpx.Response(200, json={"tx_hash": "0xtx"})
        return httpx.Response(200, json={"status": "reverted", "reason": "execution reverted: Data already verified"})

    client = _client(handler)
    try:
        tx = await client.submit_verification("claim-1", b"{}", b"\x00", CALLER_ADDRESS)
        with pytest.raises(LedgerError) as exc_info:
            await tx.wait()
        assert exc_info.value.error_type is ErrorType.ALREADY_VERIFIED
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_http_ledger_rejection_and_outages():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/claims" and request.method == "POST":
            return httpx.Response(400, json={"error": {"code": "ACTION_REJECTED", "message": "User rejected the request"}})
        if request.url.path == "/v1/availability":
            raise httpx.ConnectError("connection refused")
        return httpx.Response(503)

    client = _client(handler)
    try:
        with pytest.raises(LedgerError) as exc_info:
            await client.submit_claim(
                claim_id="claim-1", policy_number="P", provider="A",
                ciphertext=b"\x00", proof=b"\x00", public_amount_hint=1,
                claim_date=date(2024, 1, 1), caller_address=CALLER_ADDRESS,
            )
        assert exc_info.value.error_type is ErrorType.TRANSACTION_REJECTED

        with pytest.raises(LedgerError) as exc_info:
            await client.list_claim_ids()
        assert exc_info.value.error_type is ErrorType.LEDGER_UNREACHABLE
        assert exc_info.value.recoverable is True

        with pytest.raises(LedgerError) as exc_info:
            await client.is_service_available()
        assert exc_info.value.error_type is ErrorType.LEDGER_UNREACHABLE
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_http_ledger_finality_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"tx_hash": "0xslow"})
        return httpx.Response(200, json={"status": "pending"})

    client = _client(handler, finality_timeout=0)
    try:
        tx = await client.submit_verification("claim-1", b"{}", b"\x00", CALLER_ADDRESS)
        with pytest.raises(LedgerError) as exc_info:
            await tx.wait()
        assert exc_info.value.error_type is ErrorType.LEDGER_UNREACHABLE
    finally:
        await client.close()
