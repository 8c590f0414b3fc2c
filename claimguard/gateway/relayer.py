"""Encryption gateway adapter for an HTTP encryption relayer.

The relayer exposes three JSON endpoints:
    GET  /v1/keys             public key material, used as the readiness probe
    POST /v1/encrypt          {contract_address, caller_address, value}
                              -> {ciphertext, proof}
    POST /v1/public-decrypt   {handles, contract_address, caller_address}
                              -> {clear_values, payload, proof}
Binary fields travel as 0x-prefixed hex strings.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..models.encryption import DecryptionProof, EncryptedInput
from ..utils.errors import GatewayError
from .base import EncryptionGateway

logger = logging.getLogger(__name__)


class RelayerGateway(EncryptionGateway):
    """Adapter for a remote encryption relayer."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self.endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.endpoint, timeout=self._timeout, transport=self._transport)

    async def initialize(self) -> None:
        if self._initialized:
            return
        try:
            async with self._client() as client:
                resp = await client.get("/v1/keys")
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise GatewayError.initialization_failed(e)
        self._initialized = True
        logger.info(f"Encryption relayer ready at {self.endpoint}")

    async def encrypt(self, contract_address: str, caller_address: str, value: int) -> EncryptedInput:
        payload = {
            "contract_address": contract_address,
            "caller_address": caller_address,
            "value": value,
        }
        try:
            data = await self._post("/v1/encrypt", payload)
            return EncryptedInput(
                ciphertext=_from_hex(data["ciphertext"]),
                proof=_from_hex(data["proof"]),
            )
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise GatewayError.encryption_failed(e)

    async def prove_decryption(
        self,
        handles: List[str],
        contract_address: str,
        caller_address: str,
    ) -> DecryptionProof:
        payload = {
            "handles": list(handles),
            "contract_address": contract_address,
            "caller_address": caller_address,
        }
        try:
            data = await self._post("/v1/public-decrypt", payload)
            clear_values = {str(h): int(v) for h, v in (data.get("clear_values") or {}).items()}
            missing = [h for h in handles if h not in clear_values]
            if missing:
                raise ValueError(f"relayer did not reveal handles {missing}")
            return DecryptionProof(
                clear_values=clear_values,
                clear_value_payload=_from_hex(data["payload"]),
                proof=_from_hex(data["proof"]),
            )
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise GatewayError.decryption_failed(handles, e)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client() as client:
            resp = await client.post(path, json=payload)
            resp.raise_for_status()
            return resp.json()


def _from_hex(value: str) -> bytes:
    text = value[2:] if value.startswith("0x") else value
    return bytes.fromhex(text)
