"""HTTP adapters for the chain gateway (Ledger and Exchange ports).

The gateway owns custody and signing; this service only asks it to move
funds or swap. Endpoints:
    GET  /v1/balances/{address}   -> {"lamports": int}
    POST /v1/transfers            -> {"signature": str}
    POST /v1/swaps                -> {"amount_out": int, "fees_paid": int, "signature": str}
A swap without a route answers 422 with {"error": "NO_ROUTE"}.
"""

import logging
from typing import Any

import httpx

from src.sc_common.errors import ExecutionFailedError, NoRouteFoundError, TransferFailedError
from src.sc_settlement.domain.ports import SwapResult

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        body: Any = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


class HttpLedgerClient:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def balance(self, address: str) -> int:
        try:
            response = await self._client.get(f"/v1/balances/{address}")
        except httpx.HTTPError as e:
            raise TransferFailedError(f"balance lookup for {address}: {e}") from e
        if response.status_code != 200:
            raise TransferFailedError(f"balance lookup for {address}: {_error_detail(response)}")
        return int(response.json()["lamports"])

    async def transfer(self, from_address: str, to_address: str, amount: int) -> str:
        try:
            response = await self._client.post(
                "/v1/transfers", json={"from": from_address, "to": to_address, "amount": amount}
            )
        except httpx.HTTPError as e:
            raise TransferFailedError(str(e) or type(e).__name__) from e
        if response.status_code != 200:
            raise TransferFailedError(_error_detail(response))
        signature = str(response.json()["signature"])
        logger.debug("Transfer %d lamports %s -> %s: %s", amount, from_address, to_address, signature)
        return signature


class HttpExchangeClient:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def swap(
        self, amount_in: int, asset_in: str, asset_out: str, slippage_bps: int
    ) -> SwapResult:
        try:
            response = await self._client.post(
                "/v1/swaps",
                json={
                    "amount_in": amount_in,
                    "asset_in": asset_in,
                    "asset_out": asset_out,
                    "slippage_bps": slippage_bps,
                },
            )
        except httpx.HTTPError as e:
            raise ExecutionFailedError(str(e) or type(e).__name__) from e

        if response.status_code == 422 and _error_detail(response) == "NO_ROUTE":
            raise NoRouteFoundError(asset_in, asset_out)
        if response.status_code != 200:
            raise ExecutionFailedError(_error_detail(response))
        body = response.json()
        return SwapResult(
            amount_out=int(body["amount_out"]),
            fees_paid=int(body.get("fees_paid", 0)),
            signature=str(body["signature"]),
        )


def build_chain_http_client(base_url: str, timeout_seconds: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
