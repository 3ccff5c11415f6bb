"""
Solana JSON-RPC client: the read-only provider capability used by the listener.

getSignaturesForAddress, getTransaction and getBalance over httpx with a
bounded timeout. Every failure (transport, HTTP status, JSON-RPC error)
raises RpcError; callers decide whether to retry on the next tick.
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from backend_octo.core.exceptions import RpcError
from backend_octo.solana_listener.models import SignatureInfo

DEFAULT_TIMEOUT_SEC = 15.0
DEFAULT_COMMITMENT = "confirmed"


class SolanaRpcClient:
    """Async JSON-RPC client bound to one endpoint."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        commitment: str = DEFAULT_COMMITMENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.rstrip("/")
        self._commitment = commitment
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_sec),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SolanaRpcClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def _call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call; raise RpcError on transport or RPC error."""
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            resp = await self._client.post(self._rpc_url, json=body)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise RpcError(
                f"Solana RPC HTTP {e.response.status_code} for {method}",
                code=e.response.status_code,
                method=method,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise RpcError(f"Solana RPC transport error for {method}: {e}", method=method) from e
        if not isinstance(data, dict):
            raise RpcError(f"Solana RPC returned non-object for {method}", method=method)
        if "error" in data and data["error"] is not None:
            err = data["error"]
            if isinstance(err, dict):
                raise RpcError(
                    f"Solana RPC error: {err.get('message', err)} (code={err.get('code')})",
                    code=err.get("code"),
                    method=method,
                )
            raise RpcError(f"Solana RPC error: {err}", method=method)
        return data.get("result")

    async def list_recent_signatures(self, address: str, limit: int) -> list[SignatureInfo]:
        """Most recent signatures for address, newest first. Invalid items are skipped."""
        result = await self._call(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": self._commitment}],
        )
        if result is None:
            raise RpcError("Solana RPC returned no result", method="getSignaturesForAddress")
        infos: list[SignatureInfo] = []
        for item in result if isinstance(result, list) else []:
            if not isinstance(item, dict) or "signature" not in item:
                continue
            try:
                infos.append(SignatureInfo.from_rpc_item(item))
            except (KeyError, TypeError, ValueError):
                continue
        return infos

    async def get_transaction(self, signature: str) -> dict[str, Any] | None:
        """Full transaction by signature (json encoding); None if the provider has no record yet."""
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "json",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self._commitment,
                },
            ],
        )
        return result if isinstance(result, dict) else None

    async def get_balance(self, address: str) -> int:
        """Balance of address in lamports."""
        result = await self._call("getBalance", [address, {"commitment": self._commitment}])
        value = result.get("value") if isinstance(result, dict) else result
        if not isinstance(value, int):
            raise RpcError("Solana RPC getBalance returned no value", method="getBalance")
        return value
