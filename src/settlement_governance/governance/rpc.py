"""Thin JSON-RPC client for token account state.

Implements :class:`~settlement_governance.core.interfaces.IAccountInfoRpc`
over ``httpx``.  Retries and backoff belong to whoever configures the
transport; this client makes exactly one request per call.

Usage::

    async with HttpAccountInfoRpc("https://api.devnet.solana.com") as rpc:
        account = await rpc.get_account_info(token_account)
"""

from __future__ import annotations

import itertools
import logging
from typing import Any

import httpx

from settlement_governance.core.errors import DelegationRpcError

logger = logging.getLogger(__name__)


class HttpAccountInfoRpc:
    """``getAccountInfo`` with ``jsonParsed`` encoding.

    Parameters
    ----------
    url:
        RPC endpoint.
    timeout:
        HTTP request timeout in seconds.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests inject one with a
        ``MockTransport``).  A client passed in is not closed by
        :meth:`aclose`.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._ids = itertools.count(1)

    async def __aenter__(self) -> HttpAccountInfoRpc:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_account_info(self, address: str) -> dict[str, Any] | None:
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "getAccountInfo",
            "params": [address, {"encoding": "jsonParsed"}],
        }
        try:
            resp = await self._client.post(self._url, json=body)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            raise DelegationRpcError(
                f"RPC HTTP {exc.response.status_code} for getAccountInfo({address})"
            ) from exc
        except httpx.HTTPError as exc:
            raise DelegationRpcError(f"RPC transport error: {exc}") from exc
        except ValueError as exc:
            raise DelegationRpcError(f"RPC returned invalid JSON: {exc}") from exc

        if payload.get("error"):
            err = payload["error"]
            raise DelegationRpcError(
                f"RPC error {err.get('code')}: {err.get('message')}"
            )

        result = payload.get("result") or {}
        return result.get("value")
