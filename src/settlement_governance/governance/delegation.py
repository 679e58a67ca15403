"""On-chain delegation validation.

Confirms that the funding token account has an active, sufficient,
non-frozen spending delegation to the payer.  Always queried live: a
cached answer could let a settlement through after the owner revoked the
delegation or a concurrent transfer spent it down.

Both the classic token program and the extension-enabled (Token-2022)
program are recognised; the jsonParsed encoding makes their account
layouts identical for the fields used here.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import BaseModel

from settlement_governance.core.enums import DelegationStatus
from settlement_governance.core.interfaces import IAccountInfoRpc

logger = logging.getLogger(__name__)

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

_PROGRAM_NAMES: dict[str, str] = {
    "spl-token": TOKEN_PROGRAM_ID,
    "spl-token-2022": TOKEN_2022_PROGRAM_ID,
}


class DelegationCheckResult(BaseModel):
    status: DelegationStatus
    delegate: str | None = None
    delegated_amount: int | None = None
    required_amount: int | None = None
    owner: str | None = None
    token_mint: str | None = None
    program_id: str | None = None
    error_detail: str | None = None

    @property
    def active(self) -> bool:
        return self.status == DelegationStatus.ACTIVE


def _resolve_program(account: dict[str, Any]) -> str | None:
    owner = account.get("owner")
    if owner in (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID):
        return owner
    program = (account.get("data") or {}).get("program")
    return _PROGRAM_NAMES.get(program)


async def check_delegation(
    rpc: IAccountInfoRpc,
    payer: str,
    funding_account: str,
    required_amount: int,
    expected_asset: str,
    timeout: float | None = None,
) -> DelegationCheckResult:
    """Check on-chain delegation status for *funding_account*.

    Never raises: RPC failures, timeouts and unexpected account shapes
    come back as ``status=error`` so the caller fails closed.
    """
    try:
        account = await asyncio.wait_for(rpc.get_account_info(funding_account), timeout)
    except asyncio.TimeoutError:
        return DelegationCheckResult(
            status=DelegationStatus.ERROR,
            error_detail=f"RPC timed out after {timeout}s fetching {funding_account}",
        )
    except Exception as exc:
        logger.error("Delegation RPC failed for %s: %s", funding_account, exc)
        return DelegationCheckResult(
            status=DelegationStatus.ERROR,
            error_detail=str(exc) or type(exc).__name__,
        )

    if not account:
        return DelegationCheckResult(
            status=DelegationStatus.ERROR,
            error_detail=f"Token account {funding_account} not found",
        )

    program_id = _resolve_program(account)
    if program_id is None:
        return DelegationCheckResult(
            status=DelegationStatus.ERROR,
            error_detail=f"Account owned by unknown program: {account.get('owner')}",
        )

    parsed = (account.get("data") or {}).get("parsed") or {}
    if parsed.get("type") != "account":
        return DelegationCheckResult(
            status=DelegationStatus.ERROR,
            program_id=program_id,
            error_detail=f"Unexpected account type: {parsed.get('type', 'unknown')}",
        )

    info: dict[str, Any] = parsed.get("info") or {}
    owner = info.get("owner")
    token_mint = info.get("mint")
    delegate = info.get("delegate")
    common = {"owner": owner, "token_mint": token_mint, "program_id": program_id}

    # Integrity failure, not a business outcome: either config drift or a
    # request pointing at the wrong account.
    if token_mint and token_mint != expected_asset:
        return DelegationCheckResult(
            status=DelegationStatus.ERROR,
            error_detail=(
                f"Token mint mismatch: expected {expected_asset}, got {token_mint}"
            ),
            **common,
        )

    if not delegate:
        return DelegationCheckResult(status=DelegationStatus.NOT_DELEGATED, **common)

    if delegate != payer:
        return DelegationCheckResult(
            status=DelegationStatus.NOT_DELEGATED,
            delegate=delegate,
            error_detail=f"Delegate {delegate} does not match payer {payer}",
            **common,
        )

    raw_amount = info.get("delegatedAmount") or {}
    try:
        delegated_amount = int(raw_amount.get("amount", 0))
    except (TypeError, ValueError):
        return DelegationCheckResult(
            status=DelegationStatus.ERROR,
            delegate=delegate,
            error_detail=f"Unparseable delegated amount: {raw_amount!r}",
            **common,
        )

    if info.get("state") == "frozen":
        return DelegationCheckResult(
            status=DelegationStatus.INACTIVE,
            delegate=delegate,
            delegated_amount=delegated_amount,
            error_detail="Token account is frozen",
            **common,
        )

    if delegated_amount < required_amount:
        return DelegationCheckResult(
            status=DelegationStatus.INSUFFICIENT,
            delegate=delegate,
            delegated_amount=delegated_amount,
            required_amount=required_amount,
            **common,
        )

    return DelegationCheckResult(
        status=DelegationStatus.ACTIVE,
        delegate=delegate,
        delegated_amount=delegated_amount,
        required_amount=required_amount,
        **common,
    )


class DelegationVerifier:
    """Binds an RPC client and timeout so the coordinator can call
    :meth:`check` without threading them through every hook."""

    def __init__(self, rpc: IAccountInfoRpc, timeout: float | None = 10.0) -> None:
        self._rpc = rpc
        self._timeout = timeout

    async def check(
        self,
        payer: str,
        funding_account: str,
        required_amount: int,
        expected_asset: str,
    ) -> DelegationCheckResult:
        result = await check_delegation(
            self._rpc,
            payer,
            funding_account,
            required_amount,
            expected_asset,
            timeout=self._timeout,
        )
        if not result.active:
            logger.info(
                "Delegation %s: account=%s payer=%s detail=%s",
                result.status.value,
                funding_account,
                payer,
                result.error_detail or "",
            )
        return result
