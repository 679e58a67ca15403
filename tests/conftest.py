"""Shared fixtures for the settlement-governance test suite."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from settlement_governance.core.clock import SimClock
from settlement_governance.core.models import (
    HookContext,
    PaymentPayload,
    PaymentRequirements,
    SettleResult,
)
from settlement_governance.governance.delegation import TOKEN_PROGRAM_ID

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
PAYER = "AgentDe1egate11111111111111111111111111111111"
OWNER = "Owner111111111111111111111111111111111111111"
RECIPIENT = "Merchant1111111111111111111111111111111111111"
SOURCE_ACCOUNT = "SourceAta111111111111111111111111111111111111"
SANCTIONED = "Sanctioned11111111111111111111111111111111111"


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> SimClock:
    """Deterministic clock starting 2024-01-01T00:00:00Z."""
    return SimClock()


# ---------------------------------------------------------------------------
# On-chain state
# ---------------------------------------------------------------------------

def token_account(
    *,
    delegate: str | None = PAYER,
    delegated_amount: int = 50,
    mint: str = USDC_MINT,
    state: str = "initialized",
    owner_program: str = TOKEN_PROGRAM_ID,
    program: str = "spl-token",
) -> dict[str, Any]:
    """Build a jsonParsed token account as returned by getAccountInfo."""
    info: dict[str, Any] = {
        "owner": OWNER,
        "mint": mint,
        "state": state,
        "tokenAmount": {"amount": "1000000", "decimals": 6},
    }
    if delegate is not None:
        info["delegate"] = delegate
        info["delegatedAmount"] = {"amount": str(delegated_amount), "decimals": 6}
    return {
        "owner": owner_program,
        "lamports": 2039280,
        "data": {
            "program": program,
            "parsed": {"type": "account", "info": info},
            "space": 165,
        },
    }


class FakeRpc:
    """In-memory account store standing in for an RPC node."""

    def __init__(self) -> None:
        self.accounts: dict[str, dict[str, Any] | None] = {}
        self.error: Exception | None = None
        self.delay: float = 0.0
        self.calls: list[str] = []

    async def get_account_info(self, address: str) -> dict[str, Any] | None:
        self.calls.append(address)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.accounts.get(address)

    def revoke(self, address: str) -> None:
        """Simulate the owner revoking the delegation."""
        account = self.accounts[address]
        assert account is not None
        info = account["data"]["parsed"]["info"]
        info.pop("delegate", None)
        info.pop("delegatedAmount", None)


@pytest.fixture
def fake_rpc() -> FakeRpc:
    rpc = FakeRpc()
    rpc.accounts[SOURCE_ACCOUNT] = token_account()
    return rpc


# ---------------------------------------------------------------------------
# Sanctions list
# ---------------------------------------------------------------------------

@pytest.fixture
def blocklist_path(tmp_path):
    path = tmp_path / "sdn.json"
    path.write_text(json.dumps([SANCTIONED, "", 42]))
    return path


# ---------------------------------------------------------------------------
# Hook context
# ---------------------------------------------------------------------------

@pytest.fixture
def make_ctx():
    """Factory for lifecycle hook contexts with sensible defaults."""

    def _make(
        *,
        amount: int | str = 10,
        pay_to: str = RECIPIENT,
        asset: str = USDC_MINT,
        payer: str = PAYER,
        transaction: str | None = "sig-1",
        source_token_account: str | None = SOURCE_ACCOUNT,
        agent_id: str | None = None,
        max_timeout_seconds: int | None = 60,
        result_tx: str | None = None,
        error_reason: str | None = None,
    ) -> HookContext:
        return HookContext(
            requirements=PaymentRequirements(
                network="solana:devnet",
                asset=asset,
                amount=amount,
                pay_to=pay_to,
                max_timeout_seconds=max_timeout_seconds,
            ),
            payment_payload=PaymentPayload(
                payer=payer,
                transaction=transaction,
                source_token_account=source_token_account,
                agent_id=agent_id,
            ),
            result=SettleResult(transaction=result_tx, payer=payer) if result_tx else None,
            error_reason=error_reason,
        )

    return _make
