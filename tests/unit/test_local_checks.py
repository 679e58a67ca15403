"""Test allowlists, the amount cap, the rate limit and RateCounter."""

from conftest import RECIPIENT, USDC_MINT
from settlement_governance.core.config import GovernanceConfig
from settlement_governance.core.models import PaymentRequirements
from settlement_governance.governance.checks import (
    RateCounter,
    check_amount_cap,
    check_rate_limit,
    check_recipient_allowlist,
    check_token_allowlist,
    run_local_checks,
)


def _requirements(amount=10, asset=USDC_MINT, pay_to=RECIPIENT):
    return PaymentRequirements(network="solana:devnet", asset=asset, amount=amount, pay_to=pay_to)


class TestAllowlists:
    def test_empty_or_none_allows_all(self):
        assert check_token_allowlist("anything", None).allowed
        assert check_token_allowlist("anything", []).allowed
        assert check_recipient_allowlist("anyone", None).allowed
        assert check_recipient_allowlist("anyone", []).allowed

    def test_token_not_listed(self):
        result = check_token_allowlist("OtherMint", [USDC_MINT])
        assert not result.allowed
        assert result.reason == "Token OtherMint is not in the allowlist"

    def test_recipient_not_listed(self):
        result = check_recipient_allowlist("Stranger", [RECIPIENT])
        assert not result.allowed
        assert result.reason == "Recipient Stranger is not in the allowlist"

    def test_listed_entries_allowed(self):
        assert check_token_allowlist(USDC_MINT, [USDC_MINT]).allowed
        assert check_recipient_allowlist(RECIPIENT, [RECIPIENT]).allowed


class TestAmountCap:
    def test_no_cap(self):
        assert check_amount_cap(10**18, None).allowed

    def test_boundary_inclusive(self):
        assert check_amount_cap(1_000_000, 1_000_000).allowed

    def test_one_over(self):
        result = check_amount_cap(1_000_001, 1_000_000)
        assert not result.allowed
        assert result.reason == "Amount 1000001 exceeds cap 1000000"

    def test_zero_cap(self):
        assert check_amount_cap(0, 0).allowed
        assert not check_amount_cap(1, 0).allowed


class TestRateLimit:
    def test_below_limit(self):
        assert check_rate_limit(59, 60).allowed

    def test_at_limit_rejected(self):
        result = check_rate_limit(60, 60)
        assert not result.allowed
        assert result.reason == "Rate limit exceeded: 60/60 per minute"


class TestRunLocalChecks:
    def test_all_pass_with_defaults(self):
        assert run_local_checks(_requirements(), GovernanceConfig()).allowed

    def test_token_checked_first(self):
        config = GovernanceConfig(
            allowed_tokens=[USDC_MINT],
            allowed_recipients=[RECIPIENT],
            max_settlement_amount=1,
        )
        result = run_local_checks(_requirements(asset="X", pay_to="Y", amount=5), config)
        assert result.reason == "Token X is not in the allowlist"

    def test_recipient_before_amount(self):
        config = GovernanceConfig(allowed_recipients=[RECIPIENT], max_settlement_amount=1)
        result = run_local_checks(_requirements(pay_to="Y", amount=5), config)
        assert result.reason == "Recipient Y is not in the allowlist"

    def test_amount_cap(self):
        config = GovernanceConfig(max_settlement_amount=5)
        result = run_local_checks(_requirements(amount=6), config)
        assert result.reason == "Amount 6 exceeds cap 5"

    def test_string_amount_coerced(self):
        config = GovernanceConfig(max_settlement_amount=5)
        assert run_local_checks(_requirements(amount="5"), config).allowed


class TestRateCounter:
    def test_counts_within_window(self, clock):
        counter = RateCounter(clock=clock)
        counter.increment()
        counter.increment()
        assert counter.count() == 2

    def test_sliding_expiry(self, clock):
        counter = RateCounter(clock=clock)
        counter.increment()
        clock.advance(30)
        counter.increment()
        clock.advance(30)
        assert counter.count() == 1
        clock.advance(30)
        assert counter.count() == 0

    def test_destroy(self, clock):
        counter = RateCounter(clock=clock)
        counter.increment()
        counter.destroy()
        assert counter.count() == 0
