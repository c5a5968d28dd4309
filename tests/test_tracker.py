from __future__ import annotations

import pytest
from conftest import APT, OWNER, USDC, FakeBalanceReader
from hypothesis import given
from hypothesis import strategies as st

from move_composer.simulation.tracker import (
    capture_snapshot,
    compute_deltas,
    compute_diff,
    format_amount,
    validate_expectations,
)
from move_composer.simulation.types import BalanceSnapshot, ExpectationType, StepExpectation, VaultSnapshot


@pytest.mark.parametrize(
    "raw,decimals,expected",
    [
        (205_000000, 6, "205.000000"),
        (-205_000000, 6, "-205.000000"),
        (1, 6, "0.000001"),
        (-1, 8, "-0.00000001"),
        (0, 6, "0.000000"),
        (12345, 0, "12345"),
        (2**128 - 1, 6, "340282366920938463463374607431768.211455"),
    ],
)
def test_format_amount(raw, decimals, expected):
    assert format_amount(raw, decimals) == expected


@given(st.integers(min_value=-(2**130), max_value=2**130), st.integers(min_value=0, max_value=18))
def test_format_amount_is_exact(raw, decimals):
    text = format_amount(raw, decimals)
    assert int(text.replace(".", "")) == raw


@pytest.mark.anyio
async def test_capture_snapshot_reads_every_token():
    reader = FakeBalanceReader({USDC.metadata: 205_000000, APT.metadata: 10**8})
    snap = await capture_snapshot(reader, OWNER, [USDC, APT])
    assert snap.owner == OWNER
    assert snap.balances == {USDC.metadata: 205_000000, APT.metadata: 10**8}
    assert sorted(reader.calls) == sorted([(OWNER, USDC.metadata), (OWNER, APT.metadata)])


@pytest.mark.anyio
async def test_capture_snapshot_propagates_read_failures():
    class Broken(FakeBalanceReader):
        async def fetch_balance(self, owner, metadata):
            raise RuntimeError("node down")

    with pytest.raises(RuntimeError, match="node down"):
        await capture_snapshot(Broken(), OWNER, [USDC])


def test_full_withdrawal_delta():
    (d,) = compute_deltas({USDC.metadata: 205_000000}, {USDC.metadata: 0}, [USDC])
    assert d.delta == -205_000000
    assert d.delta_formatted == "-205.000000"
    assert (d.before, d.after) == (205_000000, 0)


def test_missing_after_means_unchanged():
    (d,) = compute_deltas({USDC.metadata: 50}, {}, [USDC])
    assert d.after == 50
    assert d.delta == 0
    assert d.delta_formatted == "+0.000000"


def test_increase_has_plus_sign():
    deltas = compute_deltas({}, {APT.metadata: 150_000000}, [USDC, APT])
    assert [d.delta_formatted for d in deltas] == ["+0.000000", "+1.50000000"]


def test_compute_diff_keeps_owner_and_vault():
    diff = compute_diff(BalanceSnapshot(OWNER, {USDC.metadata: 10}), {USDC.metadata: 4}, [USDC])
    assert diff.owner == OWNER
    assert diff.delta_for(USDC.metadata.upper().replace("0X", "0x")).delta == -6
    assert diff.vault is None


class TestExpectations:
    deltas = compute_deltas({USDC.metadata: 200, APT.metadata: 5}, {USDC.metadata: 50, APT.metadata: 9}, [USDC, APT])

    def test_balance_expectations(self):
        results = validate_expectations(
            [
                StepExpectation(ExpectationType.BALANCE_DECREASE, "USDC down", USDC.metadata),
                StepExpectation(ExpectationType.BALANCE_INCREASE, "APT up", APT.metadata),
                StepExpectation(ExpectationType.BALANCE_INCREASE, "USDC up", USDC.metadata),
            ],
            self.deltas,
        )
        assert [r.passed for r in results] == [True, True, False]
        assert results[0].actual == "-0.000150 USDC"
        assert results[1].actual == "+0.00000004 APT"

    def test_token_lookup_normalizes_addresses(self):
        (r,) = validate_expectations([StepExpectation("balance_increase", "APT up", "0x000a")], self.deltas)
        assert r.passed

    def test_untracked_token(self):
        results = validate_expectations(
            [
                StepExpectation("balance_increase", "unknown token", "0xdead"),
                StepExpectation("balance_decrease", "no token at all"),
            ],
            self.deltas,
        )
        assert [(r.passed, r.actual) for r in results] == [(False, "token not tracked"), (False, "token not tracked")]

    def test_vault_expectations(self):
        before = VaultSnapshot(collateral=1000, debt_principal=300)
        after = VaultSnapshot(collateral=1000, debt_principal=100)
        results = validate_expectations(
            [
                StepExpectation("vault_debt_decrease", "debt down"),
                StepExpectation("vault_collateral_decrease", "collateral down"),
            ],
            [],
            before,
            after,
        )
        assert [(r.passed, r.actual) for r in results] == [
            (True, "debt 300 -> 100"),
            (False, "collateral 1000 -> 1000"),
        ]

    def test_vault_not_tracked(self):
        (r,) = validate_expectations([StepExpectation("vault_debt_decrease", "debt down")], [], None, None)
        assert (r.passed, r.actual) == (False, "vault not tracked")

    def test_success_is_checked_at_step_level(self):
        (r,) = validate_expectations([StepExpectation("success", "it works")], [])
        assert (r.passed, r.actual) == (True, "checked at step level")

    def test_unknown_type(self):
        exp = StepExpectation("balance_sideways", "??")
        assert exp.type == "balance_sideways"
        (r,) = validate_expectations([exp], self.deltas)
        assert (r.passed, r.actual) == (False, "unknown type: balance_sideways")
