"""ABI validation tests against the in-memory world from conftest."""

from __future__ import annotations

import pytest
from conftest import OWNER, FakeAbiFetcher

from move_composer.compose.abi import AbiCache, is_droppable
from move_composer.compose.types import RefMode, StepGraph, literal, ref, signer
from move_composer.compose.validator import (
    ARG_COUNT_ERROR,
    DUPLICATE_MOVE_ERROR,
    FUNCTION_NOT_FOUND_ERROR,
    REF_ORDER_ERROR,
    RETURN_INDEX_ERROR,
    SIGNER_COUNT_ERROR,
    SIGNER_MISMATCH,
    TYPE_ARG_COUNT_ERROR,
    UNCONSUMED_RESOURCE,
    UNMOVED_RESOURCE,
    AbiValidator,
    ValidationFinding,
    is_hard_code,
)
from move_composer.errors import AbiFetchError

FA = "0x1::fungible_asset::FungibleAsset"


def withdraw_deposit(deposit_args=None) -> StepGraph:
    return (
        StepGraph()
        .add_step("withdraw", "0x1::vault::withdraw", args=[signer(), literal(100)])
        .add_step(
            "deposit",
            "0x1::vault::deposit",
            args=deposit_args if deposit_args is not None else [literal(OWNER), ref("withdraw", 0)],
        )
    )


@pytest.mark.anyio
async def test_withdraw_then_deposit_is_clean(fetcher):
    report = await AbiValidator(fetcher).validate(withdraw_deposit())
    assert report.findings == []
    assert report.ok
    assert set(report.signatures) == {"0x1::vault::withdraw", "0x1::vault::deposit"}
    assert report.signatures["0x1::vault::withdraw"].return_droppable == (False,)


@pytest.mark.anyio
async def test_dropping_the_ref_leaves_exactly_one_unconsumed_resource(fetcher):
    report = await AbiValidator(fetcher).validate(withdraw_deposit([literal(OWNER), literal("0x0")]))
    unconsumed = [f for f in report.findings if f.code == UNCONSUMED_RESOURCE]
    assert len(unconsumed) == 1
    finding = unconsumed[0]
    assert finding.step_label == "withdraw"
    assert "return[0]" in finding.message
    assert FA in finding.message
    assert not finding.is_hard_error
    assert report.ok


@pytest.mark.anyio
async def test_droppable_returns_never_flagged(fetcher):
    g = StepGraph().add_step("r", "0x1::vault::receipt").add_step("a", "0x1::vault::amount", args=[literal(1)])
    report = await AbiValidator(fetcher).validate(g)
    assert report.findings == []


@pytest.mark.anyio
async def test_each_unconsumed_output_reported_separately(fetcher):
    g = (
        StepGraph()
        .add_step("withdraw", "0x1::vault::withdraw", args=[signer(), literal(100)])
        .add_step("split", "0x1::vault::split", args=[ref("withdraw", 0), literal(10)])
        .add_step("deposit", "0x1::vault::deposit", args=[literal(OWNER), ref("split", 1)])
    )
    report = await AbiValidator(fetcher).validate(g)
    assert [(f.step_label, f.code) for f in report.findings] == [("split", UNCONSUMED_RESOURCE)]
    assert "return[0]" in report.findings[0].message


@pytest.mark.anyio
async def test_extra_signer_is_one_signer_count_error(fetcher):
    g = StepGraph().add_step(
        "transfer", "0x1::vault::transfer", args=[signer(), signer(), literal(OWNER), literal(5)]
    )
    report = await AbiValidator(fetcher).validate(g)
    counts = [f for f in report.findings if f.code == SIGNER_COUNT_ERROR]
    assert len(counts) == 1
    assert "expected 1 signer(s), got 2" in counts[0].message
    assert ARG_COUNT_ERROR not in report.codes()
    assert SIGNER_MISMATCH in report.codes()
    assert not report.ok


@pytest.mark.anyio
async def test_literal_in_signer_position(fetcher):
    g = StepGraph().add_step("withdraw", "0x1::vault::withdraw", args=[literal(OWNER), literal(1)])
    report = await AbiValidator(fetcher).validate(g)
    assert SIGNER_COUNT_ERROR in report.codes()
    assert ARG_COUNT_ERROR in report.codes()
    mismatch = [f for f in report.findings if f.code == SIGNER_MISMATCH]
    assert len(mismatch) == 1
    assert "arg 0" in mismatch[0].message


@pytest.mark.anyio
async def test_type_argument_count(fetcher):
    g = (
        StepGraph()
        .add_step("withdraw", "0x1::vault::withdraw", args=[signer(), literal(1)])
        .add_step(
            "swap",
            "0x1::vault::swap",
            type_arguments=["0x1::aptos_coin::AptosCoin"],
            args=[signer(), ref("withdraw", 0)],
        )
        .add_step("deposit", "0x1::vault::deposit", args=[literal(OWNER), ref("swap", 0)])
    )
    report = await AbiValidator(fetcher).validate(g)
    assert report.codes() == [TYPE_ARG_COUNT_ERROR]
    assert "expected 2 type argument(s), got 1" in report.findings[0].message


@pytest.mark.anyio
async def test_missing_function_excludes_step_from_other_checks(fetcher):
    g = StepGraph().add_step("ghost", "0x1::vault::nope", args=[signer(), signer(), signer()])
    report = await AbiValidator(fetcher).validate(g)
    assert report.codes() == [FUNCTION_NOT_FOUND_ERROR]
    assert report.findings[0].message == 'Function "0x1::vault::nope" not found on-chain'
    assert "0x1::vault::nope" not in report.signatures


@pytest.mark.anyio
async def test_fetch_failure_becomes_function_not_found_with_cause():
    failing = {"0x1::vault::withdraw": AbiFetchError("http://node/v1", "HTTP 503: busy", status_code=503)}
    report = await AbiValidator(FakeAbiFetcher(failing=failing)).validate(withdraw_deposit())
    not_found = [f for f in report.findings if f.code == FUNCTION_NOT_FOUND_ERROR]
    assert [f.step_label for f in not_found] == ["withdraw"]
    assert "HTTP 503: busy" in not_found[0].message


@pytest.mark.anyio
async def test_struct_fetch_failure_leaves_droppability_unknown():
    fetcher = FakeAbiFetcher(failing={FA: AbiFetchError("http://node/v1", "HTTP 503: busy", status_code=503)})
    validator = AbiValidator(fetcher)

    report = await validator.validate(withdraw_deposit([literal(OWNER), literal("0x0")]))
    assert report.ok
    assert report.findings == []
    assert report.signatures["0x1::vault::withdraw"].return_droppable == (None,)

    # Failures are not cached.
    await validator.validate(withdraw_deposit())
    assert fetcher.struct_calls == [FA, FA]
    assert FA not in validator.cache.struct_abilities


@pytest.mark.anyio
async def test_each_function_fetched_once(fetcher):
    g = (
        StepGraph()
        .add_step("w1", "0x1::vault::withdraw", args=[signer(), literal(1)])
        .add_step("w2", "0x1::vault::withdraw", args=[signer(), literal(2)])
        .add_step("d1", "0x1::vault::deposit", args=[literal(OWNER), ref("w1", 0)])
        .add_step("d2", "0x1::vault::deposit", args=[literal(OWNER), ref("w2", 0)])
    )
    validator = AbiValidator(fetcher)
    await validator.validate(g)
    await validator.validate(g)
    assert sorted(fetcher.function_calls) == ["0x1::vault::deposit", "0x1::vault::withdraw"]
    assert fetcher.struct_calls == [FA]
    assert validator.cache.fetch_count == 2


@pytest.mark.anyio
async def test_injected_cache_is_shared(fetcher):
    cache = AbiCache()
    await AbiValidator(fetcher, cache).validate(withdraw_deposit())
    await AbiValidator(fetcher, cache).validate(withdraw_deposit())
    assert len(fetcher.function_calls) == 2


@pytest.mark.anyio
async def test_missing_functions_are_not_refetched(fetcher):
    g = StepGraph().add_step("ghost", "0x1::vault::nope")
    validator = AbiValidator(fetcher)
    await validator.validate(g)
    await validator.validate(g)
    assert fetcher.function_calls == ["0x1::vault::nope"]


@pytest.mark.anyio
async def test_forward_and_self_refs(fetcher):
    g = (
        StepGraph()
        .add_step("deposit", "0x1::vault::deposit", args=[literal(OWNER), ref("withdraw", 0)])
        .add_step("withdraw", "0x1::vault::withdraw", args=[signer(), literal(1)])
        .add_step("peek", "0x1::vault::peek", args=[ref("peek", 0, RefMode.BORROW)])
    )
    report = await AbiValidator(fetcher).validate(g)
    order = [f for f in report.findings if f.code == REF_ORDER_ERROR]
    assert [f.step_label for f in order] == ["deposit", "peek"]
    assert "itself" in order[1].message


@pytest.mark.anyio
async def test_return_index_out_of_range(fetcher):
    report = await AbiValidator(fetcher).validate(withdraw_deposit([literal(OWNER), ref("withdraw", 1)]))
    assert RETURN_INDEX_ERROR in report.codes()
    # the real output is never referenced, so it is also unconsumed
    assert UNCONSUMED_RESOURCE in report.codes()


@pytest.mark.parametrize("mode", list(RefMode))
@pytest.mark.anyio
async def test_any_use_after_move_is_duplicate_move(fetcher, mode):
    g = withdraw_deposit().add_step("again", "0x1::vault::peek", args=[ref("withdraw", 0, mode)])
    report = await AbiValidator(fetcher).validate(g)
    dup = [f for f in report.findings if f.code == DUPLICATE_MOVE_ERROR]
    assert [f.step_label for f in dup] == ["again"]
    assert '"deposit" already moved it' in dup[0].message


@pytest.mark.anyio
async def test_borrow_before_move_is_clean(fetcher):
    g = (
        StepGraph()
        .add_step("withdraw", "0x1::vault::withdraw", args=[signer(), literal(100)])
        .add_step("peek", "0x1::vault::peek", args=[ref("withdraw", 0, RefMode.BORROW)])
        .add_step("deposit", "0x1::vault::deposit", args=[literal(OWNER), ref("withdraw", 0)])
    )
    report = await AbiValidator(fetcher).validate(g)
    assert report.findings == []


@pytest.mark.anyio
async def test_borrow_only_is_unmoved_not_unconsumed(fetcher):
    g = (
        StepGraph()
        .add_step("withdraw", "0x1::vault::withdraw", args=[signer(), literal(100)])
        .add_step("peek", "0x1::vault::peek", args=[ref("withdraw", 0, RefMode.BORROW)])
    )
    report = await AbiValidator(fetcher).validate(g)
    assert report.codes() == [UNMOVED_RESOURCE]
    assert '"peek" (borrow)' in report.findings[0].message
    assert report.ok


def test_hard_codes():
    assert is_hard_code(REF_ORDER_ERROR)
    assert is_hard_code(DUPLICATE_MOVE_ERROR)
    assert not is_hard_code(SIGNER_MISMATCH)
    assert not is_hard_code(UNCONSUMED_RESOURCE)
    assert ValidationFinding("a", ARG_COUNT_ERROR, "m").to_dict() == {
        "stepLabel": "a",
        "code": ARG_COUNT_ERROR,
        "message": "m",
        "isHardError": True,
    }


@pytest.mark.parametrize(
    "type_str,expected",
    [
        ("u64", True),
        ("address", True),
        ("bool", True),
        ("&0x1::fungible_asset::FungibleAsset", True),
        ("vector<u8>", True),
        ("0x1::vault::Receipt", True),
        ("vector<0x1::vault::Receipt>", True),
        (FA, False),
        (f"vector<{FA}>", False),
        ("0x1::vault::Unknown", None),
        ("T0", None),
    ],
)
@pytest.mark.anyio
async def test_is_droppable(fetcher, type_str, expected):
    assert await is_droppable(type_str, AbiCache(), fetcher) is expected
