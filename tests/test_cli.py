from __future__ import annotations

import json

import pytest
from conftest import OWNER, USDC, FakeAbiFetcher, simulate_response, store_write

from move_composer import cli


class ClosableFetcher(FakeAbiFetcher):
    closed = False

    async def aclose(self) -> None:
        self.closed = True


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


def _write_plan(path, deposit_ref: bool = True):
    args = [{"kind": "literal", "value": OWNER}]
    if deposit_ref:
        args.append({"kind": "ref", "step": "withdraw", "returnIndex": "0"})
    else:
        args.append({"kind": "literal", "value": "0x0"})
    path.write_text(
        json.dumps(
            {
                "tokens": [USDC.to_dict()],
                "steps": [
                    {
                        "label": "withdraw",
                        "function": "0x1::vault::withdraw",
                        "args": [{"kind": "signer"}, {"kind": "literal", "value": "100n"}],
                    },
                    {"label": "deposit", "function": "0x1::vault::deposit", "args": args},
                ],
            }
        )
    )
    return path


@pytest.fixture
def fake_client(monkeypatch):
    client = ClosableFetcher()
    monkeypatch.setattr(cli, "_make_client", lambda settings: client)
    return client


def test_validate_clean_plan(tmp_path, capsys, fake_client):
    plan = _write_plan(tmp_path / "plan.json")
    out = tmp_path / "report.json"
    assert _run(["validate", str(plan), "--json", "--out", str(out)]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed == {
        "ok": True,
        "errors": [],
        "warnings": [],
        "corrections": ["steps[1].args[1]: return_index_string_to_int"],
    }
    assert json.loads(out.read_text()) == printed
    assert fake_client.closed


def test_validate_warnings_do_not_fail(tmp_path, capsys, fake_client):
    plan = _write_plan(tmp_path / "plan.json", deposit_ref=False)
    assert _run(["validate", str(plan), "--json"]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert [w["code"] for w in printed["warnings"]] == ["UNCONSUMED_RESOURCE"]


def test_validate_hard_errors_exit_1(tmp_path, capsys, monkeypatch):
    monkeypatch.setattr(cli, "_make_client", lambda settings: ClosableFetcher(functions={}))
    plan = _write_plan(tmp_path / "plan.json")
    assert _run(["validate", str(plan), "--json"]) == 1
    printed = json.loads(capsys.readouterr().out)
    assert not printed["ok"]
    assert {e["code"] for e in printed["errors"]} == {"FUNCTION_NOT_FOUND_ERROR"}


def test_validate_bad_plan_exits_2(tmp_path, fake_client):
    bad = tmp_path / "plan.json"
    bad.write_text(json.dumps({"steps": [{"label": "a", "function": "nope", "args": []}]}))
    assert _run(["validate", str(bad)]) == 2
    assert _run(["validate", str(tmp_path / "missing.json")]) == 2


def test_analyze_json(tmp_path, capsys):
    plan = _write_plan(tmp_path / "plan.json")
    outcome = tmp_path / "outcome.json"
    outcome.write_text(json.dumps(simulate_response(gas_used=1000, changes=[store_write(OWNER, USDC, 42)])))
    assert _run(["analyze", str(outcome), "--owner", OWNER, "--plan", str(plan), "--json"]) == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed["analysis"]["balances"] == {USDC.metadata: 42}
    assert printed["balanceChanges"][0]["token"] == "USDC"
    assert printed["gasCostApt"] == pytest.approx(0.001)
    assert printed["diagnoses"] == []


def test_analyze_bad_owner_exits_2(tmp_path, capsys):
    plan = _write_plan(tmp_path / "plan.json")
    outcome = tmp_path / "outcome.json"
    outcome.write_text(json.dumps(simulate_response(changes=[store_write(OWNER, USDC, 42)])))
    assert _run(["analyze", str(outcome), "--owner", "not-an-address", "--plan", str(plan)]) == 2
    assert "Invalid account address" in capsys.readouterr().out


def test_analyze_failed_outcome_table(tmp_path, capsys):
    outcome = tmp_path / "outcome.json"
    outcome.write_text(json.dumps(simulate_response(success=False, vm_status="OUT_OF_GAS")))
    assert _run(["analyze", str(outcome), "--owner", OWNER, "--vault-protocol", "0xc0ffee"]) == 1
    out = capsys.readouterr().out
    assert "OUT_OF_GAS" in out
    assert "Vault: not touched" in out


def test_diagnose_json(capsys):
    assert _run(["diagnose", "Move abort: 0x10004 at 0xabc::lending", "--step", "repay", "--json"]) == 0
    (d,) = json.loads(capsys.readouterr().out)
    assert d["code"] == "LENDING_ERROR"
    assert d["stepLabel"] == "repay"
    assert d["abortCode"] == 65540


def test_diagnose_success_prints_nothing_to_fix(capsys):
    assert _run(["diagnose", "Executed successfully"]) == 0
    assert "No errors diagnosed." in capsys.readouterr().out
