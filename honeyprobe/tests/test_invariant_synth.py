"""Tests for invariant suite synthesis."""

from __future__ import annotations

from dataclasses import replace

import pytest

from honeyprobe.core.types import Scenario
from honeyprobe.fuzzer.invariant_synth import (
    SUITES,
    InvariantTestSynthesizer,
    scenario_for_suite,
)

TOKEN_ORDER = [
    Scenario.HONEYPOT,
    Scenario.HIDDEN_MINT,
    Scenario.HIDDEN_TRANSFER,
    Scenario.HIDDEN_FEE_MODIFIER,
    Scenario.HIDDEN_TRANSFER_REVERT,
]


@pytest.fixture
def synth() -> InvariantTestSynthesizer:
    return InvariantTestSynthesizer()


def _by_scenario(modules):
    return {m.scenario: m for m in modules}


class TestActivation:
    def test_token_only(self, synth, token_facts):
        assert synth.scenarios_for(token_facts) == TOKEN_ORDER

    def test_token_and_ownable(self, synth, owned_token_facts):
        assert synth.scenarios_for(owned_token_facts) == TOKEN_ORDER + [
            Scenario.FAKE_OWNERSHIP_RENUNCIATION,
        ]

    def test_ownable_only(self, synth, owned_token_facts):
        facts = replace(owned_token_facts, is_token_contract=False)
        assert synth.scenarios_for(facts) == [Scenario.FAKE_OWNERSHIP_RENUNCIATION]

    def test_neither(self, synth, plain_facts):
        assert synth.synthesize(plain_facts, []) == []
        assert synth.render([]) == ""


class TestSuiteNames:
    def test_contract_and_invariant_names(self, synth, owned_token_facts):
        modules = synth.synthesize(owned_token_facts, [])
        assert [m.contract_name for m in modules] == [
            "DynamicHoneypotTest",
            "DynamicHiddenMintsTest",
            "DynamicHiddenTransfersTest",
            "DynamicHiddenFeeModifiersTest",
            "DynamicHiddenTransferRevertsTest",
            "DynamicFakeOwnershipRenunciationTest",
        ]
        assert [m.invariant_name for m in modules] == [
            "invariant_transfer",
            "invariant_totalsupply",
            "invariant_balances",
            "invariant_fee",
            "invariant_transfer_without_revert",
            "invariant_ownership",
        ]

    @pytest.mark.parametrize("scenario", list(Scenario))
    def test_suite_name_round_trip(self, scenario):
        name = SUITES[scenario][0]
        assert scenario_for_suite(name) == scenario
        assert scenario_for_suite(f"test/test.sol:{name}") == scenario

    def test_unknown_suite(self):
        assert scenario_for_suite("test/test.sol:SomethingElse") is None


class TestSharedSetup:
    def test_deploy_with_arguments(self, synth, owned_token_facts):
        args = ["1000", "0xABcdEFABcdEFabcdEfAbCdefabcdeFABcDEFabCD"]
        for module in synth.synthesize(owned_token_facts, args):
            assert module.setup[0].name == "deploy"
            assert module.setup[0].lines == (f"target = new OwnedToken({', '.join(args)});",)

    def test_deploy_without_arguments(self, synth, token_facts):
        module = synth.synthesize(token_facts, [])[0]
        assert module.setup[0].lines == ("target = new Token();",)

    def test_prelude_precedes_deploy(self, synth, owned_token_facts):
        prelude = ["uint256[] memory ctorArg0 = new uint256[](1);", "ctorArg0[0] = 7;"]
        for module in synth.synthesize(owned_token_facts, ["ctorArg0"], prelude):
            assert module.setup[0].lines == (*prelude, "target = new OwnedToken(ctorArg0);")

    def test_seed_balance_when_balance_variable(self, synth, token_facts):
        modules = _by_scenario(synth.synthesize(token_facts, []))
        honeypot = modules[Scenario.HONEYPOT]
        assert "seed_balance" in honeypot.fragment_names()
        assert "deal(address(target), address(this), 1e20);" in honeypot.render()

    def test_no_seed_without_balance_variable(self, synth, token_facts):
        facts = replace(token_facts, has_balance_variable=False)
        for module in synth.synthesize(facts, []):
            assert "seed_balance" not in module.fragment_names()

    def test_ownership_neutralized_only_when_ownable(self, synth, token_facts, owned_token_facts):
        for module in synth.synthesize(token_facts, []):
            assert "neutralize_ownership" not in module.fragment_names()
        for module in synth.synthesize(owned_token_facts, []):
            assert "neutralize_ownership" in module.fragment_names()

    def test_time_skip_last_in_setup(self, synth, owned_token_facts):
        for module in synth.synthesize(owned_token_facts, []):
            assert module.setup[-1].name == "time_skip"
            assert module.setup[-1].lines == ("skip(31536000);",)

    def test_custom_seed_and_skip(self, token_facts):
        synth = InvariantTestSynthesizer(seed_amount="5e18", time_skip_seconds=3600)
        text = synth.render(synth.synthesize(token_facts, []))
        assert "deal(address(target), address(this), 5e18);" in text
        assert "skip(3600);" in text
        assert "skip(31536000);" not in text


class TestSkipHandling:
    @pytest.mark.parametrize("scenario", [s for s in Scenario if s.depends_on_balance])
    def test_balance_dependent_suites_skip(self, synth, owned_token_facts, scenario):
        module = _by_scenario(synth.synthesize(owned_token_facts, []))[scenario]
        names = module.fragment_names()
        assert "check_balance" in names
        assert "mark_skipped" in names
        assert module.invariant[0].name == "skip_guard"
        assert "bool willSkip;" in module.state

        text = module.render()
        assert "willSkip = target.balanceOf(address(this)) == 0;" in text
        assert "if (willSkip) vm.skip(true);" in text
        assert "if (willSkip) return;" in text

    @pytest.mark.parametrize(
        "scenario", [Scenario.HIDDEN_MINT, Scenario.FAKE_OWNERSHIP_RENUNCIATION],
    )
    def test_other_suites_never_skip(self, synth, owned_token_facts, scenario):
        module = _by_scenario(synth.synthesize(owned_token_facts, []))[scenario]
        assert "vm.skip" not in module.render()
        assert "willSkip" not in module.render()


class TestScenarioBodies:
    def test_honeypot(self, synth, token_facts):
        text = _by_scenario(synth.synthesize(token_facts, []))[Scenario.HONEYPOT].render()
        assert "target.transfer(address(0x1), 100000000);" in text
        assert "target.transfer(address(0x2), 100);" in text
        assert "assertGt(balanceAfter, balanceBefore);" in text

    def test_hidden_mint(self, synth, token_facts):
        module = _by_scenario(synth.synthesize(token_facts, []))[Scenario.HIDDEN_MINT]
        text = module.render()
        assert "totalSupply = target.totalSupply();" in text
        assert "targetSender(address(this));" in text
        assert "assertTrue(totalSupply >= target.totalSupply());" in text
        assert "seed_balance" not in module.fragment_names()

    def test_fake_ownership_renunciation(self, synth, owned_token_facts):
        module = _by_scenario(synth.synthesize(owned_token_facts, []))[
            Scenario.FAKE_OWNERSHIP_RENUNCIATION
        ]
        text = module.render()
        assert "target.transferOwnership(address(0x1));" in text
        assert "excludeSender(address(0x1));" in text
        assert "target.owner() == address(0x1) && target.owner() != address(0x0)" in text
        # ownership handover without moving the owner's balance
        assert "target.balanceOf(target.owner())" not in text

    def test_hidden_transfer(self, synth, token_facts):
        text = _by_scenario(synth.synthesize(token_facts, []))[Scenario.HIDDEN_TRANSFER].render()
        assert "balance = target.balanceOf(address(0x1));" in text
        assert "excludeSender(address(0x1));" in text
        assert "assertTrue(target.balanceOf(address(0x1)) >= balance);" in text

    def test_hidden_fee_modifier(self, synth, owned_token_facts):
        text = _by_scenario(synth.synthesize(owned_token_facts, []))[
            Scenario.HIDDEN_FEE_MODIFIER
        ].render()
        assert "target.transfer(address(0x1), 1e6);" in text
        assert "fee = 1e5 - (balanceAfter - balanceBefore);" in text
        assert "try target.transfer(address(0x2), 1e5) returns (bool success) {" in text
        assert "assertEq(fee, currentFee);" in text
        # a reverting owner balance move must not abort setUp
        assert "returns (bool) {} catch {}" in text

    def test_hidden_transfer_revert(self, synth, token_facts):
        text = _by_scenario(synth.synthesize(token_facts, []))[
            Scenario.HIDDEN_TRANSFER_REVERT
        ].render()
        assert "uint256 selfBalance = target.balanceOf(address(0x1));" in text
        assert "target.transfer(address(0x2), selfBalance);" in text


class TestRender:
    def test_module_layout(self, synth, token_facts):
        module = synth.synthesize(token_facts, [])[0]
        lines = module.render().split("\n")
        assert lines[0] == "contract DynamicHoneypotTest is Test {"
        assert lines[1] == "    Token target;"
        assert "    function setUp() public {" in lines
        assert "    function invariant_transfer() external {" in lines
        assert lines[-2] == "}"
        assert lines[-1] == ""

    def test_render_is_deterministic(self, synth, owned_token_facts):
        first = synth.render(synth.synthesize(owned_token_facts, ["1"]))
        second = synth.render(synth.synthesize(owned_token_facts, ["1"]))
        assert first == second

    def test_render_concatenates_modules(self, synth, token_facts):
        modules = synth.synthesize(token_facts, [])
        text = synth.render(modules)
        assert text.count(" is Test {") == len(modules)
        assert text.startswith("\ncontract DynamicHoneypotTest is Test {")

    def test_braces_balanced(self, synth, owned_token_facts):
        text = synth.render(synth.synthesize(owned_token_facts, []))
        assert text.count("{") == text.count("}")
