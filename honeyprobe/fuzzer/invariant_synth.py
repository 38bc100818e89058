"""Invariant suite synthesis: honeypot heuristics as Foundry invariant tests.

Each heuristic becomes one self-contained test contract appended to the
injected source. All suites share the same setup skeleton:

  ┌──────────┐  ┌──────────┐  ┌──────────────┐  ┌──────────┐  ┌───────────┐
  │ deploy   │─►│ seed     │─►│ neutralize   │─►│ scenario │─►│ skip one  │
  │ target   │  │ balance? │  │ ownership?   │  │ setup    │  │ year      │
  └──────────┘  └──────────┘  └──────────────┘  └──────────┘  └───────────┘

followed by a single ``invariant_*`` assertion. Bodies are built from
ordered lists of named fragments; optional fragments are simply left out.

Balance-dependent suites record ``willSkip`` when the harness ends up with no
tokens, mark themselves skipped through ``vm.skip(true)`` and return early from
the invariant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from honeyprobe.core.types import Scenario
from honeyprobe.ingestion.contract_facts import ContractFacts

logger = logging.getLogger(__name__)

HOLDER = "address(0x1)"
RECIPIENT = "address(0x2)"
NEW_OWNER = "address(0x1)"

# Suite contract name and invariant function per scenario
SUITES: dict[Scenario, tuple[str, str]] = {
    Scenario.HONEYPOT: ("DynamicHoneypotTest", "invariant_transfer"),
    Scenario.HIDDEN_MINT: ("DynamicHiddenMintsTest", "invariant_totalsupply"),
    Scenario.HIDDEN_TRANSFER: ("DynamicHiddenTransfersTest", "invariant_balances"),
    Scenario.HIDDEN_FEE_MODIFIER: ("DynamicHiddenFeeModifiersTest", "invariant_fee"),
    Scenario.HIDDEN_TRANSFER_REVERT: (
        "DynamicHiddenTransferRevertsTest", "invariant_transfer_without_revert",
    ),
    Scenario.FAKE_OWNERSHIP_RENUNCIATION: (
        "DynamicFakeOwnershipRenunciationTest", "invariant_ownership",
    ),
}

TOKEN_SCENARIOS = tuple(s for s in Scenario if s.is_token_scenario)
OWNABLE_SCENARIOS = tuple(s for s in Scenario if not s.is_token_scenario)


def scenario_for_suite(suite_name: str) -> Scenario | None:
    """Map a suite contract name (optionally ``path:Name``) back to its scenario."""
    name = suite_name.rsplit(":", 1)[-1]
    for scenario, (contract, _) in SUITES.items():
        if contract == name:
            return scenario
    return None


# ── Fragments ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Fragment:
    """A named run of Solidity statements."""
    name: str
    lines: tuple[str, ...]


def _fragment(name: str, *lines: str) -> Fragment:
    return Fragment(name=name, lines=lines)


def _indent(lines: Sequence[str], depth: int) -> list[str]:
    pad = "    " * depth
    return [pad + line if line else line for line in lines]


def _block(header: str, body: Sequence[str]) -> list[str]:
    return [header + " {", *_indent(body, 1), "}"]


@dataclass
class ScenarioModule:
    """One synthesized test contract."""
    scenario: Scenario
    target_name: str
    state: list[str] = field(default_factory=list)
    setup: list[Fragment] = field(default_factory=list)
    invariant: list[Fragment] = field(default_factory=list)

    @property
    def contract_name(self) -> str:
        return SUITES[self.scenario][0]

    @property
    def invariant_name(self) -> str:
        return SUITES[self.scenario][1]

    def fragment_names(self) -> list[str]:
        return [f.name for f in self.setup] + [f.name for f in self.invariant]

    def render(self) -> str:
        setup_lines = [line for frag in self.setup for line in frag.lines]
        invariant_lines = [line for frag in self.invariant for line in frag.lines]

        body = [f"{self.target_name} target;", *self.state, ""]
        body += _block("function setUp() public", setup_lines)
        body.append("")
        body += _block(f"function {self.invariant_name}() external", invariant_lines)

        return "\n".join(_block(f"contract {self.contract_name} is Test", body)) + "\n"


# ── Synthesizer ──────────────────────────────────────────────────────────────


class InvariantTestSynthesizer:
    """Builds the honeypot invariant suites for one contract."""

    def __init__(
        self,
        seed_amount: str = "1e20",
        time_skip_seconds: int = 60 * 60 * 24 * 365,
    ) -> None:
        self.seed_amount = seed_amount
        self.time_skip_seconds = time_skip_seconds

    def scenarios_for(self, facts: ContractFacts) -> list[Scenario]:
        """Scenarios that apply to a contract, in emission order."""
        scenarios: list[Scenario] = []
        if facts.is_token_contract:
            scenarios.extend(TOKEN_SCENARIOS)
        if facts.is_ownable_contract:
            scenarios.extend(OWNABLE_SCENARIOS)
        return scenarios

    def synthesize(
        self,
        facts: ContractFacts,
        arguments: Sequence[str],
        prelude: Sequence[str] = (),
    ) -> list[ScenarioModule]:
        """Build every applicable suite; empty when the contract is neither
        a token nor ownable.

        ``prelude`` holds statements that must run before the deployment,
        such as the memory arrays some constructor arguments refer to.
        """
        builders = {
            Scenario.HONEYPOT: self._honeypot,
            Scenario.HIDDEN_MINT: self._hidden_mint,
            Scenario.HIDDEN_TRANSFER: self._hidden_transfer,
            Scenario.HIDDEN_FEE_MODIFIER: self._hidden_fee_modifier,
            Scenario.HIDDEN_TRANSFER_REVERT: self._hidden_transfer_revert,
            Scenario.FAKE_OWNERSHIP_RENUNCIATION: self._fake_ownership_renunciation,
        }
        deploy = self._deploy(facts, arguments, prelude)
        modules = [builders[s](facts, deploy) for s in self.scenarios_for(facts)]
        for module in modules:
            if module.scenario.depends_on_balance:
                module.state.append("bool willSkip;")
                module.invariant.insert(0, self._early_return())
        logger.debug(
            "Synthesized %d suites for %s", len(modules), facts.contract_name,
        )
        return modules

    @staticmethod
    def render(modules: Sequence[ScenarioModule]) -> str:
        return "".join("\n" + m.render() for m in modules)

    # ── Shared setup fragments ───────────────────────────────────────

    def _deploy(
        self, facts: ContractFacts, arguments: Sequence[str], prelude: Sequence[str],
    ) -> Fragment:
        return _fragment(
            "deploy", *prelude, f"target = new {facts.contract_name}({', '.join(arguments)});",
        )

    def _seed_balance(self, facts: ContractFacts) -> Fragment | None:
        if not facts.has_balance_variable:
            return None
        return _fragment(
            "seed_balance", f"deal(address(target), address(this), {self.seed_amount});",
        )

    def _neutralize_ownership(
        self, facts: ContractFacts, move_balance: bool = True, tolerate_revert: bool = False,
    ) -> Fragment | None:
        """Hand the owner's tokens and ownership to the harness."""
        if not facts.is_ownable_contract:
            return None

        lines = [
            "address testAddress = address(this);",
            "vm.startPrank(address(target.owner()));",
        ]
        if move_balance:
            transfer = "target.transfer(testAddress, target.balanceOf(target.owner()))"
            if tolerate_revert:
                lines.append(f"try {transfer} returns (bool) {{}} catch {{}}")
            else:
                lines.append(f"{transfer};")
        lines += [
            "target.transferOwnership(testAddress);",
            "vm.stopPrank();",
        ]
        return _fragment("neutralize_ownership", *lines)

    def _fund_holder(self, amount: str, record_balance: bool = False) -> list[Fragment]:
        """Send ``amount`` to the holder when the harness has tokens, else skip."""
        transfer = [f"target.transfer({HOLDER}, {amount});"]
        if record_balance:
            transfer.append(f"balance = target.balanceOf({HOLDER});")
        return [
            _fragment("check_balance", "willSkip = target.balanceOf(address(this)) == 0;"),
            _fragment("fund_holder", *_block("if (!willSkip)", transfer)),
            _fragment("mark_skipped", "if (willSkip) vm.skip(true);"),
        ]

    def _time_skip(self) -> Fragment:
        return _fragment("time_skip", f"skip({self.time_skip_seconds});")

    @staticmethod
    def _target_self() -> Fragment:
        return _fragment("target_sender", "targetSender(address(this));")

    @staticmethod
    def _early_return() -> Fragment:
        return _fragment("skip_guard", "if (willSkip) return;")

    @staticmethod
    def _compact(fragments: Sequence[Fragment | None]) -> list[Fragment]:
        return [f for f in fragments if f is not None]

    # ── Scenarios ────────────────────────────────────────────────────

    def _honeypot(self, facts: ContractFacts, deploy: Fragment) -> ScenarioModule:
        setup = self._compact([
            deploy,
            self._seed_balance(facts),
            self._neutralize_ownership(facts),
            *self._fund_holder("100000000"),
            self._time_skip(),
        ])
        third_party = [
            f"vm.startPrank({HOLDER});",
            f"uint256 balanceBefore = target.balanceOf({RECIPIENT});",
            f"target.transfer({RECIPIENT}, 100);",
            f"uint256 balanceAfter = target.balanceOf({RECIPIENT});",
            "vm.stopPrank();",
            "assertGt(balanceAfter, balanceBefore);",
        ]
        invariant = [
            _fragment(
                "third_party_transfer",
                *_block(f"if (target.balanceOf({HOLDER}) > 0)", third_party),
            ),
        ]
        return ScenarioModule(
            scenario=Scenario.HONEYPOT,
            target_name=facts.contract_name,
            setup=setup,
            invariant=invariant,
        )

    def _hidden_mint(self, facts: ContractFacts, deploy: Fragment) -> ScenarioModule:
        setup = self._compact([
            deploy,
            self._neutralize_ownership(facts),
            _fragment("record_supply", "totalSupply = target.totalSupply();"),
            self._target_self(),
            self._time_skip(),
        ])
        invariant = [
            _fragment("supply_bounded", "assertTrue(totalSupply >= target.totalSupply());"),
        ]
        return ScenarioModule(
            scenario=Scenario.HIDDEN_MINT,
            target_name=facts.contract_name,
            state=["uint256 totalSupply;"],
            setup=setup,
            invariant=invariant,
        )

    def _fake_ownership_renunciation(
        self, facts: ContractFacts, deploy: Fragment,
    ) -> ScenarioModule:
        setup = self._compact([
            deploy,
            self._neutralize_ownership(facts, move_balance=False),
            self._target_self(),
            _fragment(
                "renounce",
                f"target.transferOwnership({NEW_OWNER});",
                f"excludeSender({NEW_OWNER});",
            ),
            self._time_skip(),
        ])
        invariant = [
            _fragment(
                "owner_moved",
                f"assertTrue(target.owner() == {NEW_OWNER} && target.owner() != address(0x0));",
            ),
        ]
        return ScenarioModule(
            scenario=Scenario.FAKE_OWNERSHIP_RENUNCIATION,
            target_name=facts.contract_name,
            setup=setup,
            invariant=invariant,
        )

    def _hidden_transfer(self, facts: ContractFacts, deploy: Fragment) -> ScenarioModule:
        setup = self._compact([
            deploy,
            self._seed_balance(facts),
            self._neutralize_ownership(facts),
            *self._fund_holder("100000000", record_balance=True),
            self._target_self(),
            _fragment("exclude_holder", f"excludeSender({HOLDER});"),
            self._time_skip(),
        ])
        invariant = [
            _fragment("holder_balance_kept", f"assertTrue(target.balanceOf({HOLDER}) >= balance);"),
        ]
        return ScenarioModule(
            scenario=Scenario.HIDDEN_TRANSFER,
            target_name=facts.contract_name,
            state=["uint256 balance;"],
            setup=setup,
            invariant=invariant,
        )

    def _hidden_fee_modifier(
        self, facts: ContractFacts, deploy: Fragment,
    ) -> ScenarioModule:
        measure = [
            f"vm.startPrank({HOLDER});",
            f"uint256 balanceBefore = target.balanceOf({RECIPIENT});",
            f"target.transfer({RECIPIENT}, 1e5);",
            f"uint256 balanceAfter = target.balanceOf({RECIPIENT});",
            "fee = 1e5 - (balanceAfter - balanceBefore);",
            "vm.stopPrank();",
        ]
        setup = self._compact([
            deploy,
            self._seed_balance(facts),
            self._neutralize_ownership(facts, tolerate_revert=True),
            *self._fund_holder("1e6"),
            _fragment("measure_fee", *_block("if (!willSkip)", measure)),
            self._target_self(),
            self._time_skip(),
        ])

        completed = [
            f"uint256 balanceAfter = target.balanceOf({RECIPIENT});",
            *_block(
                "if (success || balanceAfter > balanceBefore)",
                [
                    "uint256 currentFee = 1e5 - (balanceAfter - balanceBefore);",
                    "vm.stopPrank();",
                    "assertEq(fee, currentFee);",
                ],
            ),
        ]
        invariant = [
            _fragment(
                "repeat_transfer",
                f"vm.startPrank({HOLDER});",
                f"uint256 balanceBefore = target.balanceOf({RECIPIENT});",
                *_block(
                    f"try target.transfer({RECIPIENT}, 1e5) returns (bool success)", completed,
                ),
                *_block("catch", ["vm.stopPrank();"]),
            ),
        ]
        return ScenarioModule(
            scenario=Scenario.HIDDEN_FEE_MODIFIER,
            target_name=facts.contract_name,
            state=["uint256 fee;"],
            setup=setup,
            invariant=invariant,
        )

    def _hidden_transfer_revert(
        self, facts: ContractFacts, deploy: Fragment,
    ) -> ScenarioModule:
        setup = self._compact([
            deploy,
            self._seed_balance(facts),
            self._neutralize_ownership(facts, tolerate_revert=True),
            *self._fund_holder("100000000"),
            self._target_self(),
            self._time_skip(),
        ])
        invariant = [
            _fragment(
                "drain_holder",
                f"vm.startPrank({HOLDER});",
                f"uint256 selfBalance = target.balanceOf({HOLDER});",
                f"target.transfer({RECIPIENT}, selfBalance);",
                "vm.stopPrank();",
            ),
        ]
        return ScenarioModule(
            scenario=Scenario.HIDDEN_TRANSFER_REVERT,
            target_name=facts.contract_name,
            setup=setup,
            invariant=invariant,
        )
