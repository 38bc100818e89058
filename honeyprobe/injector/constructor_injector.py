"""Constructor injection: splice test boilerplate into unknown contract source.

The injector finds the entry contract's constructor (or the end of the
contract body when there is none) and inserts, as a pure text operation:

  - a full ``constructor() public { ... }`` when the contract has none
  - a ``_mint(msg.sender, <seed>)`` top-up when the contract is a token
    that can legitimately mint

It then makes sure the ABI encoder v2 pragma is present, appends the
forge-std import used by the synthesized suites, and runs the result through
the deterministic formatter.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from honeyprobe.core.ast_analyzer import SourceLocation, find_constructor
from honeyprobe.core.errors import ParseError
from honeyprobe.ingestion.contract_facts import ContractFacts, ContractFactsProvider
from honeyprobe.ingestion.formatter import SourceFormatter

logger = logging.getLogger(__name__)

ABI_ENCODER_PRAGMA = "pragma experimental ABIEncoderV2;"
TEST_FRAMEWORK_IMPORT = 'import "forge-std/Test.sol";'
MINT_FUNCTION = "_mint"
DEFAULT_SEED_AMOUNT = "1e20"

_ABI_ENCODER_RE = re.compile(
    r"pragma\s+experimental\s+ABIEncoderV2\s*;|pragma\s+abicoder\s+v2\s*;"
)


@dataclass(frozen=True)
class InjectionPoint:
    """Insert immediately before the character at (line, column).

    Lines are 1-indexed, columns 0-indexed.
    """
    line: int
    column: int

    @classmethod
    def at_end_of(cls, src: SourceLocation) -> InjectionPoint:
        if src.end_line < 1:
            raise ParseError("AST node has no source location")
        return cls(line=src.end_line, column=src.end_column)


@dataclass(frozen=True)
class InjectionPlan:
    point: InjectionPoint
    code: str
    adds_constructor: bool


def seed_call(facts: ContractFacts, amount: str = DEFAULT_SEED_AMOUNT) -> str:
    """Mint top-up for the deployer, or "" when the contract cannot mint."""
    if facts.is_token_contract and MINT_FUNCTION in facts.internal_functions:
        return f"{MINT_FUNCTION}(msg.sender, {amount}); "
    return ""


def plan_injection(facts: ContractFacts, seed_amount: str = DEFAULT_SEED_AMOUNT) -> InjectionPlan:
    """Work out where to inject and what."""
    contract = facts.entry_contract
    constructor = find_constructor(contract)
    seed = seed_call(facts, seed_amount)

    if constructor is None:
        return InjectionPlan(
            point=InjectionPoint.at_end_of(contract.src),
            code="\nconstructor() public { " + seed + "}",
            adds_constructor=True,
        )

    body = constructor.body_src or constructor.src
    return InjectionPlan(
        point=InjectionPoint.at_end_of(body),
        code="\n" + seed,
        adds_constructor=False,
    )


def splice(source_code: str, point: InjectionPoint, code: str) -> str:
    """Insert ``code`` before ``point``; every other line is left untouched."""
    lines = source_code.split("\n")
    idx = point.line - 1
    if not 0 <= idx < len(lines) or not 0 <= point.column <= len(lines[idx]):
        raise ParseError(
            f"Injection point {point.line}:{point.column} is outside the source"
        )

    target = lines[idx]
    spliced = target[:point.column] + code + target[point.column:]
    return "\n".join(lines[:idx] + [spliced] + lines[idx + 1:])


def ensure_abi_encoder_pragma(source_code: str) -> str:
    """Append the ABI encoder v2 pragma unless an equivalent one is present."""
    if _ABI_ENCODER_RE.search(source_code):
        return source_code
    return source_code + f"\n{ABI_ENCODER_PRAGMA}\n"


def append_test_import(source_code: str) -> str:
    return source_code + f"\n{TEST_FRAMEWORK_IMPORT}\n"


class ConstructorInjector:
    """Injects constructor boilerplate into a contract's source text."""

    def __init__(
        self,
        formatter: SourceFormatter,
        facts_provider: ContractFactsProvider | None = None,
        seed_amount: str = DEFAULT_SEED_AMOUNT,
    ) -> None:
        self.formatter = formatter
        self.facts_provider = facts_provider
        self.seed_amount = seed_amount

    def inject(self, source_code: str, facts: ContractFacts) -> str:
        """Inject into ``source_code``, whose AST ``facts`` were derived from.

        Raises ParseError when there is no usable entry contract.
        """
        plan = plan_injection(facts, self.seed_amount)
        logger.debug(
            "Injecting into %s at %d:%d (new constructor: %s)",
            facts.contract_name, plan.point.line, plan.point.column, plan.adds_constructor,
        )

        injected = splice(source_code, plan.point, plan.code)
        injected = ensure_abi_encoder_pragma(injected)
        injected = append_test_import(injected)
        return self.formatter.format(injected)

    def inject_source(self, source_code: str) -> tuple[str, ContractFacts]:
        """Format, parse and inject raw source text in one step.

        Returns the injected source together with the facts of the
        formatted original.
        """
        if self.facts_provider is None:
            raise ValueError("inject_source requires a facts provider")

        formatted = self.formatter.format(source_code)
        facts = self.facts_provider.parse(formatted)
        return self.inject(formatted, facts), facts
