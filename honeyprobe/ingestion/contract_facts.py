"""Contract facts: structural classification of a parsed Solidity source.

The injector and the synthesizer never look at solc output directly; they
consume a ContractFacts record produced once per source file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from honeyprobe.core.ast_analyzer import (
    ASTAnalysisResult,
    ContractDef,
    ElementaryType,
    MappingType,
    SolidityASTAnalyzer,
    VarMutability,
    Visibility,
    iter_functions,
)
from honeyprobe.core.errors import ParseError
from honeyprobe.ingestion.solidity_compiler import SolidityCompiler

logger = logging.getLogger(__name__)

ERC20_SURFACE = frozenset({"totalSupply", "balanceOf", "transfer"})
OWNABLE_SURFACE = frozenset({"owner", "transferOwnership"})


@dataclass(frozen=True)
class ContractFacts:
    """Facts about the entry contract of one source file."""
    entry_contract: ContractDef
    is_token_contract: bool = False
    is_ownable_contract: bool = False
    has_balance_variable: bool = False
    internal_functions: frozenset[str] = field(default_factory=frozenset)
    ast: ASTAnalysisResult | None = field(default=None, compare=False, repr=False)

    @property
    def contract_name(self) -> str:
        return self.entry_contract.name

    @property
    def is_applicable(self) -> bool:
        return self.is_token_contract or self.is_ownable_contract


class ContractFactsProvider(Protocol):
    """Anything that can turn source text into ContractFacts."""

    def parse(self, source_code: str) -> ContractFacts: ...


def _is_balance_mapping(type_name: object) -> bool:
    return (
        isinstance(type_name, MappingType)
        and isinstance(type_name.key, ElementaryType)
        and type_name.key.name == "address"
        and isinstance(type_name.value, ElementaryType)
        and type_name.value.name.startswith("uint")
    )


def facts_from_ast(result: ASTAnalysisResult) -> ContractFacts:
    """Classify the entry contract of an analysed source unit.

    Raises ParseError if the source unit has no deployable contract.
    """
    entry = result.main_contract
    if entry is None:
        raise ParseError(f"No entry contract found in {result.file_name or 'source'}")

    chain = result.linearized(entry)

    callable_names: set[str] = set()
    internal: set[str] = set()
    for func in iter_functions(result, entry):
        if not func.name:
            continue
        if func.is_internal:
            internal.add(func.name)
        else:
            callable_names.add(func.name)

    has_balance = False
    for contract in chain:
        for var in contract.state_variables:
            if var.visibility == Visibility.PUBLIC:
                callable_names.add(var.name)
            if var.mutability == VarMutability.MUTABLE and _is_balance_mapping(var.type_name):
                has_balance = True

    facts = ContractFacts(
        entry_contract=entry,
        is_token_contract=ERC20_SURFACE <= callable_names,
        is_ownable_contract=OWNABLE_SURFACE <= callable_names,
        has_balance_variable=has_balance,
        internal_functions=frozenset(internal),
        ast=result,
    )
    logger.debug(
        "Facts for %s: token=%s ownable=%s balance=%s internal=%d",
        entry.name, facts.is_token_contract, facts.is_ownable_contract,
        facts.has_balance_variable, len(facts.internal_functions),
    )
    return facts


class SolcFactsProvider:
    """ContractFactsProvider backed by solc (py-solc-x)."""

    def __init__(
        self,
        compiler: SolidityCompiler | None = None,
        filename: str = "Contract.sol",
    ) -> None:
        self.compiler = compiler or SolidityCompiler()
        self.filename = filename

    def parse(self, source_code: str) -> ContractFacts:
        compilation = self.compiler.compile_source(source_code, filename=self.filename)
        if not compilation.success:
            raise ParseError(
                "solc could not parse source: " + "; ".join(compilation.errors[:3])
            )

        ast = compilation.ast_for(self.filename)
        result = SolidityASTAnalyzer(source_code).analyze(ast, file_name=self.filename)
        return facts_from_ast(result)
