"""Tests for contract facts extraction and the solc-backed provider."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from honeyprobe.core.ast_analyzer import analyze_ast
from honeyprobe.core.errors import ParseError
from honeyprobe.ingestion.contract_facts import SolcFactsProvider, facts_from_ast
from honeyprobe.ingestion.solidity_compiler import CompilationResult
from honeyprobe.tests.conftest import (
    TOKEN_SOURCE,
    balance_mapping,
    contract,
    elementary,
    erc20_surface,
    function,
    mapping,
    ownable_surface,
    source_unit,
    state_var,
    token_ast,
)


class TestFactsFromAST:
    def test_token_without_constructor(self, token_facts):
        assert token_facts.contract_name == "Token"
        assert token_facts.is_token_contract
        assert not token_facts.is_ownable_contract
        assert token_facts.has_balance_variable
        assert "_mint" in token_facts.internal_functions
        assert token_facts.is_applicable

    def test_owned_token(self, owned_token_facts):
        assert owned_token_facts.is_token_contract
        assert owned_token_facts.is_ownable_contract
        assert "_mint" not in owned_token_facts.internal_functions

    def test_plain_contract_not_applicable(self, plain_facts):
        assert not plain_facts.is_token_contract
        assert not plain_facts.is_ownable_contract
        assert not plain_facts.has_balance_variable
        assert not plain_facts.is_applicable

    def test_inherited_surface(self):
        ast = source_unit(
            contract(1, "ERC20", erc20_surface()),
            contract(2, "Ownable", ownable_surface()),
            contract(3, "Meme", [function("launch")], bases=[3, 2, 1]),
        )
        facts = facts_from_ast(analyze_ast(ast))
        assert facts.contract_name == "Meme"
        assert facts.is_token_contract
        assert facts.is_ownable_contract
        assert facts.has_balance_variable
        assert facts.internal_functions == frozenset({"_mint"})

    def test_private_functions_are_internal(self):
        ast = source_unit(contract(1, "C", [function("_hidden", visibility="private")]))
        assert "_hidden" in facts_from_ast(analyze_ast(ast)).internal_functions

    def test_partial_erc20_surface(self):
        ast = source_unit(contract(1, "C", [
            state_var("totalSupply", elementary("uint256"), visibility="public"),
            function("transfer"),
        ]))
        assert not facts_from_ast(analyze_ast(ast)).is_token_contract

    def test_internal_state_does_not_count_as_callable(self):
        ast = source_unit(contract(1, "C", [
            state_var("balanceOf", balance_mapping()),
            state_var("totalSupply", elementary("uint256")),
            function("transfer"),
        ]))
        facts = facts_from_ast(analyze_ast(ast))
        assert not facts.is_token_contract
        assert facts.has_balance_variable

    @pytest.mark.parametrize(
        "type_node",
        [
            mapping(elementary("address"), elementary("bool")),
            mapping(elementary("uint256"), elementary("uint256")),
            elementary("uint256"),
        ],
    )
    def test_non_balance_variables(self, type_node):
        ast = source_unit(contract(1, "C", [state_var("x", type_node)]))
        assert not facts_from_ast(analyze_ast(ast)).has_balance_variable

    def test_constant_mapping_is_not_a_balance(self):
        ast = source_unit(contract(1, "C", [state_var("x", balance_mapping(), constant=True)]))
        assert not facts_from_ast(analyze_ast(ast)).has_balance_variable

    def test_no_entry_contract(self):
        ast = source_unit(contract(1, "IERC20", [], kind="interface"))
        with pytest.raises(ParseError):
            facts_from_ast(analyze_ast(ast))


class TestSolcFactsProvider:
    def test_parse_uses_compiler_ast(self):
        compiler = MagicMock()
        compiler.compile_source.return_value = CompilationResult(
            success=True, sources_ast={"Contract.sol": token_ast()},
        )
        facts = SolcFactsProvider(compiler).parse(TOKEN_SOURCE)

        compiler.compile_source.assert_called_once_with(TOKEN_SOURCE, filename="Contract.sol")
        assert facts.contract_name == "Token"
        assert facts.ast is not None

    def test_compile_failure_is_parse_error(self):
        compiler = MagicMock()
        compiler.compile_source.return_value = CompilationResult(
            success=False, errors=["ParserError: Expected ';'"],
        )
        with pytest.raises(ParseError, match="Expected"):
            SolcFactsProvider(compiler).parse("contract {")
