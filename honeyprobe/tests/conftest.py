"""Shared fixtures for the honeyprobe test suite.

solc is not invoked in tests: sources come with hand-built compact JSON ASTs
whose ``src`` offsets are computed from the source text itself.
"""

from __future__ import annotations

from typing import Any, Callable

import pytest

from honeyprobe.core.ast_analyzer import analyze_ast
from honeyprobe.core.config import Settings
from honeyprobe.ingestion.contract_facts import ContractFacts, facts_from_ast


# ── AST builders ─────────────────────────────────────────────────────────────


def src(start: int, end: int) -> str:
    return f"{start}:{end - start}:0"


def elementary(name: str) -> dict[str, Any]:
    return {
        "nodeType": "ElementaryTypeName",
        "name": name,
        "typeDescriptions": {"typeString": name},
    }


def mapping(key: dict, value: dict) -> dict[str, Any]:
    return {"nodeType": "Mapping", "keyType": key, "valueType": value}


def array(base: dict, length: int | None = None, type_string: str = "") -> dict[str, Any]:
    return {
        "nodeType": "ArrayTypeName",
        "baseType": base,
        "length": None if length is None else {"nodeType": "Literal", "value": str(length)},
        "typeDescriptions": {"typeString": type_string},
    }


def user_defined(name: str, type_string: str) -> dict[str, Any]:
    return {
        "nodeType": "UserDefinedTypeName",
        "pathNode": {"name": name},
        "typeDescriptions": {"typeString": type_string},
    }


def param(name: str, type_node: dict) -> dict[str, Any]:
    return {
        "nodeType": "VariableDeclaration",
        "name": name,
        "typeName": type_node,
        "storageLocation": "default",
    }


def function(
    name: str,
    params: tuple = (),
    visibility: str = "public",
    kind: str = "function",
    node_src: str = "0:0:0",
    body_src: str | None = None,
) -> dict[str, Any]:
    node: dict[str, Any] = {
        "nodeType": "FunctionDefinition",
        "name": name,
        "kind": kind,
        "visibility": visibility,
        "stateMutability": "nonpayable",
        "parameters": {"nodeType": "ParameterList", "parameters": list(params)},
        "src": node_src,
    }
    if body_src is not None:
        node["body"] = {"nodeType": "Block", "src": body_src, "statements": []}
    return node


def state_var(
    name: str,
    type_node: dict,
    visibility: str = "internal",
    constant: bool = False,
    mutability: str = "mutable",
) -> dict[str, Any]:
    return {
        "nodeType": "VariableDeclaration",
        "name": name,
        "typeName": type_node,
        "visibility": visibility,
        "constant": constant,
        "mutability": mutability,
        "stateVariable": True,
        "src": "0:0:0",
    }


def contract(
    node_id: int,
    name: str,
    nodes: list[dict],
    node_src: str = "0:0:0",
    bases: list[int] | None = None,
    kind: str = "contract",
    abstract: bool = False,
) -> dict[str, Any]:
    return {
        "nodeType": "ContractDefinition",
        "id": node_id,
        "name": name,
        "contractKind": kind,
        "abstract": abstract,
        "linearizedBaseContracts": bases if bases is not None else [node_id],
        "nodes": nodes,
        "src": node_src,
    }


def source_unit(*contracts: dict, version: str = "0.8.0") -> dict[str, Any]:
    return {
        "nodeType": "SourceUnit",
        "license": "MIT",
        "nodes": [
            {"nodeType": "PragmaDirective", "literals": ["solidity", "^", version]},
            *contracts,
        ],
    }


def balance_mapping() -> dict[str, Any]:
    return mapping(elementary("address"), elementary("uint256"))


def erc20_surface(mint: bool = True) -> list[dict]:
    nodes = [
        state_var("balanceOf", balance_mapping(), visibility="public"),
        state_var("totalSupply", elementary("uint256"), visibility="public"),
        function(
            "transfer",
            (param("to", elementary("address")), param("amount", elementary("uint256"))),
        ),
    ]
    if mint:
        nodes.append(
            function(
                "_mint",
                (param("to", elementary("address")), param("amount", elementary("uint256"))),
                visibility="internal",
            )
        )
    return nodes


def ownable_surface() -> list[dict]:
    return [
        state_var("owner", elementary("address"), visibility="public"),
        function("transferOwnership", (param("newOwner", elementary("address")),)),
    ]


# ── Sources ──────────────────────────────────────────────────────────────────


TOKEN_SOURCE = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

contract Token {
    mapping(address => uint256) public balanceOf;
    uint256 public totalSupply;

    function transfer(address to, uint256 amount) public returns (bool) {
        balanceOf[msg.sender] -= amount;
        balanceOf[to] += amount;
        return true;
    }

    function _mint(address to, uint256 amount) internal {
        totalSupply += amount;
        balanceOf[to] += amount;
    }
}
"""

OWNED_TOKEN_SOURCE = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

contract OwnedToken {
    address public owner;
    uint256 public totalSupply;
    mapping(address => uint256) public balanceOf;

    constructor(uint256 supply, address admin) {
        owner = admin;
        totalSupply = supply;
        balanceOf[admin] = supply;
    }

    function transfer(address to, uint256 amount) public returns (bool) {
        balanceOf[msg.sender] -= amount;
        balanceOf[to] += amount;
        return true;
    }

    function transferOwnership(address newOwner) public {
        owner = newOwner;
    }
}
"""

PLAIN_SOURCE = """\
pragma solidity ^0.8.0;

contract Counter {
    uint256 count;

    function increment() public {
        count += 1;
    }
}
"""


def token_ast(source: str = TOKEN_SOURCE) -> dict[str, Any]:
    start = source.index("contract Token")
    end = source.rindex("}") + 1
    return source_unit(contract(1, "Token", erc20_surface(), node_src=src(start, end)))


def owned_token_ast(source: str = OWNED_TOKEN_SOURCE) -> dict[str, Any]:
    start = source.index("contract OwnedToken")
    end = source.rindex("}") + 1
    ctor_start = source.index("constructor(")
    body_start = source.index("{", ctor_start)
    body_end = source.index("\n    }", body_start) + len("\n    }")
    ctor = function(
        "",
        (param("supply", elementary("uint256")), param("admin", elementary("address"))),
        kind="constructor",
        node_src=src(ctor_start, body_end),
        body_src=src(body_start, body_end),
    )
    nodes = [
        state_var("owner", elementary("address"), visibility="public"),
        state_var("totalSupply", elementary("uint256"), visibility="public"),
        state_var("balanceOf", balance_mapping(), visibility="public"),
        ctor,
        function(
            "transfer",
            (param("to", elementary("address")), param("amount", elementary("uint256"))),
        ),
        function("transferOwnership", (param("newOwner", elementary("address")),)),
    ]
    return source_unit(contract(1, "OwnedToken", nodes, node_src=src(start, end)))


def plain_ast(source: str = PLAIN_SOURCE) -> dict[str, Any]:
    start = source.index("contract Counter")
    end = source.rindex("}") + 1
    nodes = [
        state_var("count", elementary("uint256")),
        function("increment"),
    ]
    return source_unit(contract(1, "Counter", nodes, node_src=src(start, end)))


def facts_for(source: str, builder: Callable[[str], dict]) -> ContractFacts:
    return facts_from_ast(analyze_ast(builder(source), source))


# ── Test doubles ─────────────────────────────────────────────────────────────


class IdentityFormatter:
    """Formatter that returns its input unchanged and records every call."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def format(self, source_code: str) -> str:
        self.calls.append(source_code)
        return source_code


class StubFactsProvider:
    """Facts provider that builds the AST from a fixed builder."""

    def __init__(self, builder: Callable[[str], dict]) -> None:
        self.builder = builder
        self.parsed: list[str] = []

    def parse(self, source_code: str) -> ContractFacts:
        self.parsed.append(source_code)
        return facts_for(source_code, self.builder)


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(forge_project_dir=str(tmp_path / "forge"), fork_url="http://localhost:8545")


@pytest.fixture
def formatter() -> IdentityFormatter:
    return IdentityFormatter()


@pytest.fixture
def token_facts() -> ContractFacts:
    return facts_for(TOKEN_SOURCE, token_ast)


@pytest.fixture
def owned_token_facts() -> ContractFacts:
    return facts_for(OWNED_TOKEN_SOURCE, owned_token_ast)


@pytest.fixture
def plain_facts() -> ContractFacts:
    return facts_for(PLAIN_SOURCE, plain_ast)
