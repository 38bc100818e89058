"""Solidity AST analysis: typed extraction from solc compact JSON ASTs.

Converts the JSON AST produced by solc (via py-solc-x) into a small tree of
typed, immutable nodes:
  - Contracts with their linearized inheritance chain
  - Function definitions with parameters, visibility and kind
  - State variables with fully typed type names
  - Type names (elementary, array, mapping, user-defined)

Every node carries a SourceLocation whose line/column pair follows the
1-indexed line / 0-indexed column convention used for text injection.
"""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Union


# ── Data Models ──────────────────────────────────────────────────────────────


class Visibility(str, Enum):
    PUBLIC = "public"
    EXTERNAL = "external"
    INTERNAL = "internal"
    PRIVATE = "private"


class StateMutability(str, Enum):
    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"


class VarMutability(str, Enum):
    MUTABLE = "mutable"
    IMMUTABLE = "immutable"
    CONSTANT = "constant"


class LineIndex:
    """Maps solc byte offsets to (line, column) character positions."""

    def __init__(self, source_code: str) -> None:
        self._data = source_code.encode("utf-8")
        self._line_starts = [0]
        self._line_starts.extend(i + 1 for i, b in enumerate(self._data) if b == 0x0A)

    def position(self, offset: int) -> tuple[int, int]:
        offset = max(0, min(offset, len(self._data)))
        idx = bisect_right(self._line_starts, offset) - 1
        start = self._line_starts[idx]
        column = len(self._data[start:offset].decode("utf-8", errors="replace"))
        return idx + 1, column


@dataclass(frozen=True)
class SourceLocation:
    """Location parsed from an AST ``src`` field (offset:length:fileIndex).

    ``line``/``column`` address the first character of the node and
    ``end_line``/``end_column`` its last character, so for a block the end
    position is the closing brace itself.
    """
    offset: int = 0
    length: int = 0
    file_index: int = 0
    line: int = 0
    column: int = 0
    end_line: int = 0
    end_column: int = 0

    @classmethod
    def from_src(cls, src: str, index: LineIndex | None = None) -> SourceLocation:
        parts = src.split(":") if src else []
        if len(parts) < 3:
            return cls()
        offset, length, file_index = int(parts[0]), int(parts[1]), int(parts[2])
        if index is None:
            return cls(offset=offset, length=length, file_index=file_index)
        line, column = index.position(offset)
        end_line, end_column = index.position(offset + max(length - 1, 0))
        return cls(
            offset=offset, length=length, file_index=file_index,
            line=line, column=column, end_line=end_line, end_column=end_column,
        )


# ── Type names ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ElementaryType:
    """Leaf type such as ``uint256``, ``address``, ``bool``, ``bytes32``, ``string``."""
    name: str


@dataclass(frozen=True)
class ArrayType:
    """Array wrapper; ``length`` is None for dynamic arrays.

    ``length_resolved`` is False when the declared length is an expression
    whose value could not be recovered from the AST.
    """
    base: TypeName
    length: int | None = None
    length_resolved: bool = True


@dataclass(frozen=True)
class MappingType:
    key: TypeName
    value: TypeName


@dataclass(frozen=True)
class UserDefinedType:
    """Contract, interface, enum, struct or function type."""
    name: str
    type_string: str = ""


TypeName = Union[ElementaryType, ArrayType, MappingType, UserDefinedType]


# ── Declarations ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Parameter:
    """Function parameter or return value."""
    name: str
    type_name: TypeName
    storage_location: str = ""


@dataclass(frozen=True)
class FunctionDef:
    """Parsed function definition.

    ``name`` is empty for constructors, fallback and receive functions
    declared with their dedicated keyword.
    """
    name: str
    kind: str = "function"
    visibility: Visibility = Visibility.PUBLIC
    state_mutability: StateMutability = StateMutability.NONPAYABLE
    is_constructor: bool = False
    parameters: tuple[Parameter, ...] = ()
    src: SourceLocation = field(default_factory=SourceLocation)
    body_src: SourceLocation | None = None

    @property
    def is_internal(self) -> bool:
        return self.visibility in (Visibility.INTERNAL, Visibility.PRIVATE)


@dataclass(frozen=True)
class StateDef:
    """Parsed state variable definition."""
    name: str
    type_name: TypeName
    visibility: Visibility = Visibility.INTERNAL
    mutability: VarMutability = VarMutability.MUTABLE
    src: SourceLocation = field(default_factory=SourceLocation)


@dataclass(frozen=True)
class ContractDef:
    """Parsed contract, library or interface."""
    id: int
    name: str
    kind: str = "contract"
    is_abstract: bool = False
    functions: tuple[FunctionDef, ...] = ()
    state_variables: tuple[StateDef, ...] = ()
    linearized_base_ids: tuple[int, ...] = ()
    src: SourceLocation = field(default_factory=SourceLocation)

    @property
    def children(self) -> tuple[FunctionDef | StateDef, ...]:
        return self.functions + self.state_variables


AstNode = Union[ContractDef, FunctionDef, StateDef]


@dataclass
class ASTAnalysisResult:
    """Complete AST analysis result for a Solidity file."""
    contracts: list[ContractDef] = field(default_factory=list)
    pragma_version: str = ""
    license: str = ""
    source_code: str = ""
    file_name: str = ""

    @property
    def contracts_by_id(self) -> dict[int, ContractDef]:
        return {c.id: c for c in self.contracts}

    @property
    def main_contract(self) -> ContractDef | None:
        """Return the 'main' contract (last non-library, non-interface)."""
        for c in reversed(self.contracts):
            if c.kind == "contract" and not c.is_abstract:
                return c
        for c in reversed(self.contracts):
            if c.kind == "contract":
                return c
        return None

    def linearized(self, contract: ContractDef) -> list[ContractDef]:
        """The contract followed by its bases, most derived first.

        Bases defined outside this source unit are skipped.
        """
        by_id = self.contracts_by_id
        chain = [by_id[i] for i in contract.linearized_base_ids if i in by_id]
        if not chain or chain[0].id != contract.id:
            chain.insert(0, contract)
        return chain


# ── Tree search ──────────────────────────────────────────────────────────────


def find_constructor(node: AstNode) -> FunctionDef | None:
    """Return the first unnamed function flagged as constructor under ``node``.

    A function merely *named* ``constructor`` (or a legacy constructor named
    after its contract) does not match.
    """
    if isinstance(node, FunctionDef):
        return node if node.is_constructor and not node.name else None
    if isinstance(node, ContractDef):
        for child in node.children:
            found = find_constructor(child)
            if found is not None:
                return found
    return None


def iter_functions(result: ASTAnalysisResult, contract: ContractDef) -> Iterator[FunctionDef]:
    """Yield every function visible in ``contract``, including inherited ones."""
    for c in result.linearized(contract):
        yield from c.functions


# ── AST Visitor / Walker ─────────────────────────────────────────────────────


_ARRAY_LENGTH_RE = re.compile(r"\[(\d+)\](?:\s+[a-z]+)*\s*$")


def _enum_or(enum_cls: type[Enum], value: Any, default: Enum) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        return default


class SolidityASTAnalyzer:
    """Walk a solc compact JSON AST and build typed nodes.

    Supports AST node types from Solidity 0.4.x through 0.8.x.
    """

    def __init__(self, source_code: str = "") -> None:
        self._source = source_code
        self._index = LineIndex(source_code)
        self._type_visitors: dict[str, Callable[[dict], TypeName]] = {
            "ElementaryTypeName": self._visit_elementary,
            "ArrayTypeName": self._visit_array,
            "Mapping": self._visit_mapping,
            "UserDefinedTypeName": self._visit_user_defined,
            "FunctionTypeName": self._visit_function_type,
        }

    def analyze(
        self,
        ast: dict[str, Any],
        source_code: str | None = None,
        file_name: str = "Contract.sol",
    ) -> ASTAnalysisResult:
        """Analyze a complete SourceUnit AST."""
        if source_code is not None:
            self._source = source_code
            self._index = LineIndex(source_code)

        result = ASTAnalysisResult(source_code=self._source, file_name=file_name)

        if not ast or ast.get("nodeType") != "SourceUnit":
            return result

        result.license = ast.get("license") or ""
        result.pragma_version = self._extract_pragma(ast)
        for node in ast.get("nodes", []):
            if node.get("nodeType") == "ContractDefinition":
                result.contracts.append(self._visit_contract(node))

        return result

    # ── Contract visitor ─────────────────────────────────────────────

    def _visit_contract(self, node: dict) -> ContractDef:
        functions: list[FunctionDef] = []
        state_vars: list[StateDef] = []

        for child in node.get("nodes", []):
            nt = child.get("nodeType", "")
            if nt == "FunctionDefinition":
                functions.append(self._visit_function(child))
            elif nt == "VariableDeclaration":
                state_vars.append(self._visit_state_variable(child))

        return ContractDef(
            id=int(node.get("id", -1)),
            name=node.get("name", ""),
            kind=node.get("contractKind", "contract"),
            is_abstract=bool(node.get("abstract", False)),
            functions=tuple(functions),
            state_variables=tuple(state_vars),
            linearized_base_ids=tuple(int(b) for b in node.get("linearizedBaseContracts", [])),
            src=self._loc(node),
        )

    # ── Function visitor ─────────────────────────────────────────────

    def _visit_function(self, node: dict) -> FunctionDef:
        # 0.4.22+ uses kind; older compilers only set isConstructor
        kind = node.get("kind") or ("constructor" if node.get("isConstructor") else "function")
        body = node.get("body")

        return FunctionDef(
            name=node.get("name", "") or "",
            kind=kind,
            visibility=_enum_or(Visibility, node.get("visibility"), Visibility.PUBLIC),
            state_mutability=_enum_or(
                StateMutability, node.get("stateMutability"), StateMutability.NONPAYABLE,
            ),
            is_constructor=kind == "constructor" or bool(node.get("isConstructor")),
            parameters=self._visit_parameters(node.get("parameters")),
            src=self._loc(node),
            body_src=self._loc(body) if body else None,
        )

    def _visit_parameters(self, node: dict | None) -> tuple[Parameter, ...]:
        if not node:
            return ()
        return tuple(
            Parameter(
                name=p.get("name", ""),
                type_name=self.visit_type(p.get("typeName")),
                storage_location=p.get("storageLocation", ""),
            )
            for p in node.get("parameters", [])
        )

    # ── State variable visitor ───────────────────────────────────────

    def _visit_state_variable(self, node: dict) -> StateDef:
        mutability = VarMutability.MUTABLE
        if node.get("constant"):
            mutability = VarMutability.CONSTANT
        elif node.get("mutability") == "immutable":
            mutability = VarMutability.IMMUTABLE

        return StateDef(
            name=node.get("name", ""),
            type_name=self.visit_type(node.get("typeName")),
            visibility=_enum_or(Visibility, node.get("visibility"), Visibility.INTERNAL),
            mutability=mutability,
            src=self._loc(node),
        )

    # ── Type visitors ────────────────────────────────────────────────

    def visit_type(self, node: dict | None) -> TypeName:
        """Convert a TypeName AST node into a typed TypeName."""
        if not node:
            return UserDefinedType(name="")
        visitor = self._type_visitors.get(node.get("nodeType", ""))
        if visitor is None:
            return UserDefinedType(name="", type_string=self._type_string(node))
        return visitor(node)

    def _visit_elementary(self, node: dict) -> TypeName:
        name = node.get("name", "")
        if name == "address" and node.get("stateMutability") == "payable":
            name = "address payable"
        return ElementaryType(name=name)

    def _visit_array(self, node: dict) -> TypeName:
        base = self.visit_type(node.get("baseType"))
        length_node = node.get("length")
        if not length_node:
            return ArrayType(base=base)

        if length_node.get("nodeType") == "Literal":
            try:
                return ArrayType(base=base, length=int(str(length_node.get("value")), 0))
            except ValueError:
                pass

        # Constant expressions: fall back to the type string solc resolved
        match = _ARRAY_LENGTH_RE.search(self._type_string(node))
        if match:
            return ArrayType(base=base, length=int(match.group(1)))
        return ArrayType(base=base, length=None, length_resolved=False)

    def _visit_mapping(self, node: dict) -> TypeName:
        return MappingType(
            key=self.visit_type(node.get("keyType")),
            value=self.visit_type(node.get("valueType")),
        )

    def _visit_user_defined(self, node: dict) -> TypeName:
        path = node.get("pathNode")
        name = path.get("name", "") if isinstance(path, dict) else node.get("name", "")
        return UserDefinedType(name=name or "", type_string=self._type_string(node))

    def _visit_function_type(self, node: dict) -> TypeName:
        return UserDefinedType(name="function", type_string=self._type_string(node))

    # ── Helpers ──────────────────────────────────────────────────────

    def _loc(self, node: dict) -> SourceLocation:
        return SourceLocation.from_src(node.get("src", ""), self._index)

    @staticmethod
    def _type_string(node: dict) -> str:
        return (node.get("typeDescriptions") or {}).get("typeString") or ""

    @staticmethod
    def _extract_pragma(ast: dict) -> str:
        for node in ast.get("nodes", []):
            if node.get("nodeType") == "PragmaDirective":
                literals = node.get("literals", [])
                if literals and literals[0] == "solidity":
                    return "".join(literals[1:])
        return ""


# ── Convenience functions ────────────────────────────────────────────────────


def analyze_ast(
    ast: dict[str, Any],
    source_code: str = "",
    file_name: str = "Contract.sol",
) -> ASTAnalysisResult:
    """Convenience function to analyze a Solidity AST."""
    analyzer = SolidityASTAnalyzer(source_code)
    return analyzer.analyze(ast, source_code, file_name)
