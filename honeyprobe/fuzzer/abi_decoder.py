"""Constructor argument recovery.

Rebuilds the ABI signature of a constructor from its typed parameter list,
decodes the raw constructor-argument blob with eth-abi and renders each value
back as a Solidity expression of the declared parameter type, so the
synthesized suites can deploy the target exactly as it was deployed on-chain.

Dynamic arrays have no literal form in Solidity. They are built in memory
variables by the statements carried in ``DecodeResult.statements``, which
must run before the deployment.

Decoding never raises: a blob that does not fit the signature yields a
DecodeResult carrying the error and no arguments, and the caller deploys the
target without arguments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError, ParseError as ABIParseError
from eth_utils import to_checksum_address

from honeyprobe.core.ast_analyzer import (
    ArrayType,
    ElementaryType,
    Parameter,
    TypeName,
    UserDefinedType,
    find_constructor,
)
from honeyprobe.core.errors import DecodeError
from honeyprobe.ingestion.contract_facts import ContractFacts

logger = logging.getLogger(__name__)

# Solidity shorthands that are not valid ABI type strings
_ELEMENTARY_ALIASES = {
    "uint": "uint256",
    "int": "int256",
    "byte": "bytes1",
    "fixed": "fixed128x18",
    "ufixed": "ufixed128x18",
    "address payable": "address",
}

_ARRAY_VARIABLE_PREFIX = "ctorArg"


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding one constructor-argument blob.

    ``ok`` is False when the blob could not be decoded; ``arguments`` is then
    empty and the target must be deployed without arguments.
    """
    arguments: tuple[str, ...] = ()
    signature: tuple[str, ...] = ()
    statements: tuple[str, ...] = ()
    error: DecodeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ── Signature resolution ─────────────────────────────────────────────────────


def _user_type_kind(node: UserDefinedType) -> str:
    return node.type_string.split(" ", 1)[0]


def _leaf_type(node: TypeName) -> str:
    if isinstance(node, ElementaryType):
        return _ELEMENTARY_ALIASES.get(node.name, node.name)

    if isinstance(node, UserDefinedType):
        kind = _user_type_kind(node)
        if kind in ("contract", "interface"):
            return "address"
        if kind == "enum":
            return "uint8"

    raise DecodeError(f"Type {node!r} has no ABI representation")


def resolve_type(type_name: TypeName) -> str:
    """ABI type string for one parameter type.

    Array wrappers are walked outermost first; their bracket groups are
    emitted innermost first, which is the order both Solidity declarations and
    the ABI type grammar use (``uint256[2][3]`` is three arrays of two).
    """
    groups: list[str] = []
    node = type_name
    while isinstance(node, ArrayType):
        if not node.length_resolved:
            raise DecodeError("Array length is not a literal and could not be resolved")
        groups.append("[]" if node.length is None else f"[{node.length}]")
        node = node.base

    return _leaf_type(node) + "".join(reversed(groups))


def resolve_signature(parameters: Sequence[Parameter]) -> list[str]:
    """Ordered ABI type strings for a constructor's parameter list."""
    return [resolve_type(p.type_name) for p in parameters]


def solidity_type(type_name: TypeName) -> str:
    """Solidity spelling of a parameter type, usable from any contract in
    the same file.

    Enums declared inside a contract come out qualified (``Token.Mode``).
    The bracket groups line up with those of ``resolve_type``.
    """
    if isinstance(type_name, ArrayType):
        length = "" if type_name.length is None else str(type_name.length)
        return f"{solidity_type(type_name.base)}[{length}]"
    if isinstance(type_name, UserDefinedType):
        qualified = type_name.type_string.split(" ", 1)
        return qualified[1] if len(qualified) == 2 else type_name.name
    if type_name.name == "address payable":
        return type_name.name
    return _ELEMENTARY_ALIASES.get(type_name.name, type_name.name)


# ── Literal rendering ────────────────────────────────────────────────────────


_SIMPLE_ESCAPES = {'"': '\\"', "\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def quote_string(value: str) -> str:
    """Double-quoted Solidity string literal; non-ASCII goes out as \\xNN bytes."""
    out: list[str] = []
    for ch in value:
        if ch in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[ch])
        elif " " <= ch <= "~":
            out.append(ch)
        else:
            out.extend(f"\\x{b:02x}" for b in ch.encode("utf-8"))
    return '"' + "".join(out) + '"'


def render_literal(value: Any, abi_type: str) -> str:
    """Render a decoded scalar as a Solidity literal of ``abi_type``."""
    if abi_type == "bool":
        return "true" if value else "false"
    if abi_type == "address":
        return to_checksum_address(value)
    if abi_type.startswith(("uint", "int")):
        return str(int(value))
    if abi_type == "string":
        return quote_string(value)
    if abi_type == "bytes":
        return f'hex"{bytes(value).hex()}"'
    if abi_type.startswith("bytes"):
        return "0x" + bytes(value).hex()
    return str(value)


def _element(type_string: str) -> str:
    return type_string[: type_string.rindex("[")]


class ArgumentRenderer:
    """Renders decoded values as Solidity expressions of their declared type.

    Scalars of contract, enum and ``address payable`` types are wrapped in a
    conversion. Static arrays become inline arrays whose first element is
    converted to the element type, so the literal takes the declared element
    type instead of the smallest type fitting the values. Dynamic arrays are
    allocated in memory variables; the statements doing so accumulate in
    ``statements`` and the expression is the variable name.
    """

    def __init__(self) -> None:
        self.statements: list[str] = []
        self._variables = 0

    def render(self, value: Any, abi_type: str, sol_type: str) -> str:
        if abi_type.endswith("[]"):
            return self._dynamic_array(value, _element(abi_type), _element(sol_type))
        if abi_type.endswith("]"):
            return self._static_array(value, _element(abi_type), _element(sol_type))

        literal = render_literal(value, abi_type)
        if sol_type == abi_type:
            return literal
        if sol_type == "address payable":
            return f"payable({literal})"
        return f"{sol_type}({literal})"

    def _static_array(self, values: Sequence[Any], abi_type: str, sol_type: str) -> str:
        items = [self.render(v, abi_type, sol_type) for v in values]
        if items and not abi_type.endswith("]") and sol_type == abi_type:
            items[0] = f"{sol_type}({items[0]})"
        return "[" + ", ".join(items) + "]"

    def _dynamic_array(self, values: Sequence[Any], abi_type: str, sol_type: str) -> str:
        name = f"{_ARRAY_VARIABLE_PREFIX}{self._variables}"
        self._variables += 1

        items = [self.render(v, abi_type, sol_type) for v in values]
        self.statements.append(
            f"{sol_type}[] memory {name} = new {sol_type}[]({len(items)});",
        )
        self.statements.extend(f"{name}[{i}] = {item};" for i, item in enumerate(items))
        return name


# ── Decoding ─────────────────────────────────────────────────────────────────


def _blob_to_bytes(raw_args: str | bytes | None) -> bytes:
    if raw_args is None:
        return b""
    if isinstance(raw_args, bytes):
        return raw_args
    text = raw_args.strip()
    if text[:2].lower() == "0x":
        text = text[2:]
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise DecodeError(f"Constructor arguments are not valid hex: {e}") from e


def decode_constructor_arguments(
    parameters: Sequence[Parameter],
    raw_args: str | bytes | None,
) -> DecodeResult:
    """Decode ``raw_args`` against the constructor ``parameters``.

    Returns a successful empty result when the constructor takes no
    parameters, whatever the blob holds.
    """
    if not parameters:
        return DecodeResult()

    signature: list[str] = []
    renderer = ArgumentRenderer()
    try:
        signature = resolve_signature(parameters)
        declared = [solidity_type(p.type_name) for p in parameters]
        data = _blob_to_bytes(raw_args)
        values = abi_decode(signature, data)
        arguments = tuple(
            renderer.render(v, t, s) for v, t, s in zip(values, signature, declared)
        )
    except DecodeError as e:
        logger.warning("Constructor arguments not decoded: %s", e)
        return DecodeResult(signature=tuple(signature), error=e)
    except (DecodingError, ABIParseError, ValueError, TypeError) as e:
        err = DecodeError(f"Constructor arguments do not match ({', '.join(signature)}): {e}")
        logger.warning("%s", err)
        return DecodeResult(signature=tuple(signature), error=err)

    if len(arguments) != len(parameters):
        err = DecodeError(f"Decoded {len(arguments)} values for {len(parameters)} parameters")
        return DecodeResult(signature=tuple(signature), error=err)

    return DecodeResult(
        arguments=arguments,
        signature=tuple(signature),
        statements=tuple(renderer.statements),
    )


class ArgumentDecoder:
    """Decodes constructor arguments for the entry contract of a source."""

    def decode(self, facts: ContractFacts, raw_args: str | bytes | None) -> DecodeResult:
        constructor = find_constructor(facts.entry_contract)
        if constructor is None:
            return DecodeResult()
        return decode_constructor_arguments(constructor.parameters, raw_args)
