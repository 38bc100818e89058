"""Solidity compiler integration: source text to solc JSON AST."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import solcx
from solcx.exceptions import SolcError, SolcInstallationError

logger = logging.getLogger(__name__)

_PRAGMA_RE = re.compile(r"pragma\s+solidity\s+[\^~>=<]*\s*(\d+\.\d+\.\d+)")


@dataclass
class CompilationResult:
    """Result of running solc over one source file."""

    success: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sources_ast: dict[str, Any] = field(default_factory=dict)
    solc_version: str = ""

    def ast_for(self, filename: str) -> dict[str, Any]:
        return self.sources_ast.get(filename, {})


class SolidityCompiler:
    """Compile Solidity source code using solc and collect its AST."""

    def __init__(self, version: str | None = None, fallback_version: str = "0.8.28") -> None:
        self.version = version
        self.fallback_version = fallback_version

    def compile_source(
        self,
        source_code: str,
        filename: str = "Contract.sol",
    ) -> CompilationResult:
        """Compile Solidity source code and return its AST.

        Args:
            source_code: Solidity source code string
            filename: Name for the source file

        Returns:
            CompilationResult with the per-file AST
        """
        solc_version = self.version or self._detect_version(source_code) or self.fallback_version

        standard_input = {
            "language": "Solidity",
            "sources": {
                filename: {"content": source_code}
            },
            "settings": {
                "outputSelection": {
                    "*": {
                        "": ["ast"],
                    }
                },
            },
        }

        try:
            self._ensure_installed(solc_version)
        except (SolcInstallationError, OSError) as e:
            logger.warning("solc %s could not be installed: %s", solc_version, e)
            return CompilationResult(
                success=False,
                errors=[f"solc {solc_version} could not be installed: {e}"],
                solc_version=solc_version,
            )

        try:
            output = solcx.compile_standard(
                standard_input,
                solc_version=solc_version,
                allow_paths=".",
            )
        except SolcError as e:
            logger.debug("solc %s rejected %s: %s", solc_version, filename, e)
            return CompilationResult(success=False, errors=[str(e)], solc_version=solc_version)

        result = self._parse_output(output)
        result.solc_version = solc_version
        return result

    @staticmethod
    def _ensure_installed(version: str) -> None:
        installed = {str(v) for v in solcx.get_installed_solc_versions()}
        if version not in installed:
            logger.info("Installing solc %s", version)
            solcx.install_solc(version)

    def _parse_output(self, output: dict[str, Any]) -> CompilationResult:
        """Parse solc standard JSON output into CompilationResult."""
        errors: list[str] = []
        warnings: list[str] = []
        sources_ast: dict[str, Any] = {}

        for error in output.get("errors", []):
            if error.get("severity") == "error":
                errors.append(error.get("formattedMessage", error.get("message", "")))
            else:
                warnings.append(error.get("formattedMessage", error.get("message", "")))

        for source_name, source_data in output.get("sources", {}).items():
            sources_ast[source_name] = source_data.get("ast", {})

        return CompilationResult(
            success=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            sources_ast=sources_ast,
        )

    @staticmethod
    def _detect_version(source_code: str) -> str | None:
        """Detect Solidity compiler version from pragma statement."""
        match = _PRAGMA_RE.search(source_code)
        if match:
            return match.group(1)
        return None
