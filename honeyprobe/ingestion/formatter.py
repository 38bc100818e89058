"""Deterministic Solidity formatting via `forge fmt`."""

from __future__ import annotations

import logging
import subprocess
from typing import Protocol

from honeyprobe.core.errors import ErrorCode, FormatError

logger = logging.getLogger(__name__)


class SourceFormatter(Protocol):
    """Formats Solidity source text deterministically."""

    def format(self, source_code: str) -> str: ...


class ForgeFormatter:
    """Pipes source through ``forge fmt --raw -``.

    Formatting fails loudly: a formatter that cannot parse the text means the
    text is not valid Solidity.
    """

    def __init__(self, forge_path: str = "forge", timeout: int = 30) -> None:
        self.forge_path = forge_path
        self.timeout = timeout

    def format(self, source_code: str) -> str:
        try:
            result = subprocess.run(
                [self.forge_path, "fmt", "--raw", "-"],
                input=source_code,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise FormatError(
                f"forge not found at {self.forge_path!r}", ErrorCode.FORGE_UNAVAILABLE,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise FormatError("forge fmt timed out", ErrorCode.TIMEOUT) from e

        if result.returncode != 0:
            logger.debug("forge fmt stderr: %s", result.stderr)
            raise FormatError(f"forge fmt failed: {result.stderr.strip()[:500]}")

        return result.stdout
