"""Shared enums and report schemas used across the engine."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class Scenario(str, enum.Enum):
    """Honeypot heuristics encoded as synthesized invariant suites."""

    HONEYPOT = "honeypot"
    HIDDEN_MINT = "hidden_mint"
    FAKE_OWNERSHIP_RENUNCIATION = "fake_ownership_renunciation"
    HIDDEN_TRANSFER = "hidden_transfer"
    HIDDEN_FEE_MODIFIER = "hidden_fee_modifier"
    HIDDEN_TRANSFER_REVERT = "hidden_transfer_revert"

    @property
    def is_token_scenario(self) -> bool:
        return self is not Scenario.FAKE_OWNERSHIP_RENUNCIATION

    @property
    def depends_on_balance(self) -> bool:
        return self in _BALANCE_DEPENDENT


_BALANCE_DEPENDENT = frozenset({
    Scenario.HONEYPOT,
    Scenario.HIDDEN_TRANSFER,
    Scenario.HIDDEN_FEE_MODIFIER,
    Scenario.HIDDEN_TRANSFER_REVERT,
})


class Verdict(str, enum.Enum):
    """Outcome of one scenario in a forge run."""

    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


class ReportStatus(str, enum.Enum):
    """Whether, and how far, a contract was actually tested."""

    TESTED = "tested"
    NOT_APPLICABLE = "not_applicable"
    PARSE_FAILED = "parse_failed"
    EXECUTION_FAILED = "execution_failed"


# ── Schemas ──────────────────────────────────────────────────────────────────


class ScenarioResult(BaseModel):
    """Verdict for one synthesized suite."""

    scenario: Scenario
    verdict: Verdict
    suite: str = ""
    reason: str = ""


class AnalysisReport(BaseModel):
    """Result of analysing one contract.

    ``results`` is only populated when ``status`` is ``TESTED``; every other
    status means the contract was not (fully) tested.
    """

    contract_name: str = ""
    status: ReportStatus
    results: dict[Scenario, ScenarioResult] = Field(default_factory=dict)
    decoded_arguments: list[str] = Field(default_factory=list)
    argument_decode_error: str = ""
    error: str = ""
    tx_hash: str = ""
    block_number: int | None = None
    duration_seconds: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def tested(self) -> bool:
        return self.status == ReportStatus.TESTED

    @property
    def failed_scenarios(self) -> list[Scenario]:
        return [s for s, r in self.results.items() if r.verdict == Verdict.FAIL]

    @property
    def is_safe(self) -> bool:
        """True only when the contract was tested and no scenario failed."""
        return self.tested and bool(self.results) and not self.failed_scenarios

    def verdicts(self) -> dict[str, str]:
        return {s.value: r.verdict.value for s, r in self.results.items()}
