"""Honeypot analysis orchestrator: coordinates the per-contract pipeline."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from honeyprobe.core.config import Settings, get_settings
from honeyprobe.core.errors import ExecutionError, ParseError
from honeyprobe.core.logging import ContractLogFilter
from honeyprobe.core.types import AnalysisReport, ReportStatus, Scenario
from honeyprobe.fuzzer.abi_decoder import ArgumentDecoder, DecodeResult
from honeyprobe.fuzzer.forge_executor import ForgeConfig, ForgeExecutor
from honeyprobe.fuzzer.invariant_synth import InvariantTestSynthesizer, ScenarioModule
from honeyprobe.ingestion.contract_facts import (
    ContractFacts,
    ContractFactsProvider,
    SolcFactsProvider,
)
from honeyprobe.ingestion.formatter import ForgeFormatter, SourceFormatter
from honeyprobe.ingestion.solidity_compiler import SolidityCompiler
from honeyprobe.injector.constructor_injector import ConstructorInjector

logger = logging.getLogger(__name__)


@dataclass
class TestSuite:
    """An injected contract plus the suites synthesized for it."""
    __test__ = False  # not a pytest class

    facts: ContractFacts
    injected_source: str
    modules: list[ScenarioModule] = field(default_factory=list)
    decode_result: DecodeResult = field(default_factory=DecodeResult)

    @property
    def contract_name(self) -> str:
        return self.facts.contract_name

    @property
    def scenarios(self) -> list[Scenario]:
        return [m.scenario for m in self.modules]

    @property
    def source(self) -> str:
        """The complete test file handed to forge."""
        return self.injected_source + InvariantTestSynthesizer.render(self.modules)


class HoneypotAnalyzer:
    """Coordinates the honeypot analysis pipeline for one contract at a time.

    Flow:
    1. FORMAT: Normalize the source with the deterministic formatter
    2. PARSE: Extract contract facts from the formatted source
    3. INJECT: Splice constructor boilerplate into the source
    4. DECODE: Recover constructor arguments from the raw blob
    5. SYNTHESIZE: Build the applicable invariant suites
    6. EXECUTE: Run the assembled file against a fork
    """

    def __init__(
        self,
        settings: Settings | None = None,
        formatter: SourceFormatter | None = None,
        facts_provider: ContractFactsProvider | None = None,
        executor: ForgeExecutor | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        s = self._settings

        self.formatter = formatter or ForgeFormatter(s.forge_path, s.forge_fmt_timeout)
        self.facts_provider = facts_provider or SolcFactsProvider(
            SolidityCompiler(s.solc_version, s.solc_fallback_version),
        )
        self.injector = ConstructorInjector(
            self.formatter, self.facts_provider, seed_amount=s.seed_amount,
        )
        self.decoder = ArgumentDecoder()
        self.synthesizer = InvariantTestSynthesizer(
            seed_amount=s.seed_amount, time_skip_seconds=s.time_skip_seconds,
        )
        self.executor = executor or ForgeExecutor(ForgeConfig.from_settings(s))

    @property
    def settings(self) -> Settings:
        return self._settings

    def prepare(self, source_code: str, constructor_args: str | bytes | None = None) -> TestSuite:
        """Build the complete test file without executing it.

        Raises ParseError (or FormatError) when the source is unusable.
        """
        injected, facts = self.injector.inject_source(source_code)
        decoded = self.decoder.decode(facts, constructor_args)
        modules = self.synthesizer.synthesize(facts, decoded.arguments, decoded.statements)
        return TestSuite(
            facts=facts,
            injected_source=injected,
            modules=modules,
            decode_result=decoded,
        )

    async def analyze(
        self,
        source_code: str,
        constructor_args: str | bytes | None = None,
        fork_url: str | None = None,
        block_number: int | None = None,
        tx_hash: str = "",
    ) -> AnalysisReport:
        """Run the full pipeline and report a verdict per scenario.

        Never raises for contract-level failures; the report status says how
        far the analysis got.
        """
        start = time.monotonic()
        fork_url = fork_url or self._settings.fork_url
        if block_number is None:
            block_number = self._settings.fork_block

        def report(status: ReportStatus, **kwargs) -> AnalysisReport:
            return AnalysisReport(
                status=status,
                tx_hash=tx_hash,
                block_number=block_number,
                duration_seconds=time.monotonic() - start,
                **kwargs,
            )

        try:
            suite = self.prepare(source_code, constructor_args)
        except ParseError as e:
            logger.warning("Source rejected: %s", e.message)
            return report(ReportStatus.PARSE_FAILED, error=e.message)

        decode = suite.decode_result
        common = {
            "contract_name": suite.contract_name,
            "decoded_arguments": list(decode.arguments),
            "argument_decode_error": decode.error.message if decode.error else "",
        }

        if not suite.facts.is_applicable:
            logger.info("%s is neither a token nor ownable, nothing to test", suite.contract_name)
            return report(ReportStatus.NOT_APPLICABLE, **common)

        log_filter = ContractLogFilter(contract_name=suite.contract_name, tx_hash=tx_hash)
        handlers = list(logging.getLogger().handlers)
        for handler in handlers:
            handler.addFilter(log_filter)

        try:
            logger.info(
                "Running %d suites for %s", len(suite.modules), suite.contract_name,
                extra={"fork_url": fork_url, "block_number": block_number},
            )
            run = await self.executor.run_suite(
                suite.source, suite.scenarios, fork_url, block_number,
            )
        except ExecutionError as e:
            logger.error("Execution failed for %s: %s", suite.contract_name, e.message)
            return report(
                ReportStatus.EXECUTION_FAILED,
                error=e.message,
                metadata={"returncode": e.returncode, "error_code": e.code.value},
                **common,
            )
        finally:
            for handler in handlers:
                handler.removeFilter(log_filter)

        result = report(
            ReportStatus.TESTED,
            results=run.results,
            metadata={
                "returncode": run.returncode,
                "execution_time_ms": round(run.execution_time_ms),
                "suite_count": len(suite.modules),
            },
            **common,
        )
        logger.info(
            "Tested %s: %s", suite.contract_name,
            ", ".join(f"{s}={v}" for s, v in result.verdicts().items()),
            extra={"verdicts": result.verdicts()},
        )
        return result
