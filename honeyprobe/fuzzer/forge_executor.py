"""Forge execution backend for synthesized honeypot suites.

Runs the assembled suite through Foundry's ``forge test`` against forked
chain state:
  1. Materialize a Foundry project with forge-std installed
  2. Write the suite to one fixed test file
  3. ``forge test --fork-url ... --fork-block-number ... --json``
  4. Map each suite's outcome to a pass / fail / skip verdict

A run either yields a verdict for every expected scenario or raises
ExecutionError; partial results are never returned.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from honeyprobe.core.config import Settings
from honeyprobe.core.errors import ErrorCode, ExecutionError
from honeyprobe.core.types import Scenario, ScenarioResult, Verdict
from honeyprobe.fuzzer.invariant_synth import SUITES, scenario_for_suite

logger = logging.getLogger(__name__)

# forge exits 1 when tests fail; anything else means the run itself broke
_COMPLETED_RETURNCODES = (0, 1)

_STATUS_VERDICTS = {
    "Success": Verdict.PASS,
    "Failure": Verdict.FAIL,
    "Skipped": Verdict.SKIP,
}


# ── Configuration ────────────────────────────────────────────────────────────


@dataclass
class ForgeConfig:
    """Configuration for the Forge execution backend."""
    forge_path: str = "forge"
    project_dir: str | None = None
    test_file: str = "test/test.sol"
    test_timeout: int | None = 600
    install_timeout: int = 300
    env: dict[str, str] = field(default_factory=lambda: {"RUST_LOG": "off"})

    @classmethod
    def default(cls) -> ForgeConfig:
        return cls()

    @classmethod
    def from_settings(cls, settings: Settings) -> ForgeConfig:
        return cls(
            forge_path=settings.forge_path,
            project_dir=settings.forge_project_dir,
            test_file=settings.forge_test_file,
            test_timeout=settings.forge_test_timeout,
        )


@dataclass
class SuiteRun:
    """Verdicts from one completed forge run."""
    results: dict[Scenario, ScenarioResult] = field(default_factory=dict)
    returncode: int = 0
    execution_time_ms: float = 0.0


# ── Forge Project Manager ───────────────────────────────────────────────────


class ForgeProjectManager:
    """Owns the Foundry project the suite is written into.

    The project directory is fixed for the lifetime of the manager, so at
    most one run may use it at a time.
    """

    def __init__(self, config: ForgeConfig) -> None:
        self.config = config
        self._project_dir: Path | None = None
        self._cleanup_needed = False

    @property
    def project_dir(self) -> Path:
        if self._project_dir is None:
            raise RuntimeError("Project not initialized")
        return self._project_dir

    @property
    def initialized(self) -> bool:
        return self._project_dir is not None

    def init_project(self) -> Path:
        """Create the project layout and install forge-std if missing."""
        if self.config.project_dir:
            self._project_dir = Path(self.config.project_dir)
            self._cleanup_needed = False
        else:
            self._project_dir = Path(tempfile.mkdtemp(prefix="honeyprobe_forge_"))
            self._cleanup_needed = True

        for sub in ("src", "test", "lib"):
            (self._project_dir / sub).mkdir(parents=True, exist_ok=True)

        (self._project_dir / "foundry.toml").write_text(self._generate_foundry_toml())

        if not (self._project_dir / "lib" / "forge-std" / "src").exists():
            self._install_forge_std()

        logger.info("Forge project initialized at %s", self._project_dir)
        return self._project_dir

    def write_test(self, code: str) -> Path:
        """Write the suite to the fixed test file."""
        filepath = self.project_dir / self.config.test_file
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_text(code, encoding="utf-8")
        return filepath

    def cleanup(self) -> None:
        """Remove the project directory if it was a temporary one."""
        if self._cleanup_needed and self._project_dir and self._project_dir.exists():
            shutil.rmtree(self._project_dir, ignore_errors=True)
            logger.debug("Cleaned up forge project: %s", self._project_dir)
        self._project_dir = None

    def _generate_foundry_toml(self) -> str:
        config_lines = [
            "[profile.default]",
            'src = "src"',
            'test = "test"',
            'out = "out"',
            'libs = ["lib"]',
            'remappings = ["forge-std/=lib/forge-std/src/"]',
            "auto_detect_solc = true",
            "",
            "[invariant]",
            "fail_on_revert = false",
        ]
        return "\n".join(config_lines) + "\n"

    def _install_forge_std(self) -> None:
        try:
            result = subprocess.run(
                [self.config.forge_path, "install", "foundry-rs/forge-std", "--no-git"],
                capture_output=True,
                text=True,
                cwd=str(self.project_dir),
                timeout=self.config.install_timeout,
            )
        except FileNotFoundError as e:
            raise ExecutionError(
                f"forge not found at {self.config.forge_path!r}", ErrorCode.FORGE_UNAVAILABLE,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ExecutionError("forge-std installation timed out", ErrorCode.TIMEOUT) from e

        if result.returncode != 0:
            raise ExecutionError(
                "forge-std installation failed",
                ErrorCode.FORGE_UNAVAILABLE,
                returncode=result.returncode,
                stderr=result.stderr,
            )


# ── Forge Executor ───────────────────────────────────────────────────────────


class ForgeExecutor:
    """Runs synthesized suites with ``forge test`` and collects verdicts.

    Runs on one executor are serialized; use separate executors with
    separate project directories for parallel work.
    """

    def __init__(self, config: ForgeConfig | None = None) -> None:
        self.config = config or ForgeConfig.default()
        self.project = ForgeProjectManager(self.config)
        self._lock = asyncio.Lock()

    def build_command(self, fork_url: str, block_number: int | None) -> list[str]:
        cmd = [
            self.config.forge_path, "test",
            "--match-path", self.config.test_file,
            "--json",
        ]
        if fork_url:
            cmd.extend(["--fork-url", fork_url])
            if block_number is not None:
                cmd.extend(["--fork-block-number", str(block_number)])
        return cmd

    async def run_suite(
        self,
        source_code: str,
        scenarios: Sequence[Scenario],
        fork_url: str,
        block_number: int | None = None,
    ) -> SuiteRun:
        """Execute the assembled suite and return a verdict per scenario.

        Raises ExecutionError if forge is missing, times out, exits
        abnormally, or its report does not cover every scenario.
        """
        async with self._lock:
            if not self.project.initialized:
                await asyncio.to_thread(self.project.init_project)
            self.project.write_test(source_code)

            cmd = self.build_command(fork_url, block_number)
            env = {**os.environ, **self.config.env}
            start = time.time()
            try:
                result = await asyncio.to_thread(
                    subprocess.run,
                    cmd,
                    capture_output=True,
                    text=True,
                    cwd=str(self.project.project_dir),
                    env=env,
                    timeout=self.config.test_timeout,
                )
            except FileNotFoundError as e:
                raise ExecutionError(
                    f"forge not found at {self.config.forge_path!r}", ErrorCode.FORGE_UNAVAILABLE,
                ) from e
            except subprocess.TimeoutExpired as e:
                raise ExecutionError(
                    f"forge test timed out after {self.config.test_timeout}s", ErrorCode.TIMEOUT,
                ) from e

        exec_time = (time.time() - start) * 1000
        logger.info(
            "forge test finished in %.0fms (exit %d)", exec_time, result.returncode,
            extra={"duration_ms": round(exec_time), "returncode": result.returncode},
        )

        run = self.parse_test_output(result, scenarios)
        run.execution_time_ms = exec_time
        return run

    def cleanup(self) -> None:
        self.project.cleanup()

    # ── Parsing ──────────────────────────────────────────────────────────────

    def parse_test_output(
        self,
        result: subprocess.CompletedProcess,
        scenarios: Sequence[Scenario],
    ) -> SuiteRun:
        """Parse ``forge test --json`` output into per-scenario verdicts."""
        if result.returncode not in _COMPLETED_RETURNCODES:
            raise ExecutionError(
                f"forge test exited with status {result.returncode}",
                returncode=result.returncode,
                stderr=result.stderr,
            )

        output = self._load_json(result.stdout)
        if output is None:
            raise ExecutionError(
                "forge test output is not valid JSON",
                returncode=result.returncode,
                stderr=result.stderr,
            )

        results: dict[Scenario, ScenarioResult] = {}
        for suite_name, suite in output.items():
            scenario = scenario_for_suite(suite_name)
            if scenario is None or not isinstance(suite, dict):
                continue
            results[scenario] = self._suite_verdict(scenario, suite_name, suite)

        missing = [s.value for s in scenarios if s not in results]
        if missing:
            raise ExecutionError(
                f"forge report is missing suites: {', '.join(missing)}",
                returncode=result.returncode,
                stderr=result.stderr,
            )

        if result.returncode != 0 and not any(
            r.verdict == Verdict.FAIL for r in results.values()
        ):
            raise ExecutionError(
                "forge test failed without a failing suite",
                returncode=result.returncode,
                stderr=result.stderr,
            )

        return SuiteRun(
            results={s: results[s] for s in scenarios},
            returncode=result.returncode,
        )

    @staticmethod
    def _load_json(stdout: str) -> dict[str, Any] | None:
        try:
            output = json.loads(stdout)
        except json.JSONDecodeError:
            # forge may print progress lines before the report
            output = None
            for line in reversed(stdout.splitlines()):
                if line.startswith("{"):
                    try:
                        output = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    break
        return output if isinstance(output, dict) else None

    @staticmethod
    def _suite_verdict(scenario: Scenario, suite_name: str, suite: dict[str, Any]) -> ScenarioResult:
        tests = suite.get("test_results") or {}
        invariant = SUITES[scenario][1]

        # A failing or skipping setUp() is reported in place of the invariant
        entry = next(
            (data for name, data in tests.items() if name.split("(", 1)[0] == invariant),
            None,
        )
        if entry is None:
            entry = next(
                (data for name, data in tests.items() if name.split("(", 1)[0] == "setUp"),
                None,
            )
        if entry is None:
            raise ExecutionError(f"forge report has no result for {suite_name}")

        status = entry.get("status", "")
        verdict = _STATUS_VERDICTS.get(status)
        if verdict is None:
            raise ExecutionError(f"Unknown forge status {status!r} for {suite_name}")

        return ScenarioResult(
            scenario=scenario,
            verdict=verdict,
            suite=suite_name,
            reason=entry.get("reason") or "",
        )
