"""honeyprobe CLI: fork-based honeypot checks for token contracts.

Usage:
    honeyprobe inject <file>                        Print the source with constructor injected
    honeyprobe synth <file> [--args HEX]            Print the complete test file
    honeyprobe analyze <file> --fork-url URL --block N [--args HEX]
    honeyprobe config                               Show current configuration
    honeyprobe --version                            Print version

Examples:
    honeyprobe inject ./Token.sol -o Injected.sol
    honeyprobe analyze ./Token.sol --fork-url $RPC --block 19000000 --args 0x00ab...
    honeyprobe analyze ./Token.sol --fork-url $RPC --block 19000000 --format json -o report.json
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from honeyprobe import __version__
from honeyprobe.core.errors import ParseError
from honeyprobe.core.types import AnalysisReport, ReportStatus, Verdict


# ── Coloured output helpers ──────────────────────────────────────────────────

_RESET = "\033[0m"
_BOLD = "\033[1m"
_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"

_VERDICT_COLOR = {
    Verdict.PASS: _GREEN,
    Verdict.FAIL: _RED,
    Verdict.SKIP: _DIM,
}

_STATUS_COLOR = {
    ReportStatus.TESTED: _GREEN,
    ReportStatus.NOT_APPLICABLE: _DIM,
    ReportStatus.PARSE_FAILED: _RED,
    ReportStatus.EXECUTION_FAILED: _YELLOW,
}


def _c(text: str, code: str) -> str:
    return f"{code}{text}{_RESET}"


# ── CLI argument parser ─────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="honeyprobe",
        description="honeyprobe: fork-based honeypot detection for token contracts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")

    sub = parser.add_subparsers(dest="command")

    # ── inject ───────────────────────────────────────────────────────────────
    inject_p = sub.add_parser("inject", help="Inject constructor boilerplate into a source file")
    inject_p.add_argument("path", help="Path to the .sol file")
    inject_p.add_argument("--output", "-o", help="Write output to file instead of stdout")

    # ── synth ────────────────────────────────────────────────────────────────
    synth_p = sub.add_parser("synth", help="Print the complete invariant test file")
    synth_p.add_argument("path", help="Path to the .sol file")
    synth_p.add_argument("--args", default="", help="Hex-encoded constructor arguments")
    synth_p.add_argument("--output", "-o", help="Write output to file instead of stdout")

    # ── analyze ──────────────────────────────────────────────────────────────
    analyze_p = sub.add_parser("analyze", help="Run the invariant suites against a fork")
    analyze_p.add_argument("path", help="Path to the .sol file")
    analyze_p.add_argument("--fork-url", help="JSON-RPC URL to fork from (default: settings)")
    analyze_p.add_argument("--block", type=int, help="Block height to fork at")
    analyze_p.add_argument("--args", default="", help="Hex-encoded constructor arguments")
    analyze_p.add_argument("--tx-hash", default="", help="Deployment transaction, for logs")
    analyze_p.add_argument(
        "--format",
        "-f",
        default="table",
        choices=["table", "json"],
        help="Output format (default: table)",
    )
    analyze_p.add_argument("--output", "-o", help="Write output to file instead of stdout")

    # ── config ───────────────────────────────────────────────────────────────
    sub.add_parser("config", help="Show current configuration")

    return parser


# ── Helpers ──────────────────────────────────────────────────────────────────


def _read_source(path_arg: str) -> str | None:
    path = Path(path_arg).resolve()
    if not path.is_file():
        print(_c(f"Error: file '{path}' does not exist.", _RED), file=sys.stderr)
        return None
    return path.read_text(encoding="utf-8")


def _emit(text: str, output: str | None, quiet: bool = False) -> None:
    if output:
        Path(output).write_text(text, encoding="utf-8")
        if not quiet:
            print(f"  Written to {_c(output, _CYAN)}", file=sys.stderr)
    else:
        print(text)


def _print_table(report: AnalysisReport, quiet: bool = False) -> None:
    """Pretty-print a report as a coloured verdict table."""
    status_col = _STATUS_COLOR.get(report.status, "")
    if not quiet:
        print(f"\n{_BOLD}{report.contract_name or 'Contract'}{_RESET}")
        print(
            f"  Status: {_c(report.status.value, status_col)}"
            f"  |  Block: {report.block_number if report.block_number is not None else 'latest'}"
            f"  |  Duration: {report.duration_seconds:.1f}s"
        )
        if report.decoded_arguments:
            print(f"  {_DIM}Constructor args: {', '.join(report.decoded_arguments)}{_RESET}")
        if report.argument_decode_error:
            print(f"  {_YELLOW}Constructor args not decoded: {report.argument_decode_error}{_RESET}")
        print()

    if report.error:
        print(_c(f"  {report.error}", status_col))
        return

    if not report.results:
        print(_c("  No applicable scenarios.", _DIM))
        return

    width = max(len(s.value) for s in report.results)
    for scenario, result in report.results.items():
        badge = _c(f" {result.verdict.value.upper():<4} ", _VERDICT_COLOR[result.verdict] + _BOLD)
        print(f"  {badge} {scenario.value:<{width}}")
        if result.verdict == Verdict.FAIL and result.reason and not quiet:
            reason = result.reason[:200]
            if len(result.reason) > 200:
                reason += "…"
            print(f"         {_DIM}{reason}{_RESET}")

    print()
    if report.is_safe:
        print(_c("  ✓ No honeypot behaviour detected.", _GREEN))
    else:
        failed = ", ".join(s.value for s in report.failed_scenarios)
        print(_c(f"  ✗ Suspicious: {failed}", _RED))


# ── Commands ─────────────────────────────────────────────────────────────────


def _run_inject(args: argparse.Namespace) -> int:
    from honeyprobe.pipeline.orchestrator import HoneypotAnalyzer

    source = _read_source(args.path)
    if source is None:
        return 1

    try:
        injected, _ = HoneypotAnalyzer().injector.inject_source(source)
    except ParseError as exc:
        print(_c(f"Error: {exc.message}", _RED), file=sys.stderr)
        return 1

    _emit(injected, args.output, args.quiet)
    return 0


def _run_synth(args: argparse.Namespace) -> int:
    from honeyprobe.pipeline.orchestrator import HoneypotAnalyzer

    source = _read_source(args.path)
    if source is None:
        return 1

    try:
        suite = HoneypotAnalyzer().prepare(source, args.args or None)
    except ParseError as exc:
        print(_c(f"Error: {exc.message}", _RED), file=sys.stderr)
        return 1

    if suite.decode_result.error and not args.quiet:
        print(
            _c(f"  Constructor args not decoded: {suite.decode_result.error.message}", _YELLOW),
            file=sys.stderr,
        )
    if not suite.modules and not args.quiet:
        print(_c(f"  {suite.contract_name} is neither a token nor ownable.", _DIM), file=sys.stderr)

    _emit(suite.source, args.output, args.quiet)
    return 0


async def _run_analyze(args: argparse.Namespace) -> int:
    """Run the pipeline and print the report."""
    from honeyprobe.pipeline.orchestrator import HoneypotAnalyzer

    source = _read_source(args.path)
    if source is None:
        return 1

    analyzer = HoneypotAnalyzer()
    if not (args.fork_url or analyzer.settings.fork_url):
        print(_c("Error: provide --fork-url or set HONEYPROBE_FORK_URL.", _RED), file=sys.stderr)
        return 1

    if not args.quiet:
        print(f"  Analyzing {_c(args.path, _CYAN)}…", file=sys.stderr)

    try:
        report = await analyzer.analyze(
            source,
            constructor_args=args.args or None,
            fork_url=args.fork_url,
            block_number=args.block,
            tx_hash=args.tx_hash,
        )
    finally:
        analyzer.executor.cleanup()

    if args.format == "json":
        _emit(report.model_dump_json(indent=2), args.output, args.quiet)
    else:
        _print_table(report, quiet=args.quiet)

    # Exit code: 1 unless the contract was either tested clean or not applicable
    if report.status == ReportStatus.NOT_APPLICABLE:
        return 0
    return 0 if report.is_safe else 1


def _run_config() -> int:
    """Print current settings."""
    from honeyprobe.core.config import get_settings

    s = get_settings()
    print(f"\n{_BOLD}honeyprobe configuration{_RESET}\n")
    for field_name in sorted(type(s).model_fields.keys()):
        val = getattr(s, field_name, "")
        # fork URLs usually embed an API key
        if field_name == "fork_url" and val:
            val = val.split("://", 1)[0] + "://****"
        print(f"  {_DIM}{field_name}:{_RESET}  {val}")
    print()
    return 0


# ── Entrypoint ───────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"honeyprobe {__version__}")
        return 0

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "config":
        return _run_config()

    from honeyprobe.core.config import get_settings
    from honeyprobe.core.logging import setup_logging

    settings = get_settings()
    setup_logging(settings.app_env, "WARNING" if args.quiet else settings.log_level)

    if args.command == "inject":
        return _run_inject(args)

    if args.command == "synth":
        return _run_synth(args)

    if args.command == "analyze":
        return asyncio.run(_run_analyze(args))

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
