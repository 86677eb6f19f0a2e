#!/usr/bin/env python3
"""
CLI entry point for the TPM benchmark harness.

Usage:
    python -m tssbench
    python -m tssbench --test_name rsa --test_count 100
    python -m tssbench --test_name pcr --host 10.0.0.5 --port 2321 -v
"""

from __future__ import annotations

import argparse
import logging
import sys

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from tssbench.config import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TEST_COUNT,
    DEFAULT_TEST_NAME,
    DEFAULT_TIMEOUT_MS,
    BenchmarkConfig,
)
from tssbench.errors import BenchmarkError
from tssbench.runner import RunResult
from tssbench.session import BenchmarkSession
from tssbench.timing import format_duration


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the benchmark run."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )


def create_progress_callback(enabled: bool = True):
    """Create a progress callback backed by a rich progress bar.

    Returns:
        (callback, cleanup). ``cleanup`` stops the bar if it was started.
    """
    if not enabled:
        return None, lambda: None

    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=Console(),
    )

    task_id = None
    started = False

    def callback(current: int, total: int, message: str) -> None:
        nonlocal task_id, started

        if not started:
            progress.start()
            task_id = progress.add_task(message, total=total)
            started = True
        progress.update(task_id, completed=current, description=message)

        if current >= total:
            progress.stop()

    return callback, lambda: progress.stop() if started else None


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least one."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tssbench",
        description="Run TSS benchmarks against a TPM simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Tests (aliases in parentheses):
    seal_unseal (seal), pcr_extend (pcr),
    rsa_2048_create_sign_verify (rsa), ecc_p256_create_sign_verify (ecc)

Examples:
    # 1000 seal/unseal round trips against a local simulator
    python -m tssbench

    # RSA key creation + sign/verify, 50 times
    python -m tssbench --test_name rsa --test_count 50
        """,
    )

    parser.add_argument(
        "--test_name",
        default=DEFAULT_TEST_NAME,
        help=f"which test to run (default: {DEFAULT_TEST_NAME})",
    )

    parser.add_argument(
        "--test_count",
        type=positive_int,
        default=DEFAULT_TEST_COUNT,
        help=f"how many iterations of the test to run (default: {DEFAULT_TEST_COUNT})",
    )

    parser.add_argument(
        "--host",
        default=None,
        help=f"simulator host (default: $TSSBENCH_HOST or {DEFAULT_HOST})",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"simulator command port; the platform port is port+1 (default: $TSSBENCH_PORT or {DEFAULT_PORT})",
    )

    parser.add_argument(
        "--timeout-ms",
        type=positive_int,
        default=None,
        help=f"socket timeout in milliseconds (default: $TSSBENCH_TIMEOUT_MS or {DEFAULT_TIMEOUT_MS})",
    )

    parser.add_argument(
        "--no-strict",
        dest="strict",
        action="store_false",
        default=None,
        help="tolerate a TPM that reports it was already started",
    )

    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    return parser


def print_result(result: RunResult) -> None:
    """Print the timing summary for a run."""
    total = format_duration(result.total_ns)
    if result.succeeded:
        average = format_duration(result.average_ns)
        print(f"Completed test '{result.test_name}' in {total}.")
        print(f"({average} per iteration)")
    else:
        print(
            f"Aborted test '{result.test_name}' after {result.completed_iterations} "
            f"of {result.requested_iterations} iterations in {total}."
        )


def main(argv: list[str] | None = None, session_factory=BenchmarkSession) -> int:
    """Main entry point for the benchmark CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)

    progress_callback, cleanup = create_progress_callback(not args.no_progress)

    try:
        # Unset connection flags fall back to the TSSBENCH_* environment
        overrides = {
            key: value
            for key, value in (
                ("host", args.host),
                ("port", args.port),
                ("timeout_ms", args.timeout_ms),
                ("strict", args.strict),
            )
            if value is not None
        }
        config = BenchmarkConfig(
            test_name=args.test_name,
            test_count=args.test_count,
            **overrides,
        )
        session = session_factory(config, progress_callback=progress_callback)

        print("=" * 60)
        print("TSS Benchmark")
        print("=" * 60)
        print(f"  Test:        {config.test_name}")
        print(f"  Iterations:  {config.test_count}")
        print(f"  Device:      {config.host}:{config.port} (timeout {config.timeout_ms}ms)")
        print(f"  Strict:      {config.strict}")
        print("=" * 60)

        result = session.run()

        cleanup()

        print_result(result)
        if result.error is not None:
            print(f"Error: {result.error}; aborting", file=sys.stderr)
            return 1
        return 0

    except KeyboardInterrupt:
        cleanup()
        print("\nBenchmark interrupted by user", file=sys.stderr)
        return 130

    except BenchmarkError as e:
        cleanup()
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except Exception as e:
        cleanup()
        logging.exception("Benchmark failed with error")
        print(f"\nError: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
