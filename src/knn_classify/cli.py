"""Command-line entrypoint for knn_classify.

Usage::

    classify [-v] [-K <int>] [-d <euclidean|cosine|prefix>] [-p <int>]
             [--timeout <seconds>] [--report <path>]
             training_file testing_file

Prints exactly one integer to stdout: the number of testing items whose label
was predicted correctly.  Diagnostics go to stderr; any fatal error exits
with status 1.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import NoReturn

from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from knn_classify.config import ClassifyConfig
from knn_classify.errors import KNNClassifyError
from knn_classify.io.report import RunReportWriter
from knn_classify.parallel.coordinator import Coordinator
from knn_classify.schemas.report import RunReport


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="classify",
        description="Classify a testing set with k-nearest neighbours "
        "using a pool of worker processes",
    )
    parser.add_argument(
        "-v",
        dest="verbose",
        action="store_true",
        help="Print diagnostics and a per-worker summary to stderr",
    )
    parser.add_argument(
        "-K", dest="k", type=int, default=1, help="Number of neighbours (default: 1)"
    )
    parser.add_argument(
        "-d",
        dest="metric",
        default="euclidean",
        help="Distance metric: euclidean or cosine, or a unique prefix "
        "(default: euclidean)",
    )
    parser.add_argument(
        "-p",
        dest="num_procs",
        type=int,
        default=1,
        help="Number of worker processes (default: 1)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for all workers before failing (default: no limit)",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Write a JSON run report to this path",
    )
    parser.add_argument("training_file", type=Path, help="Binary training dataset")
    parser.add_argument("testing_file", type=Path, help="Binary testing dataset")
    return parser


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def print_summary(report: RunReport, console: Console | None = None) -> None:
    """Print a Rich table of per-worker results to stderr."""
    console = console or Console(stderr=True)
    table = Table(title=f"kNN (K={report.k}, metric={report.metric})")
    table.add_column("Worker", style="cyan", justify="right")
    table.add_column("Slice")
    table.add_column("Items", justify="right")
    table.add_column("Correct", justify="right", style="green")

    for p in report.partitions:
        table.add_row(
            str(p.worker_id),
            f"[{p.start_index}, {p.start_index + p.count})",
            str(p.count),
            str(p.correct),
        )
    table.add_section()
    table.add_row(
        "total",
        "",
        str(report.num_tests),
        f"{report.total_correct} ({report.accuracy:.2%})",
    )
    console.print(table)
    console.print(f"Elapsed: {report.elapsed_seconds:.2f}s")


def main(argv: list[str] | None = None) -> None:
    """Run a classification from command-line arguments."""
    args = build_parser().parse_args(argv)

    log_level = "DEBUG" if args.verbose else "WARNING"
    logger.remove()
    logger.add(sys.stderr, level=log_level)

    try:
        config = ClassifyConfig(
            training_file=args.training_file,
            testing_file=args.testing_file,
            k=args.k,
            metric=args.metric,
            num_procs=args.num_procs,
            verbose=args.verbose,
            timeout=args.timeout,
            report=args.report,
        )
    except ValidationError as e:
        logger.error(f"Invalid configuration: {_format_validation_error(e)}")
        sys.exit(1)
    logger.debug(f"Configuration: {config.model_dump()}")

    try:
        report = Coordinator.from_config(config, log_level=log_level).run()
    except KNNClassifyError as e:
        logger.error(str(e))
        sys.exit(1)

    if config.report is not None:
        try:
            out_path = RunReportWriter(config.report).write(report)
        except OSError as e:
            logger.error(f"Could not write report to {config.report}: {e}")
            sys.exit(1)
        logger.debug(f"Report written to {out_path}")

    if config.verbose:
        print_summary(report)

    print(report.total_correct)


if __name__ == "__main__":
    main()
