"""CLI entrypoints for rxsmells commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import REPORT_FORMATS, ConfigError
from .logging import configure_logging
from .orchestrator import Orchestrator

EXIT_FATAL = 2


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rxsmells",
        description="Detect RxJS and Angular code smells in parsed component models.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser(
        "analyze",
        help="Analyse parser output documents and report findings.",
    )
    _add_verbose_option(analyze_parser, suppress_default=True)
    analyze_parser.add_argument(
        "paths",
        nargs="+",
        help="JSON documents or directories containing them.",
    )
    analyze_parser.add_argument(
        "--config",
        help="Path to .rxsmells.yml or the directory holding it (defaults to current directory).",
    )
    analyze_parser.add_argument(
        "--format",
        choices=REPORT_FORMATS,
        help="Report format; overrides report.format from the config.",
    )
    analyze_parser.add_argument(
        "--output",
        help="Write the report to this file instead of stdout.",
    )
    analyze_parser.add_argument(
        "--workers",
        type=int,
        help="Number of components analysed concurrently.",
    )
    analyze_parser.add_argument(
        "--log-file",
        help="Write a debug trace of the run to this file.",
    )

    detectors_parser = subparsers.add_parser(
        "detectors",
        help="List the registered detectors.",
    )
    _add_verbose_option(detectors_parser, suppress_default=True)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint for rxsmells commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_file = getattr(args, "log_file", None)
    configure_logging(verbose=bool(args.verbose), log_file=Path(log_file) if log_file else None)

    orchestrator = Orchestrator()

    if args.command == "analyze":
        return _run_analyze(parser, orchestrator, args)
    if args.command == "detectors":
        for entry in orchestrator.registry.describe():
            thresholds = ", ".join(f"{key}={value}" for key, value in entry["thresholds"].items())
            suffix = f" ({thresholds})" if thresholds else ""
            print(f"{entry['id']:<30} {entry['severity']:<8} {entry['title']}{suffix}")
        return 0
    parser.exit(EXIT_FATAL, "Unknown command\n")  # pragma: no cover - argparse enforces choices
    return EXIT_FATAL  # pragma: no cover


def _run_analyze(
    parser: argparse.ArgumentParser, orchestrator: Orchestrator, args: argparse.Namespace
) -> int:
    try:
        config = orchestrator.load_config(args.config)
    except ConfigError as exc:
        parser.exit(EXIT_FATAL, f"rxsmells: invalid configuration: {exc}\n")

    if args.workers is not None:
        if args.workers < 1:
            parser.exit(EXIT_FATAL, "rxsmells: --workers must be at least 1\n")
        config.workers = args.workers
    fmt = args.format or config.report.format
    output = Path(args.output) if args.output else config.report.output

    try:
        outcome = orchestrator.run_analysis(args.paths, config)
    except ConfigError as exc:
        parser.exit(EXIT_FATAL, f"rxsmells: invalid configuration: {exc}\n")
    except FileNotFoundError as exc:
        parser.exit(EXIT_FATAL, f"rxsmells: {exc}\n")

    rendered = outcome.reporter.write(fmt, output)
    if output is None:
        print(rendered)
    else:
        print(f"Report written to {_relativize(output)}")
    return outcome.exit_status


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
