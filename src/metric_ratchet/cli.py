"""Command-line entry point for metric-ratchet."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from . import __version__
from .config import RatchetSettings
from .engine import MetricTestFailedError, run
from .git import GitError, cleanup_orphans
from .options import (
    ConfigLoadError,
    OptionsValidationError,
    RatchetConfig,
    load_config_file,
    load_default,
)

EXIT_FAILED = 1
EXIT_USAGE = 2


def configure_logging(level: str) -> None:
    """Configure root logging for the CLI."""

    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def load_settings() -> RatchetSettings:
    try:
        return RatchetSettings()
    except ValidationError as exc:
        print(f"Error: invalid environment: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_USAGE)


def build_config(args: argparse.Namespace) -> RatchetConfig:
    if args.config:
        config = load_config_file(Path(args.config))
    else:
        config = load_default()
    return config.merge_with_flags(
        metric=args.metric,
        pre=args.pre,
        post=args.post,
        lt=args.lt,
        le=args.le,
        eq=args.eq,
        ge=args.ge,
        gt=args.gt,
        verbose=args.verbose,
    )


def cmd_run(args: argparse.Namespace) -> int:
    settings = load_settings()
    configure_logging(settings.log_level)
    try:
        config = build_config(args)
        options = config.to_options()
    except (ConfigLoadError, OptionsValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    try:
        run(options, settings=settings)
    except MetricTestFailedError:
        return EXIT_FAILED
    except GitError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    settings = load_settings()
    configure_logging(settings.log_level)
    report = cleanup_orphans(settings.temp_root, dry_run=args.dry_run)

    if args.json:
        payload = {
            "temp_root": str(settings.temp_root),
            "dry_run": args.dry_run,
            "cleaned": [str(path) for path in report.cleaned],
            "errors": report.errors,
        }
        print(json.dumps(payload, indent=2))
    elif report.cleaned:
        verb = "Found" if args.dry_run else "Cleaned up"
        print(f"{verb} {len(report.cleaned)} orphaned worktrees:")
        for path in report.cleaned:
            print(f"  - {path}")

    if report.errors:
        print("cleanup errors:\n" + "\n".join(report.errors), file=sys.stderr)
        return EXIT_FAILED
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    print(f"ratchet v{__version__}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ratchet",
        description=(
            "Compare a numeric metric between the current checkout and a base ref, "
            "failing when it moves in the wrong direction."
        ),
    )
    sub = parser.add_subparsers(dest="cmd")

    p_run = sub.add_parser("run", help="Evaluate the metric and apply the comparison")
    p_run.add_argument("metric", nargs="?", help="Command that prints a single number")
    p_run.add_argument("--pre", help="Command to run before the metric command")
    p_run.add_argument("--post", help="Command to run after the metric command")
    comparison = p_run.add_mutually_exclusive_group()
    comparison.add_argument("--lt", metavar="REF", help="Pass if current < metric on REF")
    comparison.add_argument("--le", metavar="REF", help="Pass if current <= metric on REF")
    comparison.add_argument("--eq", metavar="REF", help="Pass if current == metric on REF")
    comparison.add_argument("--ge", metavar="REF", help="Pass if current >= metric on REF")
    comparison.add_argument("--gt", metavar="REF", help="Pass if current > metric on REF")
    p_run.add_argument(
        "--config",
        help="YAML or JSON config file (default: .ratchet in the current directory)",
    )
    p_run.add_argument("-v", "--verbose", action="store_true", help="Show progress and details")
    p_run.set_defaults(func=cmd_run)

    p_cleanup = sub.add_parser(
        "cleanup",
        help="Remove worktrees left behind by interrupted runs",
    )
    p_cleanup.add_argument(
        "--dry-run",
        action="store_true",
        help="List orphaned worktrees without removing them",
    )
    p_cleanup.add_argument("--json", action="store_true", help="Output JSON")
    p_cleanup.set_defaults(func=cmd_cleanup)

    p_version = sub.add_parser("version", help="Print the version number of ratchet")
    p_version.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    exit_code = args.func(args)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
