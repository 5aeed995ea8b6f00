"""CLI entry point for the tile mirror."""

import argparse
import logging
import sys
from pathlib import Path

from .config import DEFAULT_CONFIG_PATH, load_config
from .errors import ConfigError
from .pipeline import GRACE_PERIOD_SECONDS, run_pipeline

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mirror .tif tiles from archive index pages into a local directory"
    )
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"YAML config with targetDir and pages (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--target-dir",
        default=None,
        help="Override targetDir from the config file",
    )
    parser.add_argument(
        "--grace-period",
        type=float,
        default=GRACE_PERIOD_SECONDS,
        help=f"Seconds to wait for jobs after an interrupt (default: {GRACE_PERIOD_SECONDS:g})",
    )
    parser.add_argument(
        "--manifest",
        default=None,
        help="Record downloads in this DuckDB database (default: off)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Run the mirror from the command line."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(1)

    if args.target_dir:
        config = config.model_copy(update={"target_dir": Path(args.target_dir)})

    report = run_pipeline(
        config,
        grace_period=args.grace_period,
        manifest_path=args.manifest,
    )

    print("\n" + "=" * 60)
    print("TERMINATED" if report.interrupted else "DONE")
    print("=" * 60)
    for job in report.jobs:
        print(
            f"  {job.name:<24} {job.outcome.value:<10} "
            f"{job.files_downloaded} files, {job.bytes_written} bytes, "
            f"{job.subpages_failed + job.files_failed} errors"
        )
    print()
    print(f"  Files downloaded:  {report.files_downloaded}")
    print(f"  Bytes written:     {report.bytes_written}")
    print(f"  Total duration:    {report.duration_seconds:.2f}s")

    errors = report.errors
    if errors:
        print()
        print(f"  Errors:            {len(errors)}")
        for e in errors[:5]:  # Show first 5 errors
            print(f"    - {e}")
        if len(errors) > 5:
            print(f"    ... and {len(errors) - 5} more")
    print("=" * 60)

    sys.exit(0 if report.succeeded else 1)


if __name__ == "__main__":
    main()
