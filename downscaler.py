#!/usr/bin/env -S uv run --quiet --script
# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "rich>=14.0",
# ]
# ///
#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025-2026 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#

"""
Video Tree Downscaler

Mirrors a source directory tree into a destination tree, re-encoding every
.mp4 and .mkv file to H.265 with ffmpeg. Files already present at the
destination are skipped, so an interrupted run is resumed by running the
same command again.

Scaling:
    --scale HEIGHT           limit every video to HEIGHT pixels (aspect kept)
    --override DIR:HEIGHT    use HEIGHT below DIR instead (most specific wins)
    Without --scale, files outside any override are re-encoded unscaled.

Prerequisites:
    - ffmpeg with libx265 on PATH (or pass --ffmpeg)

Usage:
    ./downscaler.py -s ~/Videos/src -d ~/Videos/small --scale 720
    Or: uv run downscaler.py -s SRC -d DST --override movies:1080
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Self

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from atomic_transcode import (
    CRF,
    PRESET,
    AtomicTranscoder,
    EncoderSettings,
    FfmpegEncoder,
    TranscodeError,
)
from mirror_paths import Suffix, format_suffix
from scale_overrides import OverrideError, OverrideTable, parse_height, parse_override
from tree_walker import SourceTreeError, WalkContext, WalkStats, walk

__all__: Final[list[str]] = [
    "Config",
    "ValidationError",
    "configure_logging",
    "main",
    "run",
    "validate_environment",
]

__version__: Final[str] = "1.0.0"

LOG_LEVEL_ENV: Final[str] = "DOWNSCALER_LOG"
SCRATCH_DIR_ENV: Final[str] = "DOWNSCALER_SCRATCH_DIR"
DEFAULT_LOG_LEVEL: Final[str] = "info"

# Rich console for output (stderr keeps stdout free for ffmpeg)
console = Console(stderr=True)

logger = logging.getLogger("downscaler")


# ═══════════════════════════════════════════════════════════════════
#                        EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════


class ValidationError(Exception):
    """Raised when configuration or environment validation fails."""


# ═══════════════════════════════════════════════════════════════════
#                        CONFIGURATION
# ═══════════════════════════════════════════════════════════════════


def _get_env_path(var_name: str, /) -> Path | None:
    """Get a Path from environment variable, or None if not set/empty."""
    value = os.environ.get(var_name, "").strip()
    return Path(value) if value else None


def _log_level_from_env() -> int:
    """Map ``DOWNSCALER_LOG`` (e.g. ``debug``) to a logging level."""
    name = os.environ.get(LOG_LEVEL_ENV, "").strip() or DEFAULT_LOG_LEVEL
    level = logging.getLevelNamesMapping().get(name.upper())
    if level is None:
        raise ValidationError(
            f"Invalid {LOG_LEVEL_ENV} '{name}'. "
            "Must be one of: debug, info, warning, error, critical"
        )
    return level


@dataclass(frozen=True, slots=True, kw_only=True)
class Config:
    """Resolved run configuration. Immutable for the duration of a run."""

    source: Path
    destination: Path
    scale: int | None = None
    overrides: OverrideTable = field(default_factory=OverrideTable)
    encoder: EncoderSettings = field(default_factory=EncoderSettings)
    scratch_dir: Path | None = None
    log_level: int = logging.INFO

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> Self:
        """Create config from parsed arguments with environment fallbacks.

        Raises:
            ValidationError: If a value is out of range.
        """
        try:
            encoder = EncoderSettings(
                executable=args.ffmpeg,
                crf=args.crf,
                preset=args.preset,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        return cls(
            source=args.source,
            destination=args.destination,
            scale=args.scale,
            overrides=OverrideTable.from_pairs(args.overrides),
            encoder=encoder,
            scratch_dir=args.scratch_dir or _get_env_path(SCRATCH_DIR_ENV),
            log_level=logging.DEBUG if args.verbose else _log_level_from_env(),
        )


def _height_arg(text: str) -> int:
    try:
        return parse_height(text)
    except OverrideError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _override_arg(text: str) -> tuple[Suffix, int]:
    try:
        return parse_override(text)
    except OverrideError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="downscaler",
        description="Mirror a directory tree, re-encoding .mp4/.mkv videos with ffmpeg.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Existing destination files are never overwritten; rerun to resume.

Environment variables:
  {LOG_LEVEL_ENV}           Log level: debug, info, warning, error (default: info)
  {SCRATCH_DIR_ENV}   Local scratch directory (default: system temp dir)

Examples:
  %(prog)s -s src -d dst                          # Re-encode, no scaling
  %(prog)s -s src -d dst --scale 720              # Limit everything to 720p
  %(prog)s -s src -d dst --scale 720 \\
      --override movies:1080 --override movies/kids:480
""",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--source", "-s",
        type=Path,
        required=True,
        metavar="DIR",
        help="Source directory tree to read videos from",
    )
    parser.add_argument(
        "--destination", "-d",
        type=Path,
        required=True,
        metavar="DIR",
        help="Destination directory tree (created on demand)",
    )
    parser.add_argument(
        "--scale",
        type=_height_arg,
        default=None,
        metavar="HEIGHT",
        help="Default scale height (omit for no scaling, just re-encode)",
    )
    parser.add_argument(
        "--override",
        type=_override_arg,
        action="append",
        default=[],
        dest="overrides",
        metavar="DIR:HEIGHT",
        help="Override scale for a directory relative to the source (repeatable)",
    )
    parser.add_argument(
        "--crf",
        type=int,
        default=CRF,
        metavar="N",
        help=f"x265 constant rate factor, 0-51 (default: {CRF})",
    )
    parser.add_argument(
        "--preset",
        default=PRESET,
        metavar="NAME",
        help=f"x265 preset (default: {PRESET})",
    )
    parser.add_argument(
        "--ffmpeg",
        default="ffmpeg",
        metavar="PATH",
        help="ffmpeg executable (default: ffmpeg from PATH)",
    )
    parser.add_argument(
        "--scratch-dir",
        type=Path,
        default=None,
        metavar="DIR",
        help="Local directory for staging copies (default: system temp dir)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


# ═══════════════════════════════════════════════════════════════════
#                        LOGGING
# ═══════════════════════════════════════════════════════════════════


def configure_logging(level: int) -> None:
    """Route all log records through rich on stderr."""
    handler = RichHandler(
        console=console,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


# ═══════════════════════════════════════════════════════════════════
#                        VALIDATION
# ═══════════════════════════════════════════════════════════════════


def validate_environment(config: Config) -> None:
    """Validate the encoder is runnable and the directories are usable.

    Does not create or modify anything.

    Raises:
        ValidationError: If environment is invalid.
    """
    executable = config.encoder.executable
    if shutil.which(executable) is None:
        raise ValidationError(f"{executable} not found in PATH")

    source = config.source
    if not source.exists():
        raise ValidationError(f"Source path {source} does not exist")
    if not source.is_dir():
        raise ValidationError(f"Source path is not a directory: {source}")

    dest = config.destination
    if dest.exists() and not dest.is_dir():
        raise ValidationError(f"Destination path is not a directory: {dest}")

    if config.scratch_dir is not None and not config.scratch_dir.is_dir():
        raise ValidationError(f"Scratch directory does not exist: {config.scratch_dir}")


# ═══════════════════════════════════════════════════════════════════
#                        RUN
# ═══════════════════════════════════════════════════════════════════


def build_context(config: Config) -> WalkContext:
    encoder = FfmpegEncoder(settings=config.encoder)
    if config.scratch_dir is not None:
        transcoder = AtomicTranscoder(encoder=encoder, scratch_dir=config.scratch_dir)
    else:
        transcoder = AtomicTranscoder(encoder=encoder)
    return WalkContext(
        source_root=config.source,
        dest_root=config.destination,
        transcoder=transcoder,
        default_height=config.scale,
        overrides=config.overrides,
    )


def run(config: Config) -> WalkStats:
    """Validate, then walk the whole tree.

    Raises:
        ValidationError: Before anything is written.
        TranscodeError, SourceTreeError, OSError: From the walk.
    """
    validate_environment(config)

    logger.info("Default scale: %s", config.scale)
    if config.overrides:
        for suffix, height in sorted(config.overrides.items()):
            logger.info("Scale override: %s -> %sp", format_suffix(suffix), height)

    return walk(build_context(config))


def _print_summary(stats: WalkStats) -> None:
    table = Table(title="Summary")
    table.add_column("Result", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Transcoded", str(stats.transcoded))
    table.add_row("Already present", str(stats.already_present))
    table.add_row("Ignored", str(stats.ignored))
    table.add_row("Total files", str(stats.total_files))
    table.add_row("Directories", str(stats.directories))
    console.print(table)


def main(argv: Sequence[str] | None = None) -> None:
    """Script entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = Config.from_args(args)
        configure_logging(config.log_level)
        stats = run(config)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/]")
        sys.exit(130)
    except ValidationError as e:
        console.print(f"\n[red]Configuration error:[/] {escape(str(e))}")
        sys.exit(1)
    except TranscodeError as e:
        console.print(f"\n[red]Video encoding failed:[/] {escape(str(e))}")
        sys.exit(1)
    except SourceTreeError as e:
        console.print(f"\n[red]Walk failed:[/] {escape(str(e))}")
        sys.exit(1)
    except OSError as e:
        console.print(f"\n[red]Filesystem error:[/] {escape(str(e))}")
        sys.exit(1)

    _print_summary(stats)
    console.print("\n[bold green]Done![/]")


if __name__ == "__main__":
    main()
