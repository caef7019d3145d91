#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025-2026 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#

"""
Crash-safe single file transcoding.

A destination file only ever appears fully formed:

    1. stale staging files from an interrupted run are removed
    2. the source is copied into a local scratch directory
    3. ffmpeg encodes scratch input -> scratch output
    4. the result is copied next to the destination as ``<name>.working``
    5. ``<name>.working`` is renamed onto the destination (atomic)
    6. the scratch files are removed

If the encoder fails the protocol stops after step 3 and leaves the scratch
files in place for inspection. The next run on the same file cleans them up.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final, Protocol, Self

from scale_overrides import describe

__all__: Final[list[str]] = [
    "AtomicTranscoder",
    "Encoder",
    "EncoderFailedError",
    "EncoderSettings",
    "EncoderTerminatedError",
    "FfmpegEncoder",
    "StagingPaths",
    "TranscodeError",
    "build_ffmpeg_command",
]

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════
#                        ENCODER DEFAULTS
# ═══════════════════════════════════════════════════════════════════

FFMPEG: Final[str] = "ffmpeg"
VIDEO_CODEC: Final[str] = "libx265"
CRF: Final[int] = 28  # 0 = lossless, 51 = worst quality
PRESET: Final[str] = "fast"
AUDIO_CODEC: Final[str] = "copy"  # passthrough

TEMP_INPUT_PREFIX: Final[str] = "downscaler_input_"
TEMP_OUTPUT_PREFIX: Final[str] = "downscaler_output_"
WORKING_SUFFIX: Final[str] = ".working"


# ═══════════════════════════════════════════════════════════════════
#                        EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════


class TranscodeError(Exception):
    """Raised when the encoder does not produce an output file."""


class EncoderFailedError(TranscodeError):
    """Raised when the encoder exits with a non-zero status code."""

    __slots__ = ("returncode",)

    def __init__(self, returncode: int) -> None:
        super().__init__(f"Exited with status code: {returncode}")
        self.returncode = returncode


class EncoderTerminatedError(TranscodeError):
    """Raised when the encoder is killed before reporting a status code."""

    __slots__ = ("signal",)

    def __init__(self, signum: int) -> None:
        try:
            message = f"Process terminated by {signal.Signals(signum).name}."
        except ValueError:
            message = f"Process terminated by signal {signum}."
        super().__init__(message)
        self.signal = signum


# ═══════════════════════════════════════════════════════════════════
#                        FFMPEG COMMAND BUILDER
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True, kw_only=True)
class EncoderSettings:
    """Codec and container parameters handed to ffmpeg for every file."""

    executable: str = FFMPEG
    video_codec: str = VIDEO_CODEC
    crf: int = CRF
    preset: str = PRESET
    audio_codec: str = AUDIO_CODEC

    def __post_init__(self) -> None:
        if not 0 <= self.crf <= 51:
            msg = f"crf must be between 0 and 51, got {self.crf}"
            raise ValueError(msg)
        if not self.preset:
            raise ValueError("preset must not be empty")


def scale_filter(height: int) -> str:
    """Limit height to ``height`` pixels, keep aspect ratio and an even width.

    ``min(N,ih)`` keeps smaller inputs at their native size.
    """
    return f"scale=-2:'min({height},ih)'"


def build_ffmpeg_command(
    input_path: Path,
    output_path: Path,
    height: int | None,
    settings: EncoderSettings | None = None,
) -> tuple[str, ...]:
    """Construct the ffmpeg invocation for one file."""
    settings = settings or EncoderSettings()

    cmd: list[str] = [
        settings.executable,
        "-i",
        str(input_path),
        "-c:v",
        settings.video_codec,
        "-crf",
        str(settings.crf),
        "-preset",
        settings.preset,
        "-c:a",
        settings.audio_codec,
    ]

    if height is not None:
        cmd.extend(["-vf", scale_filter(height)])

    cmd.extend(
        [
            "-loglevel",
            "warning",
            "-nostats",
            "-hide_banner",
        ]
    )
    # x265 prints its own banner unless told otherwise
    if settings.video_codec == "libx265":
        cmd.extend(["-x265-params", "log-level=error"])

    cmd.append(str(output_path))
    return tuple(cmd)


class Encoder(Protocol):
    """Runs one encode synchronously and reports the child's return code.

    Follows the ``subprocess`` convention: ``0`` is success, a positive
    value is the exit status and a negative value ``-N`` means the process
    was killed by signal ``N``.
    """

    def encode(self, input_path: Path, output_path: Path, height: int | None) -> int: ...


@dataclass(frozen=True, slots=True, kw_only=True)
class FfmpegEncoder:
    """Encoder backed by an ffmpeg child process."""

    settings: EncoderSettings = field(default_factory=EncoderSettings)

    def encode(self, input_path: Path, output_path: Path, height: int | None) -> int:
        cmd = build_ffmpeg_command(input_path, output_path, height, self.settings)
        # echo the command line so a failed run can be reproduced by hand
        logger.warning("%s", shlex.join(cmd))
        # stdout/stderr are inherited so ffmpeg's diagnostics reach the terminal
        result = subprocess.run(cmd, check=False)
        return result.returncode


# ═══════════════════════════════════════════════════════════════════
#                        STAGING
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True, kw_only=True)
class StagingPaths:
    """Files touched while producing one destination file.

    Names derive only from the input and output file names, so a rerun
    after a crash finds and replaces the leftovers of the previous attempt.
    """

    temp_input: Path
    temp_output: Path
    working_output: Path
    destination: Path

    @classmethod
    def derive(cls, source: Path, destination: Path, scratch_dir: Path) -> Self:
        return cls(
            temp_input=scratch_dir / f"{TEMP_INPUT_PREFIX}{source.name}",
            temp_output=scratch_dir / f"{TEMP_OUTPUT_PREFIX}{destination.name}",
            working_output=destination.with_name(destination.name + WORKING_SUFFIX),
            destination=destination,
        )

    @property
    def intermediates(self) -> tuple[Path, Path, Path]:
        return (self.temp_input, self.temp_output, self.working_output)


def _default_scratch_dir() -> Path:
    return Path(tempfile.gettempdir())


# ═══════════════════════════════════════════════════════════════════
#                        TRANSCODER
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True, kw_only=True)
class AtomicTranscoder:
    """Produce one destination file through local staging and an atomic rename."""

    encoder: Encoder = field(default_factory=FfmpegEncoder)
    scratch_dir: Path = field(default_factory=_default_scratch_dir)

    def staging_for(self, source: Path, destination: Path) -> StagingPaths:
        return StagingPaths.derive(source, destination, self.scratch_dir)

    def transcode(self, source: Path, destination: Path, height: int | None) -> None:
        """Transcode ``source`` into ``destination``.

        Raises:
            EncoderFailedError: If the encoder exits non-zero.
            EncoderTerminatedError: If the encoder is killed by a signal.
            OSError: On any copy, rename or removal failure.
        """
        logger.info("%s %s to %s", describe(height), source, destination)
        staging = self.staging_for(source, destination)

        for stale in staging.intermediates:
            # lexists also catches dangling symlinks
            if os.path.lexists(stale):
                logger.debug("removing pre-existing staging file %s", stale)
                stale.unlink()

        logger.info("copying source to temp location %s", staging.temp_input)
        shutil.copyfile(source, staging.temp_input)

        returncode = self.encoder.encode(staging.temp_input, staging.temp_output, height)
        if returncode < 0:
            raise EncoderTerminatedError(-returncode)
        if returncode > 0:
            raise EncoderFailedError(returncode)
        logger.info("encoder succeeded")

        # same volume as the destination so the rename below is atomic
        logger.info("copying result to working file %s", staging.working_output)
        shutil.copyfile(staging.temp_output, staging.working_output)

        logger.info("renaming to final destination %s", destination)
        staging.working_output.replace(destination)

        logger.debug("cleaning up temp files")
        staging.temp_input.unlink()
        staging.temp_output.unlink()

        logger.info("Succeeded")
