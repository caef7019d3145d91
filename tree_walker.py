#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025-2026 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#

"""
Recursive source -> destination tree mirroring.

Walks the source tree depth-first and hands every ``.mp4``/``.mkv`` file
whose counterpart is missing at the destination to a transcoder. Files that
already exist at the destination are never touched again, so rerunning the
walk after a failure resumes where the previous run stopped.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum, auto
from pathlib import Path, PurePath
from typing import Final, Protocol

from mirror_paths import ROOT_SUFFIX, Suffix, extend, format_suffix, project
from scale_overrides import OverrideTable, resolve

__all__: Final[list[str]] = [
    "DirEntry",
    "DirectoryLister",
    "EntryKind",
    "SourceTreeError",
    "Transcoder",
    "VIDEO_EXTENSIONS",
    "WalkContext",
    "WalkStats",
    "is_eligible",
    "list_directory",
    "walk",
]

logger = logging.getLogger(__name__)

# Case-sensitive, without the leading dot
VIDEO_EXTENSIONS: Final[frozenset[str]] = frozenset({"mp4", "mkv"})


class SourceTreeError(Exception):
    """Raised when a source directory is missing or not a directory."""


class EntryKind(StrEnum):
    """What a directory entry is, without following symlinks."""

    DIRECTORY = auto()
    FILE = auto()
    OTHER = auto()


@dataclass(frozen=True, slots=True)
class DirEntry:
    name: str
    kind: EntryKind


class DirectoryLister(Protocol):
    def __call__(self, path: Path, /) -> Iterable[DirEntry]: ...


def list_directory(path: Path) -> list[DirEntry]:
    """List ``path`` on the real filesystem, sorted by name.

    Symlinks, devices, sockets and FIFOs are reported as ``OTHER``.

    Raises:
        SourceTreeError: If ``path`` is not an existing directory.
    """
    if not path.is_dir():
        raise SourceTreeError(f"Source is not a directory: {path}")

    entries: list[DirEntry] = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_dir(follow_symlinks=False):
                kind = EntryKind.DIRECTORY
            elif entry.is_file(follow_symlinks=False):
                kind = EntryKind.FILE
            else:
                kind = EntryKind.OTHER
            entries.append(DirEntry(entry.name, kind))
    entries.sort(key=lambda e: e.name)
    return entries


def is_eligible(name: str) -> bool:
    """Check whether a file name carries a recognised video extension."""
    ext = PurePath(name).suffix
    return bool(ext) and ext[1:] in VIDEO_EXTENSIONS


class Transcoder(Protocol):
    def transcode(self, source: Path, destination: Path, height: int | None) -> None: ...


@dataclass(frozen=True, slots=True, kw_only=True)
class WalkContext:
    """Everything the walk needs, fixed for the whole run."""

    source_root: Path
    dest_root: Path
    transcoder: Transcoder
    default_height: int | None = None
    overrides: Mapping[Suffix, int] = field(default_factory=OverrideTable)
    lister: DirectoryLister = list_directory


@dataclass(slots=True)
class WalkStats:
    """Counts of what happened during a successful walk."""

    transcoded: int = 0
    already_present: int = 0
    ignored: int = 0
    directories: int = 0

    @property
    def total_files(self) -> int:
        return self.transcoded + self.already_present + self.ignored


def walk(
    context: WalkContext,
    suffix: Suffix = ROOT_SUFFIX,
    stats: WalkStats | None = None,
) -> WalkStats:
    """Mirror the directory at ``source_root/suffix`` and everything below it.

    Any error aborts the walk immediately. Files completed before the error
    stay in place.

    Raises:
        SourceTreeError: If the directory does not exist.
        TranscodeError: If the encoder fails on a file.
        OSError: On filesystem failures.
    """
    if stats is None:
        stats = WalkStats()
    stats.directories += 1

    source_dir = project(context.source_root, suffix)
    dest_dir = project(context.dest_root, suffix)
    logger.debug("entering %s", format_suffix(suffix))

    for entry in context.lister(source_dir):
        source_path = source_dir / entry.name

        if entry.kind is EntryKind.DIRECTORY:
            walk(context, extend(suffix, entry.name), stats)
            continue

        if entry.kind is not EntryKind.FILE:
            logger.debug("ignoring entry - not a file %s", source_path)
            stats.ignored += 1
            continue

        if not PurePath(entry.name).suffix:
            logger.debug("ignoring file - no extension %s", source_path)
            stats.ignored += 1
            continue

        if not is_eligible(entry.name):
            logger.debug("ignoring file - wrong extension %s", source_path)
            stats.ignored += 1
            continue

        dest_path = dest_dir / entry.name
        if os.path.lexists(dest_path):
            logger.debug("not overwriting %s", dest_path)
            stats.already_present += 1
            continue

        dest_dir.mkdir(parents=True, exist_ok=True)
        # resolved per directory: the file name is not part of the suffix
        height = resolve(suffix, context.default_height, context.overrides)
        context.transcoder.transcode(source_path, dest_path, height)
        stats.transcoded += 1

    return stats
