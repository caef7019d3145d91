#!/usr/bin/env python3
"""
Mirror Path Helpers.

A position inside the mirrored trees is a suffix: the tuple of directory
names leading from a tree root to the directory being visited. Projecting
the same suffix onto the source root and the destination root yields the
two sides of the mirror, which keeps both trees structurally identical.

SPDX-License-Identifier: MPL-2.0
Copyright (c) 2025-2026 Aryan Ameri
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path, PurePath
from typing import Final, TypeAlias

__all__: Final[list[str]] = [
    "Suffix",
    "ROOT_SUFFIX",
    "project",
    "extend",
    "relative_to_suffix",
    "format_suffix",
]

Suffix: TypeAlias = tuple[str, ...]

ROOT_SUFFIX: Final[Suffix] = ()


def project(root: Path, suffix: Sequence[str]) -> Path:
    """Join each component of ``suffix`` onto ``root``, in order.

    Pure: the filesystem is never consulted.
    """
    path = root
    for component in suffix:
        path = path / component
    return path


def extend(suffix: Suffix, name: str) -> Suffix:
    """Return a new suffix one level deeper."""
    return (*suffix, name)


def relative_to_suffix(text: str | PurePath) -> Suffix:
    """Split a relative directory (e.g. ``movies/action/``) into a suffix.

    ``""`` and ``"."`` both denote the tree root.

    Raises:
        ValueError: If the path is absolute or climbs out with ``..``.
    """
    path = PurePath(text)
    if path.is_absolute() or path.anchor:
        raise ValueError(f"Directory must be relative to the source root, got '{text}'")
    parts = tuple(part for part in path.parts if part not in ("", "."))
    if ".." in parts:
        raise ValueError(f"Directory must not contain '..', got '{text}'")
    return parts


def format_suffix(suffix: Sequence[str]) -> str:
    """Human-readable form of a suffix for log output."""
    return "/".join(suffix) if suffix else "."
