#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025-2026 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#

"""
Per-directory scale overrides.

Every directory of the source tree gets an effective output height: the
value of the most specific override whose directory is a prefix of it, or
the default height when no override applies. ``None`` means "re-encode
without scaling".

Overrides are given on the command line as ``DIR:HEIGHT`` tokens, e.g.
``movies:1080`` or ``movies/kids:480``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Final, Self

from mirror_paths import Suffix, format_suffix, relative_to_suffix

__all__: Final[list[str]] = [
    "OverrideError",
    "OverrideTable",
    "parse_height",
    "parse_override",
    "resolve",
    "describe",
]


class OverrideError(ValueError):
    """Raised when a height or an override token is malformed."""


def parse_height(text: str) -> int:
    """Parse a scale height such as ``720``.

    Raises:
        OverrideError: If the value is not a positive whole number.
    """
    value = text.strip()
    if not value.isdecimal():
        raise OverrideError(f"Invalid scale value '{text}', expected number")
    height = int(value)
    if height <= 0:
        raise OverrideError(f"Invalid scale value '{text}', expected a positive height")
    return height


def parse_override(token: str) -> tuple[Suffix, int]:
    """Parse an override token like ``movies/action:480``.

    Only the first colon separates directory from height.

    Raises:
        OverrideError: If the token is not in ``DIR:HEIGHT`` form.
    """
    directory, sep, height_text = token.partition(":")
    if not sep:
        raise OverrideError(f"Override must be in format DIR:HEIGHT, got '{token}'")
    try:
        suffix = relative_to_suffix(directory)
    except ValueError as e:
        raise OverrideError(f"Invalid directory in override '{token}': {e}") from e
    try:
        height = parse_height(height_text)
    except OverrideError:
        raise OverrideError(
            f"Invalid height '{height_text}' in override, expected number"
        ) from None
    return suffix, height


@dataclass(frozen=True, slots=True)
class OverrideTable(Mapping[Suffix, int]):
    """Read-only mapping of directory prefix to maximum output height."""

    _entries: Mapping[Suffix, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_entries", MappingProxyType(dict(self._entries)))

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[Suffix, int]]) -> Self:
        """Build a table; a directory given twice keeps its last height."""
        entries: dict[Suffix, int] = {}
        for suffix, height in pairs:
            entries[tuple(suffix)] = height
        return cls(entries)

    def __getitem__(self, key: Suffix) -> int:
        return self._entries[key]

    def __iter__(self) -> Iterator[Suffix]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        inner = ", ".join(
            f"{format_suffix(key)}:{height}" for key, height in sorted(self._entries.items())
        )
        return f"OverrideTable({inner})"


def _is_prefix(prefix: Suffix, suffix: Suffix) -> bool:
    # component-wise: "movies" matches "movies/action" but not "movies2"
    return len(prefix) <= len(suffix) and suffix[: len(prefix)] == prefix


def resolve(
    suffix: Suffix,
    default: int | None,
    overrides: Mapping[Suffix, int],
) -> int | None:
    """Return the effective height for files directly inside ``suffix``.

    The matching override with the most components wins. Among matches of
    equal depth the lexicographically smallest key is chosen, so the result
    never depends on mapping order. Without any match the default applies.
    """
    best_key: Suffix | None = None
    for key in overrides:
        if not _is_prefix(key, suffix):
            continue
        if (
            best_key is None
            or len(key) > len(best_key)
            or (len(key) == len(best_key) and key < best_key)
        ):
            best_key = key

    if best_key is None:
        return default
    return overrides[best_key]


def describe(height: int | None) -> str:
    if height is None:
        return "re-encoding without scaling"
    return f"scaling to max {height}p"
