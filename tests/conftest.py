"""Shared fakes for the downscaler tests."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from tree_walker import DirEntry, EntryKind


@dataclass
class FakeEncoder:
    """Writes a marker file instead of running ffmpeg."""

    returncode: int = 0
    payload: bytes = b"encoded"
    calls: list[tuple[Path, Path, int | None]] = field(default_factory=list)

    def encode(self, input_path: Path, output_path: Path, height: int | None) -> int:
        self.calls.append((input_path, output_path, height))
        if self.returncode == 0:
            output_path.write_bytes(self.payload + b":" + input_path.read_bytes())
        else:
            # a failing encoder may still leave a partial file behind
            output_path.write_bytes(b"partial")
        return self.returncode


@dataclass
class RecordingTranscoder:
    """Records transfer units; optionally materialises the destination."""

    materialise: bool = True
    calls: list[tuple[Path, Path, int | None]] = field(default_factory=list)

    def transcode(self, source: Path, destination: Path, height: int | None) -> None:
        self.calls.append((source, destination, height))
        if self.materialise:
            destination.write_bytes(b"done")


def make_lister(root: Path, tree: Mapping):
    """Build a directory lister over a nested dict.

    Dicts are directories, ``None`` is a regular file and the string
    ``"other"`` is any other entry type.
    """

    def lister(path: Path) -> list[DirEntry]:
        node = tree
        for part in path.relative_to(root).parts:
            node = node[part]
        entries = []
        for name, child in node.items():
            if isinstance(child, Mapping):
                kind = EntryKind.DIRECTORY
            elif child is None:
                kind = EntryKind.FILE
            else:
                kind = EntryKind.OTHER
            entries.append(DirEntry(name, kind))
        return entries

    return lister


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def recording_transcoder() -> RecordingTranscoder:
    return RecordingTranscoder()
