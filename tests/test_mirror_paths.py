"""Tests for suffix projection."""

from pathlib import Path

import pytest

from mirror_paths import extend, format_suffix, project, relative_to_suffix


def test_project_joins_components_in_order():
    assert project(Path("/src"), ("movies", "action")) == Path("/src/movies/action")


def test_project_empty_suffix_is_root():
    assert project(Path("/dst"), ()) == Path("/dst")


def test_same_suffix_projects_onto_both_roots():
    suffix = ("shows", "season 1")
    src = project(Path("/src"), suffix)
    dst = project(Path("/dst"), suffix)
    assert src.relative_to("/src") == dst.relative_to("/dst")


def test_extend_returns_new_suffix():
    suffix = ("a",)
    deeper = extend(suffix, "b")
    assert deeper == ("a", "b")
    assert suffix == ("a",)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("", ()),
        (".", ()),
        ("movies", ("movies",)),
        ("movies/action/", ("movies", "action")),
        ("./movies//action", ("movies", "action")),
    ],
)
def test_relative_to_suffix(text, expected):
    assert relative_to_suffix(text) == expected


@pytest.mark.parametrize("text", ["/movies", "movies/../other"])
def test_relative_to_suffix_rejects_escaping_paths(text):
    with pytest.raises(ValueError):
        relative_to_suffix(text)


def test_format_suffix():
    assert format_suffix(()) == "."
    assert format_suffix(("a", "b")) == "a/b"
