import os
from pathlib import Path

import pytest

from mermaid_png.locator import LocatorError, _is_hidden, locate_files, split_pattern


def touch(path: Path, text: str = "graph TD; A-->B") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_split_pattern(tmp_path: Path):
    assert split_pattern("diagrams/**/*.mmd", tmp_path) == ((tmp_path / "diagrams").resolve(), "**/*.mmd")
    assert split_pattern("*.mmd", tmp_path) == (tmp_path.resolve(), "*.mmd")
    assert split_pattern("a/b.mmd", tmp_path) == ((tmp_path / "a").resolve(), "b.mmd")
    base, rest = split_pattern(str(tmp_path / "x" / "*.mmd"))
    assert base == (tmp_path / "x").resolve()
    assert rest == "*.mmd"


def test_empty_pattern_is_fatal(tmp_path: Path):
    with pytest.raises(LocatorError):
        locate_files("   ", cwd=tmp_path)


def test_recursive_sorted_absolute(tmp_path: Path):
    b = touch(tmp_path / "diagrams" / "b.mmd")
    a = touch(tmp_path / "diagrams" / "a.mmd")
    nested = touch(tmp_path / "diagrams" / "sub" / "deep" / "c.mmd")
    touch(tmp_path / "diagrams" / "notes.md")
    touch(tmp_path / "elsewhere" / "d.mmd")

    found = locate_files("diagrams/**/*.mmd", cwd=tmp_path)
    assert found == sorted([a.resolve(), b.resolve(), nested.resolve()])
    assert all(p.is_absolute() for p in found)


def test_case_insensitive(tmp_path: Path):
    upper = touch(tmp_path / "diagrams" / "FLOW.MMD")
    found = locate_files("diagrams/**/*.mmd", cwd=tmp_path)
    assert found == [upper.resolve()]


def test_directories_excluded(tmp_path: Path):
    (tmp_path / "diagrams" / "folder.mmd").mkdir(parents=True)
    f = touch(tmp_path / "diagrams" / "folder.mmd" / "inner.mmd")
    assert locate_files("diagrams/**/*.mmd", cwd=tmp_path) == [f.resolve()]


def test_hidden_excluded_unless_requested(tmp_path: Path):
    visible = touch(tmp_path / "diagrams" / "v.mmd")
    dotfile = touch(tmp_path / "diagrams" / ".hidden.mmd")
    in_dotdir = touch(tmp_path / "diagrams" / ".cache" / "x.mmd")

    assert locate_files("diagrams/**/*.mmd", cwd=tmp_path) == [visible.resolve()]
    assert locate_files("diagrams/**/*.mmd", include_hidden=True, cwd=tmp_path) == sorted(
        [visible.resolve(), dotfile.resolve(), in_dotdir.resolve()]
    )


def test_literal_path(tmp_path: Path):
    f = touch(tmp_path / "diagrams" / "one.mmd")
    touch(tmp_path / "diagrams" / "two.mmd")
    assert locate_files("diagrams/one.mmd", cwd=tmp_path) == [f.resolve()]


def test_missing_base_matches_nothing(tmp_path: Path):
    assert locate_files("diagrams/**/*.mmd", cwd=tmp_path) == []


def test_base_is_a_file(tmp_path: Path):
    touch(tmp_path / "diagrams")
    with pytest.raises(LocatorError):
        locate_files("diagrams/**/*.mmd", cwd=tmp_path)


def test_trailing_globstar_matches_every_file(tmp_path: Path):
    a = touch(tmp_path / "diagrams" / "a.mmd")
    b = touch(tmp_path / "diagrams" / "sub" / "b.mermaid")
    (tmp_path / "diagrams" / "empty").mkdir()
    assert locate_files("diagrams/**", cwd=tmp_path) == sorted([a.resolve(), b.resolve()])


def test_parent_components_are_not_hidden(tmp_path: Path):
    base = tmp_path / "diagrams"
    assert not _is_hidden(base / "sub" / ".." / "a.mmd", base)
    assert not _is_hidden(base / "." / "a.mmd", base)
    assert _is_hidden(base / "sub" / ".." / ".a.mmd", base)
    assert _is_hidden(base / ".git" / "a.mmd", base)


def test_malformed_globstar_is_fatal(tmp_path: Path):
    touch(tmp_path / "diagrams" / "a.mmd")
    with pytest.raises(LocatorError, match="whole path component"):
        locate_files("diagrams/a**b/*.mmd", cwd=tmp_path)


@pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0, reason="root ignores permissions")
def test_unreadable_base_is_fatal(tmp_path: Path):
    base = tmp_path / "diagrams"
    touch(base / "a.mmd")
    base.chmod(0)
    try:
        with pytest.raises(LocatorError, match="Cannot read directory"):
            locate_files("diagrams/**/*.mmd", cwd=tmp_path)
    finally:
        base.chmod(0o755)
