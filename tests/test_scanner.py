import os

import pytest

from ingestion.scanner import ContentScanner, normalize_extensions


def test_normalize_extensions():
    assert normalize_extensions(["PY", ".md", " txt ", ""]) == [".py", ".md", ".txt"]


def test_scan_filters_by_extension_recursively(source_tree):
    found = ContentScanner().scan(source_tree, ["py", "md"])
    names = [os.path.basename(p) for p in found]
    assert sorted(names) == ["README.md", "main.py"]
    assert all(os.path.isabs(p) for p in found)


def test_scan_results_are_sorted(source_tree):
    found = ContentScanner().scan(source_tree, ["py", "js", "md", "txt"])
    assert found == sorted(found)
    assert len(found) == 4


def test_scan_ignores_symlinks(source_tree):
    target = source_tree / "pkg" / "main.py"
    link = source_tree / "linked.py"
    try:
        link.symlink_to(target)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported here")
    found = ContentScanner().scan(source_tree, ["py"])
    assert str(link) not in found
    assert len(found) == 1


def test_scan_missing_root_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ContentScanner().scan(tmp_path / "nope", ["py"])


def test_scan_file_root_raises(tmp_path):
    f = tmp_path / "file.py"
    f.write_text("x = 1\n")
    with pytest.raises(NotADirectoryError):
        ContentScanner().scan(f, ["py"])


def test_read_content_ignores_bad_bytes(tmp_path):
    f = tmp_path / "mixed.txt"
    f.write_bytes(b"hello \xff world")
    assert ContentScanner.read_content(f) == "hello  world"


def test_read_content_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        ContentScanner.read_content(tmp_path / "missing.txt")
