"""
Shared fixtures for the TreeCopy test suite.

Qt runs on the offscreen platform so the suite works without a display.
"""

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from treecopy.core.folder.comparer import Comparator
from treecopy.core.folder.paths import PathMapper
from treecopy.core.folder.scanner import TreeScanner
from treecopy.core.folder.selection import smart_exclusions
from treecopy.core.models import FileNode, OverwriteRule
from treecopy.services.settings import SettingsManager


# Fixed reference time, whole seconds so every filesystem can store it
T0 = float(int(time.time()) - 10_000)


def build_tree(root: Path, layout: dict) -> Path:
    """
    Create files and directories from a nested dict.

    String or bytes values become files, dict values become directories.
    """
    root.mkdir(parents=True, exist_ok=True)
    for name, content in layout.items():
        path = root / name
        if isinstance(content, dict):
            build_tree(path, content)
        elif isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


def set_mtime(path: Path, timestamp: float) -> None:
    os.utime(path, (timestamp, timestamp))


def find(nodes, relative: str) -> FileNode:
    """Look up a scanned node by its slash-separated relative path."""
    parts = relative.split("/")
    level = nodes
    node = None
    for part in parts:
        node = next(n for n in level if n.name == part)
        level = node.children or ()
    return node


def make_file(path: str, mtime: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc), size: int = 0) -> FileNode:
    return FileNode(path=Path(path), is_directory=False, modified_time=mtime, size=size)


def make_dir(path: str, *children: FileNode) -> FileNode:
    return FileNode(
        path=Path(path),
        is_directory=True,
        modified_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
        children=tuple(children),
    )


@pytest.fixture
def source_dir(tmp_path) -> Path:
    path = tmp_path / "src"
    path.mkdir()
    return path


@pytest.fixture
def dest_dir(tmp_path) -> Path:
    path = tmp_path / "dst"
    path.mkdir()
    return path


@pytest.fixture
def settings_manager(tmp_path) -> SettingsManager:
    return SettingsManager(tmp_path / "config" / "settings.json")


@pytest.fixture
def analyze():
    """
    Run scan, compare and smart select over two roots.

    Returns (nodes, statuses, excluded).
    """
    def _analyze(source, dest, rule=OverwriteRule.IF_NEWER, compare_by_hash=False,
                 include_hidden=False, recursive=True):
        nodes = TreeScanner().scan(source, include_hidden=include_hidden)
        statuses = Comparator().compare_tree(
            nodes, PathMapper(source, dest), rule, compare_by_hash, recursive
        )
        return nodes, statuses, smart_exclusions(nodes, statuses)
    return _analyze
