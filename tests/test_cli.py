"""
Tests for the command line entry point.
"""
import sys

import pytest
from PyQt6.QtCore import QTimer

from conftest import T0, build_tree, set_mtime
from treecopy import main as cli
from treecopy.core.models import OverwriteRule
from treecopy.services.settings import SettingsManager, SyncSettings


class TestParseArguments:
    """Test argument parsing."""

    def test_positional_roots(self):
        args = cli.parse_arguments(["src", "dst"])
        assert args.source == "src"
        assert args.destination == "dst"
        assert not args.dry_run

    def test_no_overrides_by_default(self):
        args = cli.parse_arguments([])
        assert args.overwrite_rule is None
        assert args.include_hidden is None
        assert args.recursive is None
        assert args.preserve_attributes is None
        assert args.compare_by_hash is None
        assert args.log_level == "WARNING"

    def test_option_overrides(self):
        args = cli.parse_arguments([
            "--rule", "always", "--hidden", "--no-recursive", "--no-preserve",
            "--hash", "--hash-algorithm", "xxh64", "-n", "-v",
        ])
        assert args.overwrite_rule == OverwriteRule.ALWAYS
        assert args.include_hidden is True
        assert args.recursive is False
        assert args.preserve_attributes is False
        assert args.compare_by_hash is True
        assert args.hash_algorithm == "xxh64"
        assert args.dry_run
        assert args.log_level == "INFO"

    def test_invalid_rule_is_usage_error(self):
        with pytest.raises(SystemExit) as excinfo:
            cli.parse_arguments(["--rule", "sometimes"])
        assert excinfo.value.code == 2

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            cli.parse_arguments(["--version"])
        assert cli.__version__ in capsys.readouterr().out


def test_apply_overrides_keeps_unset_options():
    stored = SyncSettings(copy_hidden_files=True, compare_by_hash=True)
    args = cli.parse_arguments(["--rule", "never"])

    merged = cli.apply_overrides(stored, args)

    assert merged.overwrite_rule == OverwriteRule.NEVER
    assert merged.copy_hidden_files is True
    assert merged.compare_by_hash is True


def test_format_helpers():
    assert cli.format_size(512) == "512 B"
    assert cli.format_size(2048) == "2.0 KB"
    assert cli.format_duration(75) == "1:15"
    assert cli.format_duration(3725) == "1:02:05"


# =============================================================================
# Full runs
# =============================================================================

@pytest.fixture
def run_main(qapp, tmp_path, monkeypatch):
    """Call main() with a private settings file and untouched process hooks."""
    config = tmp_path / "config" / "settings.json"
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(cli, "setup_signal_handlers", lambda: QTimer())

    def _run(*argv):
        return cli.main(["--config", str(config), *map(str, argv)])

    _run.config = config
    return _run


def test_dry_run_prints_plan(run_main, source_dir, dest_dir, capsys):
    build_tree(source_dir, {"Sub": {"FileD.txt": "deep"}, "FileA.txt": "top"})

    assert run_main("--dry-run", source_dir, dest_dir) == 0

    out = capsys.readouterr().out
    assert "add     FileA.txt" in out
    assert "3 items" in out
    assert list(dest_dir.iterdir()) == []


def test_copy_run(run_main, source_dir, dest_dir, capsys):
    build_tree(source_dir, {"Sub": {"FileD.txt": "deep"}, "FileA.txt": "top"})

    assert run_main(source_dir, dest_dir) == 0

    assert (dest_dir / "Sub" / "FileD.txt").read_text() == "deep"
    out = capsys.readouterr().out
    assert "3 copied, 0 skipped, 0 failed of 3 planned" in out


def test_list_marks_selection(run_main, source_dir, dest_dir, capsys):
    build_tree(source_dir, {"new.txt": "x", "old.txt": "y"})
    build_tree(dest_dir, {"old.txt": "y"})
    set_mtime(source_dir / "old.txt", T0)
    set_mtime(dest_dir / "old.txt", T0)

    assert run_main("--list", "--dry-run", source_dir, dest_dir) == 0

    out = capsys.readouterr().out
    assert "[x] + new.txt" in out
    assert "[ ]   old.txt" in out


def test_failed_items_exit_one(run_main, source_dir, dest_dir, capsys):
    build_tree(source_dir, {"a.txt": "a"})
    (dest_dir / "a.txt").mkdir()

    assert run_main("--rule", "always", source_dir, dest_dir) == 1

    out = capsys.readouterr().out
    assert "1 failed" in out
    assert "a.txt" in out


def test_missing_destination_is_usage_error(run_main, source_dir, capsys):
    assert run_main(source_dir) == 2
    assert "Destination required" in capsys.readouterr().err


def test_missing_source_is_usage_error(run_main, tmp_path, dest_dir):
    assert run_main(tmp_path / "nope", dest_dir) == 2


def test_remembered_roots_are_reused(run_main, source_dir, dest_dir):
    build_tree(source_dir, {"a.txt": "a"})
    assert run_main("--dry-run", source_dir, dest_dir) == 0

    assert run_main() == 0

    assert (dest_dir / "a.txt").read_text() == "a"


def test_save_settings(run_main, source_dir, dest_dir):
    assert run_main("--dry-run", "--hidden", "--save-settings", source_dir, dest_dir) == 0

    stored = SettingsManager(run_main.config).settings.sync
    assert stored.copy_hidden_files is True


def test_one_off_overrides_are_not_saved(run_main, source_dir, dest_dir):
    assert run_main("--dry-run", "--hidden", source_dir, dest_dir) == 0

    stored = SettingsManager(run_main.config).settings.sync
    assert stored.copy_hidden_files is False
