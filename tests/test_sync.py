"""
Tests for SyncExecutor

End-to-end runs over real temporary directories plus progress accounting
with a fake clock.
"""
import errno
import os
import sys
from pathlib import Path

import pytest

from conftest import T0, build_tree, find, set_mtime
from treecopy.core.folder.sync import RATE_WARMUP_SECONDS, SyncExecutor, SyncOptions, build_plan
from treecopy.core.models import OverwriteRule, SyncStatus


class FakeClock:
    """Advances by a fixed step every time it is read."""

    def __init__(self, step: float):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def run(nodes, statuses, excluded, source, dest, **kwargs):
    events = []
    items = []
    executor = SyncExecutor(**kwargs)
    result = executor.execute(
        nodes, statuses, excluded, source, dest,
        progress_callback=events.append,
        item_callback=lambda node, status, error: items.append((node, status, error)),
    )
    return result, events, items


class TestScenarios:
    """Test the basic add/update/skip/nested flows."""

    def test_missing_file_is_added(self, source_dir, dest_dir, analyze):
        (source_dir / "FileA.txt").write_bytes(b"fresh content")
        set_mtime(source_dir / "FileA.txt", T0)

        nodes, statuses, excluded = analyze(source_dir, dest_dir)
        node = find(nodes, "FileA.txt")
        assert statuses[node.id] == SyncStatus.ADD

        result, _, _ = run(nodes, statuses, excluded, source_dir, dest_dir)

        assert (dest_dir / "FileA.txt").read_bytes() == b"fresh content"
        assert result.statuses[node.id] == SyncStatus.DONE
        assert result.success

    def test_stale_file_is_updated(self, source_dir, dest_dir, analyze):
        (source_dir / "FileA.txt").write_bytes(b"version 2")
        (dest_dir / "FileA.txt").write_bytes(b"version 1")
        set_mtime(source_dir / "FileA.txt", T0)
        set_mtime(dest_dir / "FileA.txt", T0 - 100)

        nodes, statuses, excluded = analyze(source_dir, dest_dir)
        node = find(nodes, "FileA.txt")
        assert statuses[node.id] == SyncStatus.UPDATE

        result, _, _ = run(nodes, statuses, excluded, source_dir, dest_dir)

        assert (dest_dir / "FileA.txt").read_bytes() == b"version 2"
        assert result.statuses[node.id] == SyncStatus.DONE

    def test_newer_destination_is_untouched(self, source_dir, dest_dir, analyze):
        (source_dir / "FileA.txt").write_bytes(b"same")
        (dest_dir / "FileA.txt").write_bytes(b"same")
        set_mtime(source_dir / "FileA.txt", T0)
        set_mtime(dest_dir / "FileA.txt", T0 + 100)

        nodes, statuses, excluded = analyze(source_dir, dest_dir)
        node = find(nodes, "FileA.txt")
        assert statuses[node.id] == SyncStatus.SKIP

        result, events, _ = run(nodes, statuses, excluded, source_dir, dest_dir)

        assert result.is_empty
        assert events == []
        assert os.stat(dest_dir / "FileA.txt").st_mtime == T0 + 100

    def test_nested_file_creates_directory(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"Sub": {"FileD.txt": b"deep"}})

        nodes, statuses, excluded = analyze(source_dir, dest_dir)
        result, _, _ = run(nodes, statuses, excluded, source_dir, dest_dir)

        assert (dest_dir / "Sub").is_dir()
        assert (dest_dir / "Sub" / "FileD.txt").read_bytes() == b"deep"
        assert result.succeeded == 2
        assert result.dest_item_count == 2

    def test_directory_planned_before_contents(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"Sub": {"Inner": {"f.txt": "x"}}, "z.txt": "x"})

        nodes, statuses, excluded = analyze(source_dir, dest_dir)
        plan = build_plan(nodes, statuses, excluded)

        assert [item.node.name for item in plan] == ["Sub", "Inner", "f.txt", "z.txt"]


class TestRuns:
    """Test run-level behaviour."""

    def test_second_run_is_empty(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"a.txt": "1", "docs": {"b.txt": "22", "c": {"d.txt": "333"}}})

        run(*analyze(source_dir, dest_dir), source_dir, dest_dir)
        nodes, statuses, excluded = analyze(source_dir, dest_dir)

        assert not any(s.is_actionable for s in statuses.values())
        assert build_plan(nodes, statuses, excluded) == []

    def test_excluded_directory_is_not_entered(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"keep.txt": "x", "skip": {"inner.txt": "x"}})

        nodes, statuses, excluded = analyze(source_dir, dest_dir)
        excluded.add(find(nodes, "skip").id)
        result, _, _ = run(nodes, statuses, excluded, source_dir, dest_dir)

        assert (dest_dir / "keep.txt").exists()
        assert not (dest_dir / "skip").exists()
        assert result.planned == 1

    def test_empty_plan_succeeds(self, source_dir, dest_dir):
        result, events, items = run([], {}, set(), source_dir, dest_dir)

        assert result.success
        assert result.is_empty
        assert events == [] and items == []

    def test_recheck_skips_items_that_became_current(self, source_dir, dest_dir, analyze):
        (source_dir / "a.txt").write_text("source")
        set_mtime(source_dir / "a.txt", T0)
        nodes, statuses, excluded = analyze(source_dir, dest_dir)

        # Someone else wrote a newer copy between compare and execute
        (dest_dir / "a.txt").write_text("theirs")
        set_mtime(dest_dir / "a.txt", T0 + 100)
        result, _, items = run(nodes, statuses, excluded, source_dir, dest_dir)

        assert (dest_dir / "a.txt").read_text() == "theirs"
        assert result.skipped == 1
        assert items[0][1] == SyncStatus.SKIP

    def test_failure_is_logged_and_batch_continues(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"a.txt": "a", "b.txt": "b", "c.txt": "c"})
        nodes, statuses, excluded = analyze(source_dir, dest_dir)
        # A directory where a file must go makes the copy fail
        (dest_dir / "b.txt").mkdir()
        statuses[find(nodes, "b.txt").id] = SyncStatus.ADD

        result, events, items = run(
            nodes, statuses, excluded, source_dir, dest_dir,
            options=SyncOptions(overwrite_rule=OverwriteRule.ALWAYS),
        )

        assert result.failed == 1
        assert result.succeeded == 2
        assert not result.success
        assert len(result.errors) == 1
        assert result.errors[0].path == find(nodes, "b.txt").path
        assert [status for _, status, _ in items] == [SyncStatus.DONE, SyncStatus.ERROR, SyncStatus.DONE]
        assert items[1][2] is result.errors[0]
        assert (dest_dir / "c.txt").read_text() == "c"
        assert len(events) == 3

    def test_always_overwrites_newer_destination(self, source_dir, dest_dir, analyze):
        (source_dir / "a.txt").write_text("source")
        (dest_dir / "a.txt").write_text("destination")
        set_mtime(source_dir / "a.txt", T0)
        set_mtime(dest_dir / "a.txt", T0 + 100)

        nodes, statuses, excluded = analyze(source_dir, dest_dir, rule=OverwriteRule.ALWAYS)
        run(nodes, statuses, excluded, source_dir, dest_dir,
            options=SyncOptions(overwrite_rule=OverwriteRule.ALWAYS))

        assert (dest_dir / "a.txt").read_text() == "source"

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    def test_existing_destination_link_is_replaced(self, source_dir, dest_dir, tmp_path, analyze):
        outside = tmp_path / "outside.txt"
        outside.write_text("keep me")
        (source_dir / "a.txt").write_text("source")
        os.symlink(outside, dest_dir / "a.txt")

        nodes, statuses, excluded = analyze(source_dir, dest_dir, rule=OverwriteRule.ALWAYS)
        run(nodes, statuses, excluded, source_dir, dest_dir,
            options=SyncOptions(overwrite_rule=OverwriteRule.ALWAYS))

        assert not (dest_dir / "a.txt").is_symlink()
        assert (dest_dir / "a.txt").read_text() == "source"
        assert outside.read_text() == "keep me"

    def test_vanished_source_keeps_destination(self, source_dir, dest_dir, analyze):
        (source_dir / "FileA.txt").write_text("source")
        (dest_dir / "FileA.txt").write_text("previous")
        nodes, statuses, excluded = analyze(source_dir, dest_dir, rule=OverwriteRule.ALWAYS)
        (source_dir / "FileA.txt").unlink()

        result, _, _ = run(nodes, statuses, excluded, source_dir, dest_dir,
                           options=SyncOptions(overwrite_rule=OverwriteRule.ALWAYS))

        assert result.failed == 1
        assert (dest_dir / "FileA.txt").read_text() == "previous"
        assert list(dest_dir.iterdir()) == [dest_dir / "FileA.txt"]

    def test_interrupted_write_keeps_destination(self, source_dir, dest_dir, analyze, monkeypatch):
        (source_dir / "FileA.txt").write_text("source")
        (dest_dir / "FileA.txt").write_text("previous")
        set_mtime(dest_dir / "FileA.txt", T0)
        nodes, statuses, excluded = analyze(source_dir, dest_dir, rule=OverwriteRule.ALWAYS)

        def disk_full(*args, **kwargs):
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr(os, "utime", disk_full)
        result, _, _ = run(nodes, statuses, excluded, source_dir, dest_dir,
                           options=SyncOptions(overwrite_rule=OverwriteRule.ALWAYS))
        monkeypatch.undo()

        assert result.failed == 1
        assert result.errors[0].message == "No space left on device"
        assert (dest_dir / "FileA.txt").read_text() == "previous"
        assert os.stat(dest_dir / "FileA.txt").st_mtime == T0
        assert list(dest_dir.iterdir()) == [dest_dir / "FileA.txt"]


class TestAttributes:
    """Test timestamp handling."""

    def test_preserves_source_mtime(self, source_dir, dest_dir, analyze):
        (source_dir / "a.txt").write_text("x")
        set_mtime(source_dir / "a.txt", T0)

        run(*analyze(source_dir, dest_dir), source_dir, dest_dir)

        assert os.stat(dest_dir / "a.txt").st_mtime == T0

    def test_resets_mtime_when_not_preserving(self, source_dir, dest_dir, analyze):
        (source_dir / "a.txt").write_text("x")
        set_mtime(source_dir / "a.txt", T0)

        run(*analyze(source_dir, dest_dir), source_dir, dest_dir,
            options=SyncOptions(preserve_attributes=False))

        assert os.stat(dest_dir / "a.txt").st_mtime > T0 + 1000


class TestProgress:
    """Test progress, rate and ETA accounting."""

    def test_counts_and_bytes(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"a.bin": b"x" * 100, "b.bin": b"y" * 300})

        result, events, _ = run(*analyze(source_dir, dest_dir), source_dir, dest_dir)

        assert [(e.items_completed, e.bytes_copied) for e in events] == [(1, 100), (2, 400)]
        assert all(e.total_items == 2 and e.total_bytes == 400 for e in events)
        assert events[-1].fraction == 1.0
        assert result.bytes_copied == 400

    def test_bytes_copied_counts_bytes_written(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"a.bin": b"x" * 100})
        nodes, statuses, excluded = analyze(source_dir, dest_dir)
        # The file grew between the scan and the copy
        (source_dir / "a.bin").write_bytes(b"x" * 250)

        result, events, _ = run(nodes, statuses, excluded, source_dir, dest_dir)

        assert result.bytes_copied == 250
        assert events[-1].total_bytes == 100

    def test_rate_unknown_during_warmup(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"a.bin": b"x" * 100, "b.bin": b"y" * 100})

        _, events, _ = run(*analyze(source_dir, dest_dir), source_dir, dest_dir,
                           clock=FakeClock(step=0.01))

        assert all(e.elapsed < RATE_WARMUP_SECONDS for e in events)
        assert all(e.bytes_per_second is None and e.eta_seconds is None for e in events)

    def test_rate_and_eta_after_warmup(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"a.bin": b"x" * 100, "b.bin": b"y" * 100})

        _, events, _ = run(*analyze(source_dir, dest_dir), source_dir, dest_dir,
                           clock=FakeClock(step=1.0))

        first = events[0]
        assert first.elapsed == 1.0
        assert first.bytes_per_second == pytest.approx(100.0)
        assert first.eta_seconds == pytest.approx(1.0)
        assert events[-1].eta_seconds == 0

    def test_directories_only_have_no_rate(self, source_dir, dest_dir, analyze):
        build_tree(source_dir, {"one": {}, "two": {}})

        _, events, _ = run(*analyze(source_dir, dest_dir), source_dir, dest_dir,
                           clock=FakeClock(step=1.0))

        assert events[-1].total_bytes == 0
        assert all(e.bytes_per_second is None for e in events)
