"""Tests for FixApplier and RollbackExecutor."""

from pathlib import Path
from unittest.mock import patch

import pytest

from fix_verifier.agents.exceptions import ApplyError, RollbackFailure
from fix_verifier.agents.fix_applier import FixApplier, RollbackExecutor
from fix_verifier.models import BackupEntry, BackupSet, FileChange, FixResult
from fix_verifier.utils.diff_generator import generate_unified_diff


def make_change(workspace: Path, relative_path: str, modified: str, original: str = "") -> FileChange:
    return FileChange(
        path=str((workspace / relative_path).resolve()),
        relative_path=relative_path,
        original_content=original,
        modified_content=modified,
        diff=generate_unified_diff(relative_path, original, modified),
    )


def make_fix(*changes: FileChange) -> FixResult:
    return FixResult(changes=list(changes), explanation="test fix", approach="test approach")


def snapshot(root: Path) -> dict[str, bytes]:
    """Every file and directory under ``root`` with its bytes (dirs map to b"")."""
    return {
        str(path.relative_to(root)): (path.read_bytes() if path.is_file() else b"")
        for path in sorted(root.rglob("*"))
    }


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------
class TestFixApplier:
    def test_apply_writes_and_backs_up(self, workspace):
        original = (workspace / "src" / "counter.js").read_text()
        fix = make_fix(make_change(workspace, "src/counter.js", "fixed\n", original))

        backup = FixApplier(str(workspace)).apply(fix)

        assert (workspace / "src" / "counter.js").read_text() == "fixed\n"
        assert len(backup.files) == 1
        assert backup.files[0].original_content == original
        assert backup.files[0].existed is True
        assert backup.created_dirs == []

    def test_new_file_records_absence_and_created_dirs(self, workspace):
        fix = make_fix(make_change(workspace, "src/lib/util/helpers.js", "export {};\n"))

        backup = FixApplier(str(workspace)).apply(fix)

        assert backup.files[0].existed is False
        assert backup.created_dirs == [
            str((workspace / "src" / "lib").resolve()),
            str((workspace / "src" / "lib" / "util").resolve()),
        ]
        assert (workspace / "src" / "lib" / "util" / "helpers.js").is_file()

    def test_duplicate_path_backed_up_once(self, workspace):
        original = (workspace / "src" / "counter.js").read_text()
        fix = make_fix(
            make_change(workspace, "src/counter.js", "first\n", original),
            make_change(workspace, "src/counter.js", "second\n", original),
        )

        backup = FixApplier(str(workspace)).apply(fix)

        assert len(backup.files) == 1
        assert backup.files[0].original_content == original
        assert (workspace / "src" / "counter.js").read_text() == "second\n"

    def test_path_outside_workspace_rejected(self, workspace, tmp_path):
        outside = tmp_path / "outside.js"
        change = FileChange(
            path=str(outside),
            relative_path="../outside.js",
            original_content="",
            modified_content="evil",
            diff="",
        )
        with pytest.raises(ApplyError) as exc_info:
            FixApplier(str(workspace)).apply(make_fix(change))
        assert exc_info.value.backup.files == []
        assert not outside.exists()

    def test_partial_apply_carries_backup(self, workspace):
        (workspace / "src" / "components").mkdir()
        original = (workspace / "src" / "counter.js").read_text()
        fix = make_fix(
            make_change(workspace, "src/counter.js", "fixed\n", original),
            make_change(workspace, "src/components", "not a file\n"),
        )

        with pytest.raises(ApplyError) as exc_info:
            FixApplier(str(workspace)).apply(fix)

        partial = exc_info.value.backup
        assert [entry.path for entry in partial.files] == [
            str((workspace / "src" / "counter.js").resolve())
        ]
        RollbackExecutor().rollback(partial)
        assert (workspace / "src" / "counter.js").read_text() == original

    def test_partial_mkdir_still_recorded(self, workspace):
        before = snapshot(workspace)
        outer = workspace / "src" / "lib"
        real_mkdir = Path.mkdir

        def mkdir_then_fail(self, *args, **kwargs):
            real_mkdir(outer)
            raise PermissionError(13, "Permission denied", str(self))

        fix = make_fix(make_change(workspace, "src/lib/util/helpers.js", "export {};\n"))
        with patch.object(Path, "mkdir", mkdir_then_fail):
            with pytest.raises(ApplyError) as exc_info:
                FixApplier(str(workspace)).apply(fix)

        assert str(outer.resolve()) in exc_info.value.backup.created_dirs
        RollbackExecutor().rollback(exc_info.value.backup)
        assert snapshot(workspace) == before


# ---------------------------------------------------------------------------
# Rollback
# ---------------------------------------------------------------------------
class TestRollbackExecutor:
    def test_apply_then_rollback_restores_exact_bytes(self, workspace):
        crlf = workspace / "src" / "windows.js"
        crlf.write_bytes(b"line one\r\nline two\r\n")
        before = snapshot(workspace)
        fix = make_fix(
            make_change(workspace, "src/windows.js", "changed\n", "line one\r\nline two\r\n"),
            make_change(workspace, "src/counter.js", "fixed\n"),
            make_change(workspace, "src/new/dir/extra.js", "new\n"),
        )

        backup = FixApplier(str(workspace)).apply(fix)
        RollbackExecutor().rollback(backup)

        assert snapshot(workspace) == before

    def test_rollback_is_idempotent(self, workspace):
        before = snapshot(workspace)
        backup = FixApplier(str(workspace)).apply(
            make_fix(
                make_change(workspace, "src/counter.js", "fixed\n"),
                make_change(workspace, "src/added.js", "new\n"),
            )
        )
        executor = RollbackExecutor()
        executor.rollback(backup)
        executor.rollback(backup)
        assert snapshot(workspace) == before

    def test_created_dir_kept_when_not_empty(self, workspace):
        backup = FixApplier(str(workspace)).apply(
            make_fix(make_change(workspace, "generated/out.js", "x\n"))
        )
        (workspace / "generated" / "user-file.txt").write_text("keep me")

        RollbackExecutor().rollback(backup)

        assert not (workspace / "generated" / "out.js").exists()
        assert (workspace / "generated" / "user-file.txt").read_text() == "keep me"

    def test_failure_still_attempts_every_entry(self, workspace):
        blocker = workspace / "blocker"
        blocker.write_text("regular file")
        good = workspace / "src" / "counter.js"
        good.write_text("modified\n")
        bad_path = str(blocker / "child.js")
        backup = BackupSet(files=[
            BackupEntry(path=bad_path, original_content="x"),
            BackupEntry(path=str(good), original_content="original\n"),
        ])

        with pytest.raises(RollbackFailure) as exc_info:
            RollbackExecutor().rollback(backup)

        assert exc_info.value.failed_paths == [bad_path]
        assert good.read_text() == "original\n"
