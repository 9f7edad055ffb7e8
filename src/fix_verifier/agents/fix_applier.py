"""Writes fixes to the workspace and restores them from backups."""

import logging
from pathlib import Path

from fix_verifier.agents.exceptions import ApplyError, RollbackFailure
from fix_verifier.models import BackupEntry, BackupSet, FixResult
from fix_verifier.utils.workspace import (
    PathOutsideWorkspaceError,
    read_text_exact,
    resolve_in_workspace,
    write_text_exact,
)

logger = logging.getLogger(__name__)


class FixApplier:
    """Applies a FixResult, snapshotting every path before it is overwritten."""

    def __init__(self, workspace_root: str) -> None:
        self.workspace_root = str(Path(workspace_root).resolve())

    def apply(self, fix: FixResult) -> BackupSet:
        """Write each change's ``modified_content`` and return the backup set.

        Each path is backed up once, before its first write. Parent directories
        are created as needed and recorded so rollback can remove them.

        Raises:
            ApplyError: If a path escapes the workspace or a read/write fails.
                ``exc.backup`` covers every path touched so far.
        """
        backup = BackupSet()
        for change in fix.changes:
            try:
                target = resolve_in_workspace(self.workspace_root, change.path)
            except PathOutsideWorkspaceError as exc:
                raise ApplyError(str(exc), backup) from exc

            if target.exists() and not target.is_file():
                raise ApplyError(f"Cannot write {change.relative_path}: not a regular file", backup)

            key = str(target)
            try:
                if not backup.has_path(key):
                    if target.is_file():
                        entry = BackupEntry(path=key, original_content=read_text_exact(target))
                    else:
                        entry = BackupEntry(path=key, original_content="", existed=False)
                    backup.files.append(entry)

                missing = self._missing_parents(target)
                # Recorded before mkdir so a partial mkdir is still undone
                backup.created_dirs.extend(missing)
                if missing:
                    target.parent.mkdir(parents=True, exist_ok=True)
                write_text_exact(target, change.modified_content)
            except (OSError, UnicodeDecodeError) as exc:
                raise ApplyError(
                    f"Failed to write {change.relative_path}: {exc}", backup
                ) from exc
            logger.debug("Wrote %s", change.relative_path)

        logger.info("Applied %d change(s); %d file(s) backed up", len(fix.changes), len(backup.files))
        return backup

    @staticmethod
    def _missing_parents(target: Path) -> list[str]:
        """Parent directories of ``target`` that do not exist yet, outermost first."""
        missing: list[Path] = []
        parent = target.parent
        while not parent.exists():
            missing.append(parent)
            parent = parent.parent
        return [str(path) for path in reversed(missing)]


class RollbackExecutor:
    """Restores a BackupSet exactly. Safe to run more than once on the same set."""

    def rollback(self, backup: BackupSet) -> None:
        """Restore every entry: rewrite files that existed, delete files that did not.

        Directories created by apply are removed afterwards, innermost first,
        when they are empty.

        Raises:
            RollbackFailure: If any entry could not be restored. All entries are
                still attempted before raising.
        """
        failed: list[str] = []
        for entry in backup.files:
            path = Path(entry.path)
            try:
                if entry.existed:
                    path.parent.mkdir(parents=True, exist_ok=True)
                    write_text_exact(path, entry.original_content)
                else:
                    path.unlink(missing_ok=True)
            except OSError as exc:
                logger.critical("Could not restore %s: %s", entry.path, exc)
                failed.append(entry.path)

        for directory in reversed(backup.created_dirs):
            path = Path(directory)
            if not path.is_dir():
                continue
            try:
                path.rmdir()
            except OSError as exc:
                logger.warning("Left directory %s in place: %s", directory, exc)

        if failed:
            raise RollbackFailure(
                f"Rollback failed for {len(failed)} file(s): {', '.join(failed)}",
                failed_paths=failed,
            )
        logger.info("Rolled back %d file(s)", len(backup.files))
