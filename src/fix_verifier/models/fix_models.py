"""Models for relevant files, proposed fixes and workspace backups."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FileSource(str, Enum):
    """Where a relevant file came from."""

    USER = "user-specified"
    SERVICE = "service-suggested"


class CodebaseContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    file_path: str


class RelevantFile(BaseModel):
    """A workspace file judged pertinent to the bug."""

    model_config = ConfigDict(frozen=True)

    relative_path: str
    absolute_path: str  # Unique key within a working set
    content: str
    reason: str
    source: FileSource = FileSource.SERVICE


class FileChange(BaseModel):
    """One proposed edit. ``diff`` is derived from the two contents, never supplied."""

    model_config = ConfigDict(frozen=True)

    path: str  # Absolute path on disk
    relative_path: str
    original_content: str
    modified_content: str
    diff: str


class FixResult(BaseModel):
    """Output of one fix-generation call."""

    model_config = ConfigDict(frozen=True)

    changes: list[FileChange] = Field(default_factory=list)
    explanation: str
    approach: str


class PriorAttempt(BaseModel):
    """A failed fix plus the failure text fed into the next generation call."""

    model_config = ConfigDict(frozen=True)

    fix: FixResult
    verification_error: str


class BackupEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    original_content: str  # "" when the file did not exist
    existed: bool = True


class BackupSet(BaseModel):
    """Pre-change snapshots needed to undo exactly one attempt."""

    model_config = ConfigDict(frozen=False)

    timestamp: datetime = Field(default_factory=datetime.now)
    files: list[BackupEntry] = Field(default_factory=list)
    created_dirs: list[str] = Field(default_factory=list)  # Parents made by apply, outermost first

    def has_path(self, path: str) -> bool:
        return any(entry.path == path for entry in self.files)
