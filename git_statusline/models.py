from __future__ import annotations

from pydantic import BaseModel, ConfigDict, NonNegativeInt, computed_field


class Snapshot(BaseModel):
    """One successfully parsed ``git status`` result."""

    model_config = ConfigDict(frozen=True)

    commit: str = ""
    branch: str = ""
    upstream_branch: str = ""
    ahead: NonNegativeInt = 0
    behind: NonNegativeInt = 0
    stashed: NonNegativeInt = 0
    staged: NonNegativeInt = 0
    staged_added: NonNegativeInt = 0
    staged_deleted: NonNegativeInt = 0
    staged_modified: NonNegativeInt = 0
    staged_renamed: NonNegativeInt = 0
    modified: NonNegativeInt = 0
    deleted: NonNegativeInt = 0
    renamed: NonNegativeInt = 0
    conflicted: NonNegativeInt = 0
    untracked: NonNegativeInt = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_dirty(self) -> bool:
        return self.modified > 0 or self.deleted > 0 or self.renamed > 0 or self.untracked > 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def up_to_date(self) -> bool:
        return self.ahead == 0 and self.behind == 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def up_to_date_and_clean(self) -> bool:
        return self.up_to_date and not self.is_dirty


class StatusResponse(BaseModel):
    repository: bool
    cwd: str
    git_dir: str | None = None
    busy: bool = False
    snapshot: Snapshot | None = None


class WorkingDirectoryRequest(BaseModel):
    path: str | None = None


class HostEventRequest(BaseModel):
    event: str = "BufEnter"
