"""Domain models for Azure DevOps entities and the composite views built from them.

Entity dataclasses model only the subset of API payload fields that the tools
report on. Field names that mirror Azure DevOps payloads keep the API's
camelCase spelling.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar, Union

T = TypeVar("T")


class EntityKind(Enum):
    REPOSITORY = "repository"
    PULL_REQUEST = "pull request"
    WORK_ITEM = "work item"
    PIPELINE = "pipeline"
    WIKI = "wiki"


class ResolutionOutcome(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    AMBIGUOUS_DEFAULT_MISSING = "ambiguous_default_missing"


class ChangeType(Enum):
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"
    RENAME = "rename"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class EntityRef:
    """Identifies an entity by id or by display name."""

    kind: EntityKind
    id: Optional[Union[str, int]] = None
    name: Optional[str] = None

    @property
    def label(self) -> str:
        if self.id is not None:
            return str(self.id)
        return self.name or ""


@dataclass
class ResolutionResult(Generic[T]):
    """Outcome of turning a user-supplied identifier into a concrete entity."""

    ref: EntityRef
    entity: Optional[T] = None
    searched_candidates: List[EntityRef] = field(default_factory=list)
    outcome: ResolutionOutcome = ResolutionOutcome.NOT_FOUND

    @property
    def found(self) -> bool:
        return self.outcome is ResolutionOutcome.FOUND


@dataclass(slots=True)
class Repository:
    """Represents a Git repository returned by Azure DevOps APIs."""

    id: str
    name: str
    projectId: Optional[str] = None
    projectName: Optional[str] = None
    defaultBranch: Optional[str] = None
    size: Optional[int] = None
    remoteUrl: Optional[str] = None
    webUrl: Optional[str] = None
    isDisabled: bool = False
    isInMaintenance: bool = False


@dataclass(slots=True)
class GitBranch:
    name: str
    objectId: Optional[str] = None
    creator: Optional[str] = None
    url: Optional[str] = None


@dataclass(slots=True)
class Reviewer:
    displayName: str
    vote: int = 0
    isRequired: bool = False
    id: Optional[str] = None


@dataclass(slots=True)
class Commit:
    commitId: str
    comment: str = ""
    authorName: Optional[str] = None
    authorDate: Optional[datetime] = None


@dataclass(slots=True)
class WorkItemRef:
    id: str
    url: Optional[str] = None


@dataclass(slots=True)
class Comment:
    authorName: Optional[str]
    content: str
    publishedDate: Optional[datetime] = None
    commentType: str = "text"
    id: Optional[int] = None


@dataclass(slots=True)
class CommentThread:
    id: int
    status: Optional[str] = None
    filePath: Optional[str] = None
    isDeleted: bool = False
    comments: List[Comment] = field(default_factory=list)


@dataclass(slots=True)
class PullRequest:
    """Represents the pull request fields reported by the tools."""

    pullRequestId: int
    title: str
    status: str
    createdBy: Optional[str] = None
    creationDate: Optional[datetime] = None
    closedDate: Optional[datetime] = None
    sourceRefName: str = ""
    targetRefName: str = ""
    description: Optional[str] = None
    repositoryId: Optional[str] = None
    repositoryName: Optional[str] = None
    repositoryWebUrl: Optional[str] = None
    isDraft: bool = False
    mergeStatus: Optional[str] = None
    autoCompleteSetBy: Optional[str] = None
    lastMergeCommitId: Optional[str] = None
    lastMergeSourceCommitId: Optional[str] = None


@dataclass(slots=True)
class WorkItemRelation:
    rel: str
    url: str
    name: Optional[str] = None


@dataclass(slots=True)
class WorkItem:
    """Represents a work item and the System.* fields reported by the tools."""

    id: int
    title: str = ""
    state: Optional[str] = None
    workItemType: Optional[str] = None
    description: Optional[str] = None
    assignedTo: Optional[str] = None
    iterationPath: Optional[str] = None
    areaPath: Optional[str] = None
    createdBy: Optional[str] = None
    createdDate: Optional[datetime] = None
    changedBy: Optional[str] = None
    changedDate: Optional[datetime] = None
    priority: Optional[int] = None
    tags: Optional[str] = None
    url: Optional[str] = None
    relations: List[WorkItemRelation] = field(default_factory=list)


@dataclass(slots=True)
class Pipeline:
    id: int
    name: str
    revision: Optional[int] = None
    folder: Optional[str] = None
    url: Optional[str] = None
    configurationType: Optional[str] = None
    yamlPath: Optional[str] = None
    repositoryId: Optional[str] = None
    repositoryType: Optional[str] = None


@dataclass(slots=True)
class PipelineRun:
    id: int
    name: Optional[str] = None
    state: Optional[str] = None
    result: Optional[str] = None
    createdDate: Optional[datetime] = None
    finishedDate: Optional[datetime] = None
    url: Optional[str] = None


@dataclass(slots=True)
class Wiki:
    id: str
    name: str
    type: str = "projectWiki"
    projectId: Optional[str] = None
    repositoryId: Optional[str] = None
    mappedPath: Optional[str] = None
    remoteUrl: Optional[str] = None
    url: Optional[str] = None


@dataclass(slots=True)
class WikiPage:
    path: str
    content: str = ""
    id: Optional[int] = None
    gitItemPath: Optional[str] = None
    remoteUrl: Optional[str] = None
    eTag: Optional[str] = None


@dataclass(slots=True)
class CodeSearchMatch:
    lineNumber: Optional[int]
    line: str = ""


@dataclass(slots=True)
class CodeSearchResult:
    fileName: str
    path: str
    repositoryName: Optional[str] = None
    repositoryWebUrl: Optional[str] = None
    projectName: Optional[str] = None
    branch: Optional[str] = None
    matches: List[CodeSearchMatch] = field(default_factory=list)


@dataclass(slots=True)
class ChangeEntry:
    path: str
    changeType: ChangeType = ChangeType.UNKNOWN


@dataclass(slots=True)
class ParameterSchemaEntry:
    """A pipeline template parameter recovered from YAML text."""

    name: str
    type: str = "string"
    default: str = ""
    displayName: str = ""

    def __post_init__(self) -> None:
        if not self.displayName:
            self.displayName = self.name

    @property
    def required(self) -> bool:
        return self.default == ""


# Composite records. Secondary collections default to empty: an empty
# collection means the fetch failed or returned nothing.


@dataclass
class PullRequestRecord:
    pullRequest: PullRequest
    reviewers: List[Reviewer] = field(default_factory=list)
    commits: List[Commit] = field(default_factory=list)
    workItemLinks: List[WorkItemRef] = field(default_factory=list)
    commentThreads: List[CommentThread] = field(default_factory=list)


@dataclass
class PullRequestDiff:
    pullRequest: PullRequest
    changes: List[ChangeEntry] = field(default_factory=list)


@dataclass
class WorkItemRecord:
    workItem: WorkItem
    parents: List[WorkItem] = field(default_factory=list)
    children: List[WorkItem] = field(default_factory=list)


@dataclass
class WorkItemLink:
    """A relation successfully added to a newly created work item."""

    target: WorkItem
    linkType: str
    role: str


@dataclass
class CreatedWorkItem:
    workItem: WorkItem
    links: List[WorkItemLink] = field(default_factory=list)


@dataclass
class PipelineRecord:
    pipeline: Pipeline
    recentRuns: List[PipelineRun] = field(default_factory=list)
    parameters: List[ParameterSchemaEntry] = field(default_factory=list)


@dataclass
class RepositoryRecord:
    repository: Repository
    branches: List[GitBranch] = field(default_factory=list)
