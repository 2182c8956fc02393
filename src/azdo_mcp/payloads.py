"""Mapping of raw Azure DevOps JSON payloads onto domain models.

Parsers are tolerant: missing keys become ``None`` or an empty value, and only
the identifying field of each entity is treated as mandatory.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .changes import parse_change_type
from .errors import ApiError
from .models import (
    ChangeEntry,
    CodeSearchMatch,
    CodeSearchResult,
    Comment,
    CommentThread,
    Commit,
    GitBranch,
    Pipeline,
    PipelineRun,
    PullRequest,
    Repository,
    Reviewer,
    Wiki,
    WikiPage,
    WorkItem,
    WorkItemRef,
    WorkItemRelation,
)

_FRACTION_PATTERN = re.compile(r"\.(\d+)")
_BRANCH_PREFIX = "refs/heads/"


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse Azure DevOps ISO8601 timestamps into timezone-aware datetimes."""
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    # Azure DevOps emits up to seven fractional digits.
    normalized = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), normalized, count=1)
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _display_name(identity: Any) -> Optional[str]:
    if isinstance(identity, dict):
        return identity.get("displayName") or identity.get("uniqueName")
    if isinstance(identity, str):
        # Older API versions return "Display Name <user@example.com>".
        return identity.split("<")[0].strip() or identity
    return None


def _web_link(item: Dict[str, Any]) -> Optional[str]:
    links = item.get("_links") or {}
    web = links.get("web") or links.get("html") or {}
    return web.get("href")


def strip_branch_prefix(ref_name: Optional[str]) -> str:
    if not ref_name:
        return ""
    return ref_name[len(_BRANCH_PREFIX):] if ref_name.startswith(_BRANCH_PREFIX) else ref_name


def repository_from_payload(item: Dict[str, Any]) -> Repository:
    repo_id = item.get("id")
    if not repo_id:
        raise ApiError(f"Azure DevOps repository payload is missing an id: {item}")
    project = item.get("project") or {}
    return Repository(
        id=str(repo_id),
        name=str(item.get("name") or ""),
        projectId=project.get("id"),
        projectName=project.get("name"),
        defaultBranch=item.get("defaultBranch"),
        size=item.get("size"),
        remoteUrl=item.get("remoteUrl"),
        webUrl=item.get("webUrl"),
        isDisabled=bool(item.get("isDisabled", False)),
        isInMaintenance=bool(item.get("isInMaintenance", False)),
    )


def branch_from_payload(item: Dict[str, Any]) -> GitBranch:
    return GitBranch(
        name=strip_branch_prefix(item.get("name")),
        objectId=item.get("objectId"),
        creator=_display_name(item.get("creator")),
        url=item.get("url"),
    )


def pull_request_from_payload(item: Dict[str, Any]) -> PullRequest:
    pr_id = item.get("pullRequestId")
    if pr_id is None:
        raise ApiError(f"Azure DevOps pull request payload is missing pullRequestId: {item}")
    repository = item.get("repository") or {}
    return PullRequest(
        pullRequestId=int(pr_id),
        title=str(item.get("title") or ""),
        status=str(item.get("status") or "unknown"),
        createdBy=_display_name(item.get("createdBy")),
        creationDate=parse_datetime(item.get("creationDate")),
        closedDate=parse_datetime(item.get("closedDate")),
        sourceRefName=item.get("sourceRefName") or "",
        targetRefName=item.get("targetRefName") or "",
        description=item.get("description"),
        repositoryId=repository.get("id"),
        repositoryName=repository.get("name"),
        repositoryWebUrl=repository.get("webUrl"),
        isDraft=bool(item.get("isDraft", False)),
        mergeStatus=item.get("mergeStatus"),
        autoCompleteSetBy=_display_name(item.get("autoCompleteSetBy")),
        lastMergeCommitId=(item.get("lastMergeCommit") or {}).get("commitId"),
        lastMergeSourceCommitId=(item.get("lastMergeSourceCommit") or {}).get("commitId"),
    )


def reviewer_from_payload(item: Dict[str, Any]) -> Reviewer:
    return Reviewer(
        displayName=str(item.get("displayName") or item.get("uniqueName") or "Unknown"),
        vote=int(item.get("vote") or 0),
        isRequired=bool(item.get("isRequired", False)),
        id=item.get("id"),
    )


def commit_from_payload(item: Dict[str, Any]) -> Commit:
    author = item.get("author") or {}
    return Commit(
        commitId=str(item.get("commitId") or ""),
        comment=str(item.get("comment") or ""),
        authorName=author.get("name"),
        authorDate=parse_datetime(author.get("date")),
    )


def work_item_ref_from_payload(item: Dict[str, Any]) -> WorkItemRef:
    return WorkItemRef(id=str(item.get("id") or ""), url=item.get("url"))


def thread_from_payload(item: Dict[str, Any]) -> CommentThread:
    context = item.get("threadContext") or {}
    comments = [
        Comment(
            authorName=_display_name(comment.get("author")),
            content=str(comment.get("content") or ""),
            publishedDate=parse_datetime(comment.get("publishedDate")),
            commentType=str(comment.get("commentType") or "text"),
            id=comment.get("id"),
        )
        for comment in item.get("comments") or []
        if not comment.get("isDeleted", False)
    ]
    return CommentThread(
        id=int(item.get("id") or 0),
        status=item.get("status"),
        filePath=context.get("filePath"),
        isDeleted=bool(item.get("isDeleted", False)),
        comments=comments,
    )


def work_item_from_payload(item: Dict[str, Any]) -> WorkItem:
    wi_id = item.get("id")
    if wi_id is None:
        raise ApiError(f"Azure DevOps work item payload is missing an id: {item}")
    fields = item.get("fields") or {}
    priority = fields.get("Microsoft.VSTS.Common.Priority")
    relations = [
        WorkItemRelation(
            rel=str(relation.get("rel") or ""),
            url=str(relation.get("url") or ""),
            name=(relation.get("attributes") or {}).get("name"),
        )
        for relation in item.get("relations") or []
    ]
    return WorkItem(
        id=int(wi_id),
        title=str(fields.get("System.Title") or ""),
        state=fields.get("System.State"),
        workItemType=fields.get("System.WorkItemType"),
        description=fields.get("System.Description"),
        assignedTo=_display_name(fields.get("System.AssignedTo")),
        iterationPath=fields.get("System.IterationPath"),
        areaPath=fields.get("System.AreaPath"),
        createdBy=_display_name(fields.get("System.CreatedBy")),
        createdDate=parse_datetime(fields.get("System.CreatedDate")),
        changedBy=_display_name(fields.get("System.ChangedBy")),
        changedDate=parse_datetime(fields.get("System.ChangedDate")),
        priority=int(priority) if priority is not None else None,
        tags=fields.get("System.Tags"),
        url=item.get("url"),
        relations=relations,
    )


def pipeline_from_payload(item: Dict[str, Any]) -> Pipeline:
    pipeline_id = item.get("id")
    if pipeline_id is None:
        raise ApiError(f"Azure DevOps pipeline payload is missing an id: {item}")
    configuration = item.get("configuration") or {}
    repository = configuration.get("repository") or {}
    return Pipeline(
        id=int(pipeline_id),
        name=str(item.get("name") or ""),
        revision=item.get("revision"),
        folder=item.get("folder"),
        url=_web_link(item) or item.get("url"),
        configurationType=configuration.get("type"),
        yamlPath=configuration.get("path"),
        repositoryId=repository.get("id"),
        repositoryType=repository.get("type"),
    )


def pipeline_run_from_payload(item: Dict[str, Any]) -> PipelineRun:
    return PipelineRun(
        id=int(item.get("id") or 0),
        name=item.get("name"),
        state=item.get("state"),
        result=item.get("result"),
        createdDate=parse_datetime(item.get("createdDate")),
        finishedDate=parse_datetime(item.get("finishedDate")),
        url=_web_link(item) or item.get("url"),
    )


def wiki_from_payload(item: Dict[str, Any]) -> Wiki:
    wiki_id = item.get("id")
    if not wiki_id:
        raise ApiError(f"Azure DevOps wiki payload is missing an id: {item}")
    return Wiki(
        id=str(wiki_id),
        name=str(item.get("name") or ""),
        type=str(item.get("type") or "projectWiki"),
        projectId=item.get("projectId"),
        repositoryId=item.get("repositoryId"),
        mappedPath=item.get("mappedPath"),
        remoteUrl=item.get("remoteUrl"),
        url=item.get("url"),
    )


def wiki_page_from_payload(item: Dict[str, Any], etag: Optional[str] = None) -> WikiPage:
    return WikiPage(
        path=str(item.get("path") or ""),
        content=str(item.get("content") or ""),
        id=item.get("id"),
        gitItemPath=item.get("gitItemPath"),
        remoteUrl=item.get("remoteUrl"),
        eTag=etag,
    )


def code_search_result_from_payload(item: Dict[str, Any]) -> CodeSearchResult:
    repository = item.get("repository") or {}
    versions = item.get("versions") or [{}]
    content_matches = (item.get("matches") or {}).get("content") or []
    return CodeSearchResult(
        fileName=str(item.get("fileName") or ""),
        path=str(item.get("path") or ""),
        repositoryName=repository.get("name"),
        repositoryWebUrl=repository.get("webUrl"),
        projectName=(item.get("project") or {}).get("name"),
        branch=versions[0].get("branchName"),
        matches=[
            CodeSearchMatch(lineNumber=match.get("lineNumber"), line=str(match.get("line") or ""))
            for match in content_matches
        ],
    )


def change_entries_from_payload(payload: Dict[str, Any]) -> List[ChangeEntry]:
    entries: List[ChangeEntry] = []
    for change in payload.get("changeEntries") or []:
        item = change.get("item") or {}
        entries.append(
            ChangeEntry(
                path=str(item.get("path") or change.get("originalPath") or ""),
                changeType=parse_change_type(change.get("changeType")),
            )
        )
    return entries
