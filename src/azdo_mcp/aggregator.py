"""Assembly of composite records from a primary entity and its secondary data.

The primary entity is always fetched by the caller, and its failure is fatal.
Secondary fetches (reviewers, commits, comments, relations, runs, parameter
schemas) are independent of one another. Each one either produces its result or
degrades to an empty value, and a failed fetch never prevents the others from
running.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .ado_client import AdoClient
from .errors import AzdoToolError
from .models import (
    CommentThread,
    CreatedWorkItem,
    Pipeline,
    PipelineRecord,
    PullRequest,
    PullRequestRecord,
    Repository,
    RepositoryRecord,
    WorkItem,
    WorkItemLink,
    WorkItemRecord,
    WorkItemRelation,
)
from .pipeline_parameters import extract_parameter_schema, is_yaml_pipeline

logger = logging.getLogger(__name__)

PARENT_RELATION = "System.LinkTypes.Hierarchy-Reverse"
CHILD_RELATION = "System.LinkTypes.Hierarchy-Forward"
RELATED_RELATION = "System.LinkTypes.Related"

RECENT_RUN_LIMIT = 5

_WORK_ITEM_ID_PATTERN = re.compile(r"workItems/(\d+)$", re.IGNORECASE)

# Friendly link names accepted by create_work_item, mapped to reference names.
LINK_TYPE_ALIASES = {
    "parent": PARENT_RELATION,
    "child": CHILD_RELATION,
    "related": RELATED_RELATION,
    "predecessor": "System.LinkTypes.Dependency-Reverse",
    "successor": "System.LinkTypes.Dependency-Forward",
}


@dataclass(frozen=True)
class SecondaryFetch:
    """One secondary fetch feeding a composite record.

    ``silent`` fetches record ``empty()`` on failure; non-silent ones re-raise.
    """

    name: str
    fetch: Callable[[], Any]
    silent: bool = True
    empty: Callable[[], Any] = list


def aggregate(fetches: Sequence[SecondaryFetch]) -> Dict[str, Any]:
    """Run each fetch in order and collect results by name."""
    results: Dict[str, Any] = {}
    for spec in fetches:
        try:
            results[spec.name] = spec.fetch()
        except Exception as exc:
            if not spec.silent:
                raise
            logger.warning(
                "Secondary fetch failed; continuing with empty result",
                extra={"fetch": spec.name, "error": str(exc)},
                exc_info=not isinstance(exc, AzdoToolError),
            )
            results[spec.name] = spec.empty()
    return results


def extract_work_item_id(url: Optional[str]) -> Optional[int]:
    """Extract the trailing work item id from a relation URL."""
    if not url:
        return None
    match = _WORK_ITEM_ID_PATTERN.search(url.rstrip("/"))
    return int(match.group(1)) if match else None


def related_work_item_ids(relations: Sequence[WorkItemRelation], relation_type: str) -> List[int]:
    """Ids referenced by relations of one type, in relation order, without duplicates."""
    ids: List[int] = []
    for relation in relations:
        if relation.rel != relation_type:
            continue
        work_item_id = extract_work_item_id(relation.url)
        if work_item_id is not None and work_item_id not in ids:
            ids.append(work_item_id)
    return ids


def filter_comment_threads(threads: Sequence[CommentThread]) -> List[CommentThread]:
    """Drop deleted threads, system or empty comments, and threads left empty.

    Suppressed entries never contribute to any displayed count.
    """
    visible: List[CommentThread] = []
    for thread in threads:
        if thread.isDeleted:
            continue
        comments = [
            comment
            for comment in thread.comments
            if comment.content.strip() and comment.commentType.lower() != "system"
        ]
        if not comments:
            continue
        visible.append(
            CommentThread(
                id=thread.id,
                status=thread.status,
                filePath=thread.filePath,
                isDeleted=False,
                comments=comments,
            )
        )
    return visible


def build_pull_request_record(client: AdoClient, project: str, pull_request: PullRequest) -> PullRequestRecord:
    """Fetch reviewers, commits, linked work items and comment threads for a pull request."""
    repository_id = pull_request.repositoryId
    pr_id = pull_request.pullRequestId

    if not repository_id:
        logger.warning(
            "Pull request payload has no repository id; skipping secondary fetches",
            extra={"pull_request_id": pr_id},
        )
        return PullRequestRecord(pullRequest=pull_request)

    results = aggregate(
        [
            SecondaryFetch("reviewers", lambda: client.list_pull_request_reviewers(project, repository_id, pr_id)),
            SecondaryFetch("commits", lambda: client.list_pull_request_commits(project, repository_id, pr_id)),
            SecondaryFetch(
                "workItemLinks",
                lambda: client.list_pull_request_work_items(project, repository_id, pr_id),
            ),
            SecondaryFetch(
                "commentThreads",
                lambda: filter_comment_threads(client.list_pull_request_threads(project, repository_id, pr_id)),
            ),
        ]
    )
    return PullRequestRecord(pullRequest=pull_request, **results)


def _relation_category(
    client: AdoClient,
    project: Optional[str],
    relations: Sequence[WorkItemRelation],
    relation_type: str,
) -> Callable[[], List[WorkItem]]:
    def fetch() -> List[WorkItem]:
        ids = related_work_item_ids(relations, relation_type)
        if not ids:
            return []
        return client.get_work_items(ids, project=project)

    return fetch


def build_work_item_record(
    client: AdoClient,
    project: Optional[str],
    work_item: WorkItem,
    include_relations: bool = False,
) -> WorkItemRecord:
    """Resolve parent and child work items; each category succeeds or is empty as a whole."""
    if not include_relations or not work_item.relations:
        return WorkItemRecord(workItem=work_item)

    results = aggregate(
        [
            SecondaryFetch("parents", _relation_category(client, project, work_item.relations, PARENT_RELATION)),
            SecondaryFetch("children", _relation_category(client, project, work_item.relations, CHILD_RELATION)),
        ]
    )
    return WorkItemRecord(workItem=work_item, **results)


def _parameter_schema(client: AdoClient, project: str, pipeline: Pipeline) -> Callable[[], list]:
    def fetch() -> list:
        if not is_yaml_pipeline(pipeline) or not pipeline.yamlPath or not pipeline.repositoryId:
            return []
        content = client.get_file_content(project, pipeline.repositoryId, pipeline.yamlPath)
        return extract_parameter_schema(content)

    return fetch


def build_pipeline_record(
    client: AdoClient,
    project: str,
    pipeline: Pipeline,
    include_runs: bool = True,
) -> PipelineRecord:
    """Fetch recent runs and, for YAML pipelines, the template parameter schema."""
    fetches = [SecondaryFetch("parameters", _parameter_schema(client, project, pipeline))]
    if include_runs:
        fetches.insert(
            0,
            SecondaryFetch(
                "recentRuns",
                lambda: client.list_pipeline_runs(project, pipeline.id)[:RECENT_RUN_LIMIT],
            ),
        )
    return PipelineRecord(pipeline=pipeline, **aggregate(fetches))


def build_repository_record(client: AdoClient, project: str, repository: Repository) -> RepositoryRecord:
    results = aggregate([SecondaryFetch("branches", lambda: client.list_branches(project, repository.id))])
    return RepositoryRecord(repository=repository, **results)


def normalize_link_type(link_type: Optional[str], fallback: str) -> str:
    """Map friendly link names (``parent``, ``related``...) to reference names."""
    if not link_type or not link_type.strip():
        return fallback
    return LINK_TYPE_ALIASES.get(link_type.strip().lower(), link_type.strip())


def link_work_items(
    client: AdoClient,
    project: str,
    work_item: WorkItem,
    links: Sequence[Tuple[int, str, str]],
    timeout: Optional[float] = None,
) -> CreatedWorkItem:
    """Attach relations to a newly created work item on a best-effort basis.

    Each link is ``(target_id, link_type, role)``. The target is looked up and
    then linked with a JSON-patch update, both bounded by ``timeout``. A failure
    on one link, including a timeout, is logged and skipped. The creation of
    ``work_item`` has already succeeded and is reported regardless.
    """
    created = CreatedWorkItem(workItem=work_item)

    for target_id, link_type, role in links:
        try:
            target = client.get_work_item(target_id, project=project, timeout=timeout)
            patch = [
                {
                    "op": "add",
                    "path": "/relations/-",
                    "value": {"rel": link_type, "url": target.url},
                }
            ]
            client.update_work_item(work_item.id, patch, project=project, timeout=timeout)
        except AzdoToolError as exc:
            logger.warning(
                "Could not link work item",
                extra={
                    "work_item_id": work_item.id,
                    "target_id": target_id,
                    "link_type": link_type,
                    "error": str(exc),
                },
            )
            continue

        logger.info(
            "Linked work item",
            extra={"work_item_id": work_item.id, "target_id": target_id, "link_type": link_type},
        )
        created.links.append(WorkItemLink(target=target, linkType=link_type, role=role))

    return created
