"""Markdown rendering for tool responses.

Every function takes already-aggregated data and returns a markdown string.
None of them make backend calls or decisions beyond presentation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence

from .changes import build_change_link, change_summary
from .models import (
    ChangeType,
    CodeSearchResult,
    CreatedWorkItem,
    ParameterSchemaEntry,
    Pipeline,
    PipelineRecord,
    PipelineRun,
    PullRequest,
    PullRequestDiff,
    PullRequestRecord,
    Repository,
    RepositoryRecord,
    Wiki,
    WikiPage,
    WorkItem,
    WorkItemRecord,
)
from .payloads import strip_branch_prefix

VOTE_LABELS = {
    10: "Approved",
    5: "Approved with suggestions",
    0: "No vote",
    -5: "Waiting for author",
    -10: "Rejected",
}

THREAD_STATUS_LABELS = {
    "active": "Active",
    "fixed": "Fixed",
    "wontfix": "Won't Fix",
    "closed": "Closed",
    "bydesign": "By Design",
    "pending": "Pending",
}

CHANGE_TYPE_LABELS = {
    ChangeType.ADD: "Added",
    ChangeType.EDIT: "Modified",
    ChangeType.DELETE: "Deleted",
    ChangeType.RENAME: "Renamed",
    ChangeType.UNKNOWN: "Unknown",
}


def format_datetime(value: Optional[datetime], missing: str = "Unknown date") -> str:
    if value is None:
        return missing
    return value.strftime("%Y-%m-%d %H:%M UTC")


def status_label(status: Optional[str]) -> str:
    if not status:
        return "Unknown"
    return status[:1].upper() + status[1:]


def vote_label(vote: int) -> str:
    return VOTE_LABELS.get(vote, "Unknown")


def thread_status_label(status: Optional[str]) -> str:
    if not status:
        return "Unknown"
    return THREAD_STATUS_LABELS.get(status.lower(), status)


def pull_request_url(organization_url: str, project: str, pull_request: PullRequest) -> str:
    if pull_request.repositoryWebUrl:
        return f"{pull_request.repositoryWebUrl}/pullrequest/{pull_request.pullRequestId}"
    repo = pull_request.repositoryName or pull_request.repositoryId or ""
    return f"{organization_url}/{project}/_git/{repo}/pullrequest/{pull_request.pullRequestId}"


def work_item_url(organization_url: str, project: str, work_item_id: int) -> str:
    return f"{organization_url}/{project}/_workitems/edit/{work_item_id}"


def format_repository_list(
    repositories: Sequence[Repository],
    project: Optional[str],
    default_repository: Optional[str] = None,
) -> str:
    if not repositories:
        if project:
            return f"No repositories found in project '{project}'."
        return "No repositories found in this organization."

    default_index = -1
    if default_repository:
        for index, repo in enumerate(repositories):
            if default_repository in (repo.id, repo.name):
                default_index = index
                break

    lines = [
        f"# Repositories in project '{project}'" if project else "# All repositories in the organization",
        "",
    ]

    if default_repository:
        if default_index >= 0:
            lines.append(f"Default repository: **{repositories[default_index].name}**")
        else:
            lines.append(f"Note: default repository '{default_repository}' was not found in the results.")
        lines.append("")

    lines.append("| Name | ID | Default Branch | Web URL |")
    lines.append("| ---- | -- | -------------- | ------- |")
    for index, repo in enumerate(repositories):
        name = f"**{repo.name}** (Default)" if index == default_index else repo.name
        link = f"[View]({repo.webUrl})" if repo.webUrl else ""
        branch = strip_branch_prefix(repo.defaultBranch) or "N/A"
        lines.append(f"| {name} | {repo.id} | {branch} | {link} |")

    return "\n".join(lines) + "\n"


def format_repository(record: RepositoryRecord) -> str:
    repo = record.repository
    lines = [
        f"# Repository: {repo.name}",
        "",
        f"**ID**: {repo.id}",
        f"**Project**: {repo.projectName or 'Unknown'}",
        f"**Default Branch**: {strip_branch_prefix(repo.defaultBranch) or 'N/A'}",
        f"**Size**: {repo.size if repo.size is not None else 'Unknown'} bytes",
        f"**Remote URL**: {repo.remoteUrl or 'N/A'}",
        f"**Web URL**: {repo.webUrl or 'N/A'}",
    ]
    if repo.isDisabled:
        lines.append("**Disabled**: yes")
    if repo.isInMaintenance:
        lines.append("**In Maintenance**: yes")

    if record.branches:
        lines.extend(["", f"## Branches ({len(record.branches)})", ""])
        for branch in record.branches:
            creator = f" (created by {branch.creator})" if branch.creator else ""
            lines.append(f"- `{branch.name}` at {(branch.objectId or '')[:8]}{creator}")

    return "\n".join(lines) + "\n"


def format_pull_request_list(
    pull_requests: Sequence[PullRequest],
    organization_url: str,
    project: str,
) -> str:
    if not pull_requests:
        return "No pull requests found matching the criteria."

    lines = ["# Pull Requests", ""]
    for pr in pull_requests:
        lines.append(f"## PR #{pr.pullRequestId}: {pr.title}")
        lines.append(f"**Status**: {status_label(pr.status)}{' (Draft)' if pr.isDraft else ''}")
        lines.append(f"**Created By**: {pr.createdBy or 'Unknown'} on {format_datetime(pr.creationDate)}")
        lines.append(f"**Source**: {strip_branch_prefix(pr.sourceRefName)}")
        lines.append(f"**Target**: {strip_branch_prefix(pr.targetRefName)}")
        lines.append(f"**Repository**: {pr.repositoryName or 'Unknown'}")
        lines.append(f"**URL**: {pull_request_url(organization_url, project, pr)}")
        lines.append("")
        if pr.description:
            lines.extend(["**Description**:", pr.description, ""])
        lines.extend(["---", ""])

    return "\n".join(lines)


def format_pull_request(record: PullRequestRecord, organization_url: str, project: str) -> str:
    pr = record.pullRequest
    lines = [
        f"# Pull Request #{pr.pullRequestId}: {pr.title}",
        "",
        f"**Status**: {status_label(pr.status)}{' (Draft)' if pr.isDraft else ''}",
        f"**Created By**: {pr.createdBy or 'Unknown'} on {format_datetime(pr.creationDate)}",
    ]
    if pr.closedDate:
        lines.append(f"**Closed On**: {format_datetime(pr.closedDate)}")
    lines.append(f"**Source Branch**: {strip_branch_prefix(pr.sourceRefName)}")
    lines.append(f"**Target Branch**: {strip_branch_prefix(pr.targetRefName)}")
    lines.append(f"**Repository**: {pr.repositoryName or 'Unknown'}")
    if pr.mergeStatus:
        lines.append(f"**Merge Status**: {pr.mergeStatus}")
    if pr.autoCompleteSetBy:
        lines.append(f"**Auto-Complete Set By**: {pr.autoCompleteSetBy}")
    if pr.lastMergeCommitId:
        lines.append(f"**Last Merge Commit**: {pr.lastMergeCommitId}")
    lines.append(f"**URL**: {pull_request_url(organization_url, project, pr)}")

    if pr.description:
        lines.extend(["", "## Description", "", pr.description])

    if record.reviewers:
        lines.extend(["", "## Reviewers", ""])
        for reviewer in record.reviewers:
            required = " (required)" if reviewer.isRequired else ""
            lines.append(f"- **{reviewer.displayName}**{required}: {vote_label(reviewer.vote)}")

    if record.commits:
        lines.extend(["", f"## Commits ({len(record.commits)})", ""])
        for commit in record.commits:
            summary = commit.comment.splitlines()[0] if commit.comment else ""
            lines.append(
                f"- **{commit.commitId[:8]}**: {summary} by {commit.authorName or 'Unknown'} "
                f"on {format_datetime(commit.authorDate)}"
            )

    if record.workItemLinks:
        lines.extend(["", f"## Work Items ({len(record.workItemLinks)})", ""])
        for ref in record.workItemLinks:
            target = work_item_url(organization_url, project, int(ref.id)) if ref.id.isdigit() else ref.url
            lines.append(f"- [Work Item #{ref.id}]({target})")

    if record.commentThreads:
        lines.extend(["", f"## Comments ({len(record.commentThreads)} threads)", ""])
        for thread in record.commentThreads:
            location = thread.filePath or "General comment"
            lines.extend([f"### Comment Thread ({thread_status_label(thread.status)}) on {location}", ""])
            for comment in thread.comments:
                lines.append(f"**{comment.authorName or 'Unknown'}** on {format_datetime(comment.publishedDate)}:")
                lines.extend([comment.content, ""])

    return "\n".join(lines).rstrip("\n") + "\n"


def format_pull_request_diff(diff: PullRequestDiff) -> str:
    pr = diff.pullRequest
    if not diff.changes:
        return f"No changes found in pull request #{pr.pullRequestId}."

    summary = change_summary(diff.changes)
    lines = [
        f"# Pull Request #{pr.pullRequestId} Diff",
        "",
        f"Comparing changes between {pr.sourceRefName} → {pr.targetRefName}",
        "",
        f"Total changes: {len(diff.changes)}",
        "",
        "## Summary",
        "",
        f"- Added: {summary[ChangeType.ADD]} files",
        f"- Modified: {summary[ChangeType.EDIT]} files",
        f"- Deleted: {summary[ChangeType.DELETE]} files",
        f"- Renamed: {summary[ChangeType.RENAME]} files",
        "",
        "## Changed Files",
        "",
        "| Change Type | Path | View in Browser |",
        "|------------|------|-----------------|",
    ]

    for change in diff.changes:
        link = build_change_link(pr.repositoryWebUrl, pr.lastMergeSourceCommitId, change.path)
        view = f"[View]({link})" if link else ""
        lines.append(f"| {CHANGE_TYPE_LABELS[change.changeType]} | `{change.path}` | {view} |")

    if pr.repositoryWebUrl:
        lines.extend(["", f"[View full diff in browser]({pr.repositoryWebUrl}/pullrequest/{pr.pullRequestId}?_a=files)"])

    return "\n".join(lines) + "\n"


def format_created_pull_request(
    pr: PullRequest,
    repository: Repository,
    organization_url: str,
    project: str,
    reviewers_added: Sequence[str] = (),
    work_items_linked: Sequence[int] = (),
) -> str:
    lines = [
        "# Pull Request Created Successfully",
        "",
        f"Pull Request #{pr.pullRequestId} has been created in repository **{repository.name}**.",
        "",
        f"**Title**: {pr.title}",
        f"**Source Branch**: {strip_branch_prefix(pr.sourceRefName)}",
        f"**Target Branch**: {strip_branch_prefix(pr.targetRefName)}",
        f"**Status**: {'Draft' if pr.isDraft else 'Active'}",
        f"**URL**: {organization_url}/{project}/_git/{repository.name}/pullrequest/{pr.pullRequestId}",
    ]
    if reviewers_added:
        lines.append(f"**Reviewers**: {', '.join(reviewers_added)}")
    if work_items_linked:
        lines.append(f"**Linked Work Items**: {', '.join(f'#{wi}' for wi in work_items_linked)}")
    return "\n".join(lines) + "\n"


def _linked_item_line(item: WorkItem, organization_url: str, project: str) -> str:
    return (
        f"- [{item.id}: {item.title or 'Unknown Title'}]({work_item_url(organization_url, project, item.id)}) "
        f"({item.workItemType or 'Unknown Type'}, {item.state or 'Unknown State'})"
    )


def format_work_item(record: WorkItemRecord, organization_url: str, project: str) -> str:
    wi = record.workItem
    lines = [
        f"# Work Item {wi.id}: {wi.title}",
        "",
        f"**Type**: {wi.workItemType or 'Unknown'}",
        f"**State**: {wi.state or 'Unknown'}",
        f"**Assigned To**: {wi.assignedTo or 'Unassigned'}",
        f"**Area Path**: {wi.areaPath or 'Not specified'}",
        f"**Iteration**: {wi.iterationPath or 'Not specified'}",
        f"**Priority**: {wi.priority if wi.priority is not None else 'Not specified'}",
        f"**Created By**: {wi.createdBy or 'Unknown'} on {format_datetime(wi.createdDate)}",
        f"**Last Modified By**: {wi.changedBy or 'Unknown'} on {format_datetime(wi.changedDate)}",
        f"**Tags**: {wi.tags or 'None'}",
        f"**URL**: {work_item_url(organization_url, project, wi.id)}",
    ]

    if wi.description:
        lines.extend(["", "## Description", "", wi.description])

    if record.parents:
        lines.extend(["", "## Parent Work Items", ""])
        lines.extend(_linked_item_line(item, organization_url, project) for item in record.parents)

    if record.children:
        lines.extend(["", "## Child Work Items", ""])
        lines.extend(_linked_item_line(item, organization_url, project) for item in record.children)

    return "\n".join(lines) + "\n"


def format_created_work_item(created: CreatedWorkItem, organization_url: str, project: str) -> str:
    wi = created.workItem
    lines = [
        "# Work Item Created",
        "",
        f"**ID**: {wi.id}",
        f"**Title**: {wi.title}",
        f"**Type**: {wi.workItemType or 'Unknown'}",
        f"**State**: {wi.state or 'Unknown'}",
        f"**Assigned To**: {wi.assignedTo or 'Unassigned'}",
        f"**URL**: {work_item_url(organization_url, project, wi.id)}",
    ]
    for link in created.links:
        lines.extend(
            [
                "",
                f"## {link.role} Work Item",
                f"**ID**: {link.target.id}",
                f"**Title**: {link.target.title}",
                f"**Type**: {link.target.workItemType or 'Unknown'}",
                f"**Relationship**: {link.linkType}",
            ]
        )
    return "\n".join(lines) + "\n"


def _parameter_rows(parameters: Sequence[ParameterSchemaEntry]) -> List[str]:
    rows = [
        "| Name | Display Name | Type | Default | Required |",
        "| ---- | ------------ | ---- | ------- | -------- |",
    ]
    for parameter in parameters:
        default = f"`{parameter.default}`" if parameter.default else ""
        rows.append(
            f"| {parameter.name} | {parameter.displayName} | {parameter.type} | {default} | "
            f"{'Yes' if parameter.required else 'No'} |"
        )
    return rows


def format_pipeline(record: PipelineRecord) -> str:
    pipeline = record.pipeline
    lines = [
        f"# Pipeline {pipeline.id}: {pipeline.name}",
        "",
        f"**Folder**: {pipeline.folder or 'Root'}",
        f"**Configuration Type**: {pipeline.configurationType or 'Unknown'}",
    ]
    if pipeline.yamlPath:
        lines.append(f"**YAML Path**: {pipeline.yamlPath}")
    lines.append(f"**Revision**: {pipeline.revision if pipeline.revision is not None else 'Not specified'}")
    lines.append(f"**URL**: {pipeline.url or 'N/A'}")

    if record.parameters:
        lines.extend(["", "## Parameters", ""])
        lines.extend(_parameter_rows(record.parameters))

    if record.recentRuns:
        lines.extend(["", "## Recent Runs", ""])
        for run in record.recentRuns:
            lines.append(
                f"- **Run {run.name or run.id}**: {run.state or 'Unknown'} "
                f"({run.result or 'Not available'}) - Created: {format_datetime(run.createdDate, 'Unknown')}"
            )

    return "\n".join(lines) + "\n"


def format_pipeline_run(
    pipeline: Pipeline,
    run: PipelineRun,
    branch: Optional[str],
    parameters: Optional[Mapping[str, str]] = None,
    variables: Optional[Mapping[str, str]] = None,
    missing_required: Sequence[ParameterSchemaEntry] = (),
) -> str:
    lines = [
        "# Pipeline Run Started",
        "",
        f"**Pipeline**: {pipeline.name} (ID: {pipeline.id})",
        f"**Run Name**: {run.name or 'Unknown'}",
        f"**Run ID**: {run.id}",
        f"**State**: {run.state or 'Not started'}",
        f"**Result**: {run.result or 'Not available yet'}",
        f"**Created**: {format_datetime(run.createdDate, 'Unknown')}",
        f"**Branch**: {branch or 'Default branch'}",
        f"**URL**: {run.url or 'N/A'}",
    ]

    if missing_required:
        lines.extend(["", "## Warning", "", "Required parameters were not supplied and have no default:", ""])
        lines.extend(f"- **{entry.name}** ({entry.displayName})" for entry in missing_required)

    for title, values in (("Parameters", parameters), ("Variables", variables)):
        if values:
            lines.extend(["", f"## {title}", ""])
            lines.extend(f"- **{key}**: {value}" for key, value in values.items())

    return "\n".join(lines) + "\n"


def format_code_search(
    total_count: int,
    results: Sequence[CodeSearchResult],
    search_text: str,
    project: Optional[str],
    repository: Optional[str],
) -> str:
    if not total_count or not results:
        return "No results found."

    lines = ["# Code Search Results", "", f"Found {total_count} result(s) for query: **{search_text}**", ""]
    if repository:
        lines.extend([f"Repository: **{repository}**", ""])
    if project:
        lines.extend([f"Project: **{project}**", ""])

    for result in results:
        branch = result.branch or "unknown"
        lines.append(f"## {result.fileName}")
        lines.append(f"**Path**: {result.path}")
        lines.append(f"**Repository**: {result.repositoryName or 'Unknown'}")
        lines.append(f"**Project**: {result.projectName or 'Unknown'}")
        lines.append(f"**Branch**: {branch}")
        if result.repositoryWebUrl:
            lines.append(f"**Link**: [View in Azure DevOps]({result.repositoryWebUrl}?path={result.path}&version=GB{branch})")
        lines.extend(["", f"### Matches ({len(result.matches)})", ""])
        for match in result.matches:
            lines.extend([f"Line {match.lineNumber}: `{match.line.strip()}`", ""])
        lines.extend(["---", ""])

    return "\n".join(lines)


def wiki_type_label(wiki: Wiki) -> str:
    return "Code Wiki" if wiki.type.lower() == "codewiki" else "Project Wiki"


def format_created_wiki(wiki: Wiki) -> str:
    return f'Created wiki "{wiki.name}" ({wiki_type_label(wiki)})'


def format_wiki_page(page: WikiPage, wiki: Wiki, updated: bool) -> str:
    action = "Updated" if updated else "Created"
    lines = [f'{action} wiki page "{page.path}" in wiki "{wiki.name}".']
    if page.remoteUrl:
        lines.append(f"Page URL: {page.remoteUrl}")
    if page.eTag:
        lines.append(f"Version: {page.eTag}")
    return "\n".join(lines)


def wiki_resource(wiki: Wiki) -> Dict[str, Optional[str]]:
    return {
        "id": wiki.id,
        "name": wiki.name,
        "type": wiki_type_label(wiki),
        "projectId": wiki.projectId,
        "repositoryId": wiki.repositoryId,
    }
