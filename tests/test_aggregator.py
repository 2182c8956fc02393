"""Tests for composite record assembly and best-effort enrichment."""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from azdo_mcp.aggregator import (
    CHILD_RELATION,
    PARENT_RELATION,
    SecondaryFetch,
    aggregate,
    build_pipeline_record,
    build_pull_request_record,
    build_work_item_record,
    extract_work_item_id,
    filter_comment_threads,
    link_work_items,
    normalize_link_type,
)
from azdo_mcp.errors import ApiConnectionError, ApiTimeoutError, UnauthorizedError
from azdo_mcp.models import (
    Comment,
    CommentThread,
    Commit,
    Pipeline,
    PipelineRun,
    PullRequest,
    Reviewer,
    WorkItem,
    WorkItemRef,
    WorkItemRelation,
)

WI_URL = "https://dev.azure.com/org/_apis/wit/workItems/{}"


def _pull_request() -> PullRequest:
    return PullRequest(pullRequestId=7, title="Add feature", status="active", repositoryId="repo-id")


def test_aggregate_records_empty_value_for_silent_failure():
    """Verify a failed silent fetch yields its empty value and later fetches still run."""
    later = Mock(return_value=["ok"])

    results = aggregate(
        [
            SecondaryFetch("broken", Mock(side_effect=ApiConnectionError("down"))),
            SecondaryFetch("later", later),
        ]
    )

    assert results == {"broken": [], "later": ["ok"]}
    later.assert_called_once_with()


def test_aggregate_non_silent_reraises_unexpected_error():
    """Verify a non-silent fetch propagates errors that are not API errors."""
    with pytest.raises(KeyError):
        aggregate([SecondaryFetch("primary", Mock(side_effect=KeyError("value")), silent=False)])


def test_aggregate_reraises_non_silent_failure():
    """Verify a fetch marked non-silent propagates its error."""
    with pytest.raises(UnauthorizedError):
        aggregate([SecondaryFetch("primary", Mock(side_effect=UnauthorizedError("denied", 401)), silent=False)])


def test_build_pull_request_record_isolates_each_secondary_failure():
    """Verify one failing secondary fetch leaves the others populated."""
    client = Mock()
    client.list_pull_request_reviewers.side_effect = ApiConnectionError("down")
    client.list_pull_request_commits.return_value = [Commit(commitId="abc")]
    client.list_pull_request_work_items.return_value = [WorkItemRef(id="12")]
    client.list_pull_request_threads.return_value = []

    record = build_pull_request_record(client, "proj", _pull_request())

    assert record.reviewers == []
    assert [commit.commitId for commit in record.commits] == ["abc"]
    assert [ref.id for ref in record.workItemLinks] == ["12"]
    assert record.pullRequest.title == "Add feature"


def test_build_pull_request_record_tolerates_malformed_secondary_payload():
    """Verify a secondary fetch failing with a non-API error degrades to an empty value."""
    client = Mock()
    client.list_pull_request_reviewers.side_effect = TypeError("'NoneType' object is not iterable")
    client.list_pull_request_commits.return_value = [Commit(commitId="abc")]
    client.list_pull_request_work_items.return_value = []
    client.list_pull_request_threads.side_effect = ValueError("invalid literal for int()")

    record = build_pull_request_record(client, "proj", _pull_request())

    assert record.reviewers == []
    assert record.commentThreads == []
    assert [commit.commitId for commit in record.commits] == ["abc"]


def test_build_pull_request_record_survives_every_secondary_failure():
    """Verify the primary fields survive when all secondary fetches fail."""
    client = Mock()
    for name in (
        "list_pull_request_reviewers",
        "list_pull_request_commits",
        "list_pull_request_work_items",
        "list_pull_request_threads",
    ):
        getattr(client, name).side_effect = ApiTimeoutError("slow")

    record = build_pull_request_record(client, "proj", _pull_request())

    assert record.pullRequest.pullRequestId == 7
    assert (record.reviewers, record.commits, record.workItemLinks, record.commentThreads) == ([], [], [], [])


def test_build_pull_request_record_without_repository_id_skips_fetches():
    """Verify a pull request with no repository id is returned bare."""
    client = Mock()
    pull_request = PullRequest(pullRequestId=7, title="t", status="active")

    record = build_pull_request_record(client, "proj", pull_request)

    assert record.reviewers == []
    client.list_pull_request_reviewers.assert_not_called()


def test_filter_comment_threads_drops_system_deleted_and_empty_entries():
    """Verify suppressed threads and comments never reach the record."""
    threads = [
        CommentThread(id=1, comments=[Comment("Ann", "Looks good")]),
        CommentThread(id=2, isDeleted=True, comments=[Comment("Bob", "old")]),
        CommentThread(id=3, comments=[Comment("System", "Policy updated", commentType="system")]),
        CommentThread(id=4, comments=[Comment("Cy", "   "), Comment("Cy", "Real comment")]),
    ]

    visible = filter_comment_threads(threads)

    assert [thread.id for thread in visible] == [1, 4]
    assert [comment.content for comment in visible[1].comments] == ["Real comment"]


def test_extract_work_item_id():
    """Verify ids are read from the end of work item relation URLs."""
    assert extract_work_item_id(WI_URL.format(42)) == 42
    assert extract_work_item_id("https://example/wit/workitems/9/") == 9
    assert extract_work_item_id("vstfs:///Git/Commit/abc") is None
    assert extract_work_item_id(None) is None


def test_build_work_item_record_resolves_parents_and_children():
    """Verify parent and child relations are fetched as separate categories."""
    work_item = WorkItem(
        id=10,
        relations=[
            WorkItemRelation(PARENT_RELATION, WI_URL.format(1)),
            WorkItemRelation(CHILD_RELATION, WI_URL.format(11)),
            WorkItemRelation(CHILD_RELATION, WI_URL.format(12)),
            WorkItemRelation("ArtifactLink", "vstfs:///Git/Commit/abc"),
        ],
    )
    client = Mock()
    client.get_work_items.side_effect = lambda ids, project=None: [WorkItem(id=wi_id) for wi_id in ids]

    record = build_work_item_record(client, "proj", work_item, include_relations=True)

    assert [item.id for item in record.parents] == [1]
    assert [item.id for item in record.children] == [11, 12]


def test_build_work_item_record_failed_category_is_empty():
    """Verify a failing category is empty while the other category is kept."""
    work_item = WorkItem(
        id=10,
        relations=[
            WorkItemRelation(PARENT_RELATION, WI_URL.format(1)),
            WorkItemRelation(CHILD_RELATION, WI_URL.format(11)),
        ],
    )
    client = Mock()
    client.get_work_items.side_effect = [ApiConnectionError("down"), [WorkItem(id=11)]]

    record = build_work_item_record(client, "proj", work_item, include_relations=True)

    assert record.parents == []
    assert [item.id for item in record.children] == [11]


def test_build_work_item_record_without_relations_makes_no_calls():
    """Verify relations are not fetched unless requested."""
    client = Mock()
    work_item = WorkItem(id=10, relations=[WorkItemRelation(PARENT_RELATION, WI_URL.format(1))])

    record = build_work_item_record(client, "proj", work_item)

    assert record.parents == [] and record.children == []
    client.get_work_items.assert_not_called()


def test_build_pipeline_record_extracts_yaml_parameters_and_limits_runs():
    """Verify YAML pipelines get a parameter schema and at most five recent runs."""
    pipeline = Pipeline(id=3, name="CI", configurationType="yaml", yamlPath="/ci.yml", repositoryId="repo-id")
    client = Mock()
    client.list_pipeline_runs.return_value = [PipelineRun(id=run_id) for run_id in range(8)]
    client.get_file_content.return_value = "parameters:\n- name: env\n  default: prod\n"

    record = build_pipeline_record(client, "proj", pipeline)

    assert [run.id for run in record.recentRuns] == [0, 1, 2, 3, 4]
    assert [(entry.name, entry.default) for entry in record.parameters] == [("env", "prod")]
    client.get_file_content.assert_called_once_with("proj", "repo-id", "/ci.yml")


def test_build_pipeline_record_skips_schema_for_classic_pipelines():
    """Verify non-YAML pipelines never fetch a definition file."""
    pipeline = Pipeline(id=3, name="Classic", configurationType="designerJson")
    client = Mock()
    client.list_pipeline_runs.return_value = []

    record = build_pipeline_record(client, "proj", pipeline)

    assert record.parameters == []
    client.get_file_content.assert_not_called()


def test_build_pipeline_record_file_failure_gives_empty_schema():
    """Verify a failed YAML fetch leaves the schema empty and keeps the runs."""
    pipeline = Pipeline(id=3, name="CI", configurationType="yaml", yamlPath="/ci.yml", repositoryId="repo-id")
    client = Mock()
    client.list_pipeline_runs.return_value = [PipelineRun(id=1)]
    client.get_file_content.side_effect = ApiConnectionError("down")

    record = build_pipeline_record(client, "proj", pipeline)

    assert record.parameters == []
    assert len(record.recentRuns) == 1


def test_normalize_link_type():
    """Verify friendly link names map to reference names and blanks use the fallback."""
    assert normalize_link_type("Parent", CHILD_RELATION) == PARENT_RELATION
    assert normalize_link_type("related", PARENT_RELATION) == "System.LinkTypes.Related"
    assert normalize_link_type(None, PARENT_RELATION) == PARENT_RELATION
    assert normalize_link_type("Custom.Link", PARENT_RELATION) == "Custom.Link"


def test_link_work_items_reports_only_successful_links():
    """Verify a timed-out link is skipped and the remaining link is still made."""
    created = WorkItem(id=100, title="New")
    parent = WorkItem(id=1, title="Parent", url=WI_URL.format(1))
    client = Mock()
    client.get_work_item.side_effect = [ApiTimeoutError("slow"), parent]

    result = link_work_items(
        client,
        "proj",
        created,
        [(5, "System.LinkTypes.Related", "Related"), (1, PARENT_RELATION, "Parent")],
        timeout=15,
    )

    assert result.workItem is created
    assert [(link.target.id, link.role) for link in result.links] == [(1, "Parent")]
    client.update_work_item.assert_called_once_with(
        100,
        [{"op": "add", "path": "/relations/-", "value": {"rel": PARENT_RELATION, "url": WI_URL.format(1)}}],
        project="proj",
        timeout=15,
    )
