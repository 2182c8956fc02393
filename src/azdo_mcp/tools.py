"""Tool definitions exposed over MCP and their handlers.

Each handler validates nothing itself: arguments are checked against the
tool's JSON schema by ``AzdoTools.invoke`` before the handler runs. Handlers
resolve the project and other identifiers, call the client and aggregator, and
hand the result to a formatter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from jsonschema import Draft202012Validator

from .ado_client import AdoClient
from .aggregator import (
    PARENT_RELATION,
    RELATED_RELATION,
    build_pipeline_record,
    build_pull_request_record,
    build_repository_record,
    build_work_item_record,
    link_work_items,
    normalize_link_type,
)
from .config import Config
from .errors import AzdoToolError, ConfigurationError, NotFoundError, ToolInputError
from .formatters import (
    format_code_search,
    format_created_pull_request,
    format_created_wiki,
    format_created_work_item,
    format_pipeline,
    format_pipeline_run,
    format_pull_request,
    format_pull_request_diff,
    format_pull_request_list,
    format_repository,
    format_repository_list,
    format_wiki_page,
    format_work_item,
    wiki_resource,
)
from .models import EntityKind, ParameterSchemaEntry, PullRequestDiff, ResolutionOutcome
from .resolver import find_pull_request, first_present, resolve, resolve_identifier, resolve_repository

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "refs/heads/"

DEFAULT_SEARCH_RESULTS = 20
DEFAULT_DIFF_TOP = 100

MISSING_REPOSITORY = "No repository specified and no default repository configured"


@dataclass
class ToolResource:
    """Structured payload attached to a tool response."""

    uri: str
    data: Dict[str, Any]
    mime_type: str = "application/json"


@dataclass
class ToolResponse:
    text: str
    resource: Optional[ToolResource] = None
    is_error: bool = False


@dataclass
class ToolSpec:
    name: str
    description: str
    input_schema: Dict[str, Any]
    handler: Callable[[Dict[str, Any]], ToolResponse] = field(repr=False)


def _object_schema(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "additionalProperties": False,
    }
    if required:
        schema["required"] = required
    return schema


def _string(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


def _integer(description: str, minimum: Optional[int] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "integer", "description": description}
    if minimum is not None:
        schema["minimum"] = minimum
    return schema


def _string_map(description: str) -> Dict[str, Any]:
    return {"type": "object", "additionalProperties": {"type": "string"}, "description": description}


_PROJECT = _string("The project to use (uses the default project if not specified)")


def validate_arguments(schema: Dict[str, Any], arguments: Mapping[str, Any]) -> None:
    """Raise ``ToolInputError`` describing every schema violation in ``arguments``."""
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(arguments), key=lambda err: [str(part) for part in err.path])
    if errors:
        messages = "; ".join(
            f"{'/'.join(str(part) for part in err.path) or '<root>'}: {err.message}" for err in errors
        )
        raise ToolInputError(f"Invalid arguments: {messages}")


def normalize_branch(name: str) -> str:
    """Prefix a bare branch name with ``refs/heads/``."""
    name = name.strip()
    return name if name.startswith(BRANCH_PREFIX) else f"{BRANCH_PREFIX}{name}"


class AzdoTools:
    """The fixed set of Azure DevOps tools, bound to one client and configuration."""

    def __init__(self, client: AdoClient, config: Config) -> None:
        self._client = client
        self._config = config
        self._specs: Dict[str, ToolSpec] = {spec.name: spec for spec in self._build_specs()}

    @property
    def specs(self) -> List[ToolSpec]:
        return list(self._specs.values())

    def invoke(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> ToolResponse:
        """Run one tool and convert every failure into an error response."""
        spec = self._specs.get(name)
        if spec is None:
            return ToolResponse(text=f"Error: Unknown tool '{name}'", is_error=True)

        args = dict(arguments or {})
        logger.info("Invoking tool", extra={"tool": name, "arguments": sorted(args)})

        try:
            validate_arguments(spec.input_schema, args)
            return spec.handler(args)
        except AzdoToolError as exc:
            logger.warning("Tool failed", extra={"tool": name, "error": str(exc)})
            return ToolResponse(text=f"Error: {exc}", is_error=True)
        except Exception as exc:
            logger.exception("Unexpected error in tool", extra={"tool": name})
            return ToolResponse(text=f"Error: {exc}", is_error=True)

    def _project(self, args: Mapping[str, Any], key: str = "project") -> str:
        return resolve_identifier(args.get(key), self._config.default_project, "project")

    # Repositories

    def list_repositories(self, args: Dict[str, Any]) -> ToolResponse:
        project = first_present(args.get("project"), self._config.default_project)
        repositories = self._client.list_repositories(project)
        return ToolResponse(
            text=format_repository_list(repositories, project, self._config.default_repository)
        )

    def get_repository(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args)
        result = resolve_repository(
            self._client, project, args.get("repositoryId"), self._config.default_repository
        )
        if result.outcome is ResolutionOutcome.AMBIGUOUS_DEFAULT_MISSING:
            raise ConfigurationError(MISSING_REPOSITORY)
        if not result.found:
            return ToolResponse(text=f"Repository '{result.ref.label}' not found in project '{project}'.")
        record = build_repository_record(self._client, project, result.entity)
        return ToolResponse(text=format_repository(record))

    def search_repository_code(self, args: Dict[str, Any]) -> ToolResponse:
        project = first_present(args.get("project"), self._config.default_project)
        repository = first_present(args.get("repository"), self._config.default_repository)

        filters: Dict[str, List[str]] = {}
        if project:
            filters["Project"] = [str(project)]
        if repository:
            filters["Repository"] = [str(repository)]
        if args.get("path"):
            filters["Path"] = [args["path"]]
        if args.get("branch"):
            filters["Branch"] = [args["branch"]]
        if args.get("fileExtension"):
            extension = args["fileExtension"]
            filters["Extension"] = [extension if extension.startswith(".") else f".{extension}"]

        body = {
            "searchText": args["searchText"],
            "$skip": 0,
            "$top": args.get("maxResults", DEFAULT_SEARCH_RESULTS),
            "filters": filters,
            "includeFacets": False,
        }
        total, results = self._client.search_code(project, body)
        return ToolResponse(text=format_code_search(total, results, args["searchText"], project, repository))

    # Pull requests

    def get_pull_requests(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args)
        pull_requests = self._client.list_pull_requests(
            project,
            repository_id=args.get("repositoryId"),
            status=args.get("status", "active"),
            creator_id=args.get("creatorId"),
            reviewer_id=args.get("reviewerId"),
            top=args.get("limit", 10),
            skip=args.get("skip", 0),
        )
        return ToolResponse(
            text=format_pull_request_list(pull_requests, self._client.organization_url, project)
        )

    def _find_pull_request(self, project: str, args: Mapping[str, Any]):
        repository = first_present(args.get("repositoryId"), self._config.default_repository)
        result = find_pull_request(self._client, project, args["pullRequestId"], repository)
        if result.found and not result.entity.repositoryId and result.searched_candidates:
            # Payload without a repository block; use the repository it was found in.
            result.entity.repositoryId = str(result.searched_candidates[-1].id)
        return result

    def get_pull_request(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args)
        result = self._find_pull_request(project, args)
        if not result.found:
            return ToolResponse(text=f"Pull request #{args['pullRequestId']} not found in project '{project}'.")
        record = build_pull_request_record(self._client, project, result.entity)
        return ToolResponse(text=format_pull_request(record, self._client.organization_url, project))

    def get_pull_request_diff(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args)
        result = self._find_pull_request(project, args)
        if not result.found:
            return ToolResponse(text=f"Pull request #{args['pullRequestId']} not found in project '{project}'.")
        pull_request = result.entity
        changes = self._client.list_pull_request_changes(
            project,
            pull_request.repositoryId,
            pull_request.pullRequestId,
            top=args.get("top", DEFAULT_DIFF_TOP),
            skip=args.get("skip", 0),
        )
        return ToolResponse(text=format_pull_request_diff(PullRequestDiff(pull_request, changes)))

    def create_pull_request(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args)
        result = resolve_repository(self._client, project, None, self._config.default_repository)
        if result.outcome is ResolutionOutcome.AMBIGUOUS_DEFAULT_MISSING:
            raise ConfigurationError(MISSING_REPOSITORY)
        if not result.found:
            raise NotFoundError(f"Repository '{result.ref.label}' not found in project '{project}'")
        repository = result.entity

        body = {
            "sourceRefName": normalize_branch(args["sourceRefName"]),
            "targetRefName": normalize_branch(args["targetRefName"]),
            "title": args["title"],
            "description": args.get("description", ""),
            "isDraft": args.get("isDraft", False),
        }
        logger.info(
            "Creating pull request",
            extra={"project": project, "repository": repository.name, "source": body["sourceRefName"]},
        )
        pull_request = self._client.create_pull_request(project, repository.id, body)

        reviewers_added = []
        for reviewer in args.get("reviewers", []):
            try:
                self._client.add_pull_request_reviewer(project, repository.id, pull_request.pullRequestId, reviewer)
            except AzdoToolError as exc:
                logger.warning("Could not add reviewer", extra={"reviewer": reviewer, "error": str(exc)})
                continue
            reviewers_added.append(reviewer)

        artifact_url = (
            f"vstfs:///Git/PullRequestId/{repository.projectId}%2F{repository.id}%2F{pull_request.pullRequestId}"
        )
        work_items_linked = []
        for work_item_id in args.get("workItemIds", []):
            patch = [
                {
                    "op": "add",
                    "path": "/relations/-",
                    "value": {"rel": "ArtifactLink", "url": artifact_url, "attributes": {"name": "Pull Request"}},
                }
            ]
            try:
                self._client.update_work_item(
                    work_item_id, patch, project=project, timeout=self._config.link_timeout_seconds
                )
            except AzdoToolError as exc:
                logger.warning(
                    "Could not link work item to pull request",
                    extra={"work_item_id": work_item_id, "error": str(exc)},
                )
                continue
            work_items_linked.append(work_item_id)

        return ToolResponse(
            text=format_created_pull_request(
                pull_request,
                repository,
                self._client.organization_url,
                project,
                reviewers_added,
                work_items_linked,
            )
        )

    # Work items

    def get_work_item(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args)
        include_relations = args.get("includeRelations", False)
        try:
            work_item = self._client.get_work_item(
                args["workItemId"], project=project, include_relations=include_relations
            )
        except NotFoundError:
            return ToolResponse(text=f"Work item {args['workItemId']} not found in project '{project}'.")
        record = build_work_item_record(self._client, project, work_item, include_relations)
        return ToolResponse(text=format_work_item(record, self._client.organization_url, project))

    def create_work_item(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args)
        patch = [{"op": "add", "path": "/fields/System.Title", "value": args["title"]}]
        if args.get("description"):
            patch.append({"op": "add", "path": "/fields/System.Description", "value": args["description"]})
        if args.get("assignedTo"):
            patch.append({"op": "add", "path": "/fields/System.AssignedTo", "value": args["assignedTo"]})

        work_item = self._client.create_work_item(
            project,
            args.get("workItemType", "Task"),
            patch,
            timeout=self._config.timeout_seconds,
        )
        logger.info("Created work item", extra={"work_item_id": work_item.id, "project": project})

        links = []
        if args.get("parentId") is not None:
            links.append((args["parentId"], normalize_link_type(args.get("linkType"), PARENT_RELATION), "Parent"))
        if args.get("relatedWorkItemId") is not None:
            links.append(
                (
                    args["relatedWorkItemId"],
                    normalize_link_type(args.get("relatedWorkItemLinkType"), RELATED_RELATION),
                    "Related",
                )
            )

        created = link_work_items(
            self._client, project, work_item, links, timeout=self._config.link_timeout_seconds
        )
        return ToolResponse(text=format_created_work_item(created, self._client.organization_url, project))

    # Pipelines

    def get_pipeline(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args)
        try:
            pipeline = self._client.get_pipeline(project, args["pipelineId"])
        except NotFoundError:
            return ToolResponse(text=f"Pipeline {args['pipelineId']} not found in project '{project}'.")
        return ToolResponse(text=format_pipeline(build_pipeline_record(self._client, project, pipeline)))

    def run_pipeline(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args)
        pipeline = self._client.get_pipeline(project, args["pipelineId"])
        parameters: Dict[str, str] = args.get("parameters", {})
        variables: Dict[str, str] = args.get("variables", {})

        record = build_pipeline_record(self._client, project, pipeline, include_runs=False)
        missing: List[ParameterSchemaEntry] = [
            entry for entry in record.parameters if entry.required and entry.name not in parameters
        ]
        if missing:
            logger.warning(
                "Running pipeline without required parameters",
                extra={"pipeline_id": pipeline.id, "missing": [entry.name for entry in missing]},
            )

        body: Dict[str, Any] = {}
        if args.get("branch"):
            body["resources"] = {"repositories": {"self": {"refName": normalize_branch(args["branch"])}}}
        if parameters:
            body["templateParameters"] = parameters
        if variables:
            body["variables"] = {key: {"value": value} for key, value in variables.items()}

        run = self._client.run_pipeline(project, pipeline.id, body)
        return ToolResponse(
            text=format_pipeline_run(pipeline, run, args.get("branch"), parameters, variables, missing)
        )

    # Wikis

    def create_wiki(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args, key="projectId")
        body: Dict[str, Any] = {"name": args["name"], "projectId": project, "type": "projectWiki"}
        if args.get("repositoryId"):
            body.update(
                {
                    "type": "codeWiki",
                    "repositoryId": args["repositoryId"],
                    "mappedPath": args.get("mappedPath") or "/",
                    "version": {"version": args.get("branch") or "main"},
                }
            )
        wiki = self._client.create_wiki(project, body)
        return ToolResponse(
            text=format_created_wiki(wiki),
            resource=ToolResource(uri=wiki.remoteUrl or f"azdo://wiki/{wiki.id}", data=wiki_resource(wiki)),
        )

    def edit_wiki_page(self, args: Dict[str, Any]) -> ToolResponse:
        project = self._project(args, key="projectId")
        result = resolve(
            EntityKind.WIKI,
            lookup=lambda identifier: self._client.get_wiki(project, str(identifier)),
            candidate_provider=lambda: self._client.list_wikis(project),
            name_of=lambda wiki: wiki.name,
            explicit_name=args["wikiIdentifier"],
        )
        if not result.found:
            return ToolResponse(text=f"Wiki '{args['wikiIdentifier']}' not found in project '{project}'.")
        wiki = result.entity

        version = args.get("version")
        if not version:
            try:
                version = self._client.get_wiki_page(project, wiki.id, args["path"]).eTag
            except NotFoundError:
                version = None

        page = self._client.create_or_update_wiki_page(project, wiki.id, args["path"], args["content"], version)
        data = {
            "path": page.path,
            "id": page.id,
            "wikiId": wiki.id,
            "wikiName": wiki.name,
            "remoteUrl": page.remoteUrl,
            "version": page.eTag,
        }
        return ToolResponse(
            text=format_wiki_page(page, wiki, updated=version is not None),
            resource=ToolResource(uri=page.remoteUrl or f"azdo://wiki/{wiki.id}/page{page.path}", data=data),
        )

    def _build_specs(self) -> List[ToolSpec]:
        return [
            ToolSpec(
                "list_repositories",
                "List repositories in a project",
                _object_schema({"project": _PROJECT}),
                self.list_repositories,
            ),
            ToolSpec(
                "get_repository",
                "Get repository details",
                _object_schema(
                    {
                        "repositoryId": _string(
                            "The ID or name of the repository (uses default repository if not specified)"
                        ),
                        "project": _PROJECT,
                    }
                ),
                self.get_repository,
            ),
            ToolSpec(
                "search_repository_code",
                "Search for code in repositories",
                _object_schema(
                    {
                        "searchText": _string("The text to search for in the code"),
                        "project": _PROJECT,
                        "repository": _string("The repository to search in (uses default repository if not specified)"),
                        "path": _string('The path within the repository to search (e.g., "/src")'),
                        "branch": _string("The branch to search in (defaults to the default branch)"),
                        "fileExtension": _string('Filter by file extension (e.g., ".py", ".cs")'),
                        "maxResults": _integer("Maximum number of results to return (default: 20)", minimum=1),
                    },
                    required=["searchText"],
                ),
                self.search_repository_code,
            ),
            ToolSpec(
                "get_pull_requests",
                "Get a list of pull requests",
                _object_schema(
                    {
                        "project": _PROJECT,
                        "repositoryId": _string("The ID of the repository to filter pull requests by"),
                        "status": {
                            "type": "string",
                            "enum": ["active", "abandoned", "completed", "all"],
                            "description": "The status of pull requests to retrieve (default: active)",
                        },
                        "creatorId": _string("Filter pull requests by creator ID"),
                        "reviewerId": _string("Filter pull requests by reviewer ID"),
                        "limit": _integer("Maximum number of pull requests to return (default: 10)", minimum=1),
                        "skip": _integer("Number of pull requests to skip (default: 0)", minimum=0),
                    }
                ),
                self.get_pull_requests,
            ),
            ToolSpec(
                "get_pull_request",
                "Get details of a specific pull request",
                _object_schema(
                    {
                        "pullRequestId": _integer("The ID of the pull request"),
                        "project": _PROJECT,
                        "repositoryId": _string("The ID of the repository containing the pull request"),
                    },
                    required=["pullRequestId"],
                ),
                self.get_pull_request,
            ),
            ToolSpec(
                "create_pull_request",
                "Create a new pull request in the configured default repository",
                _object_schema(
                    {
                        "sourceRefName": _string('Source branch name (e.g., "feature/my-feature")'),
                        "targetRefName": _string('Target branch name (e.g., "main")'),
                        "title": _string("Title of the pull request"),
                        "description": _string("Description of the pull request"),
                        "project": _PROJECT,
                        "isDraft": {"type": "boolean", "description": "Create as a draft pull request"},
                        "reviewers": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Reviewer identity IDs",
                        },
                        "workItemIds": {
                            "type": "array",
                            "items": {"type": "integer"},
                            "description": "IDs of work items to link to the pull request",
                        },
                    },
                    required=["sourceRefName", "targetRefName", "title"],
                ),
                self.create_pull_request,
            ),
            ToolSpec(
                "get_pull_request_diff",
                "Get the file changes of a pull request",
                _object_schema(
                    {
                        "pullRequestId": _integer("The ID of the pull request"),
                        "project": _PROJECT,
                        "repositoryId": _string("The ID of the repository containing the pull request"),
                        "top": _integer("Maximum number of changes to return (default: 100)", minimum=1),
                        "skip": _integer("Number of changes to skip (default: 0)", minimum=0),
                    },
                    required=["pullRequestId"],
                ),
                self.get_pull_request_diff,
            ),
            ToolSpec(
                "get_work_item",
                "Get details of a specific work item",
                _object_schema(
                    {
                        "workItemId": _integer("The ID of the work item"),
                        "project": _PROJECT,
                        "includeRelations": {
                            "type": "boolean",
                            "description": "Whether to include parent and child linked items",
                        },
                    },
                    required=["workItemId"],
                ),
                self.get_work_item,
            ),
            ToolSpec(
                "create_work_item",
                "Create a new work item",
                _object_schema(
                    {
                        "project": _PROJECT,
                        "title": _string("The title of the work item"),
                        "workItemType": _string("The type of work item (e.g., Bug, Task, User Story)"),
                        "description": _string("The description of the work item"),
                        "assignedTo": _string("The user to assign the work item to"),
                        "parentId": _integer("The ID of the parent work item to link this work item to"),
                        "linkType": _string("Link type for the parent link (default: System.LinkTypes.Hierarchy-Reverse)"),
                        "relatedWorkItemId": _integer("The ID of a related work item to link this work item to"),
                        "relatedWorkItemLinkType": _string(
                            "Link type for the related link (default: System.LinkTypes.Related)"
                        ),
                    },
                    required=["title"],
                ),
                self.create_work_item,
            ),
            ToolSpec(
                "get_pipeline",
                "Get details of a pipeline, its recent runs and its YAML parameters",
                _object_schema(
                    {"pipelineId": _integer("The ID of the pipeline"), "project": _PROJECT},
                    required=["pipelineId"],
                ),
                self.get_pipeline,
            ),
            ToolSpec(
                "run_pipeline",
                "Run a pipeline",
                _object_schema(
                    {
                        "pipelineId": _integer("The ID of the pipeline to run"),
                        "project": _PROJECT,
                        "branch": _string("The branch to run the pipeline on (defaults to the default branch)"),
                        "parameters": _string_map("Key-value pairs of pipeline parameters"),
                        "variables": _string_map("Key-value pairs of pipeline variables"),
                    },
                    required=["pipelineId"],
                ),
                self.run_pipeline,
            ),
            ToolSpec(
                "create_wiki",
                "Create a project wiki, or a code wiki backed by a repository",
                _object_schema(
                    {
                        "name": _string("Name of the wiki"),
                        "projectId": _string("Project ID (uses the default project if not specified)"),
                        "repositoryId": _string("Repository ID for a code wiki (creates a project wiki if omitted)"),
                        "mappedPath": _string("Root path for a code wiki (default: /)"),
                        "branch": _string("Branch published by a code wiki (default: main)"),
                    },
                    required=["name"],
                ),
                self.create_wiki,
            ),
            ToolSpec(
                "edit_wiki_page",
                "Create or update a wiki page",
                _object_schema(
                    {
                        "wikiIdentifier": _string("Wiki ID or name"),
                        "path": _string("Path to the wiki page"),
                        "content": _string("Content of the wiki page in markdown format"),
                        "projectId": _string("Project ID (uses the default project if not specified)"),
                        "version": _string("Version (ETag) of the wiki page to update"),
                    },
                    required=["wikiIdentifier", "path", "content"],
                ),
                self.edit_wiki_page,
            ),
        ]
