"""Resolution of user-supplied, possibly partial identifiers into backend entities.

Precedence is always: explicit id, explicit name, configured default. A direct
lookup is tried first. Not-found and invalid-format errors from that lookup are
recoverable and trigger a case-insensitive display-name scan over the candidate
set. Any other backend error propagates unchanged.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, TypeVar, Union

from .ado_client import AdoClient
from .errors import ConfigurationError, InvalidRequestError, NotFoundError
from .models import (
    EntityKind,
    EntityRef,
    PullRequest,
    Repository,
    ResolutionOutcome,
    ResolutionResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Identifier = Union[str, int]

# Errors that mean "not this candidate" rather than "stop searching".
RECOVERABLE_LOOKUP_ERRORS = (NotFoundError, InvalidRequestError)


def _present(value: Optional[Identifier]) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def first_present(*candidates: Optional[Identifier]) -> Optional[Identifier]:
    """Return the first candidate that is neither None nor blank."""
    for candidate in candidates:
        if _present(candidate):
            return candidate.strip() if isinstance(candidate, str) else candidate
    return None


def resolve_identifier(explicit: Optional[str], default: Optional[str], entity: str) -> str:
    """Return the explicit identifier, else the configured default.

    Raises:
        ConfigurationError: If neither is present.
    """
    identifier = first_present(explicit, default)
    if identifier is None:
        raise ConfigurationError(f"No {entity} specified and no default {entity} configured")
    return str(identifier)


def resolve(
    kind: EntityKind,
    lookup: Callable[[Identifier], Optional[T]],
    candidate_provider: Callable[[], Iterable[T]],
    name_of: Callable[[T], Optional[str]],
    explicit_id: Optional[Identifier] = None,
    explicit_name: Optional[str] = None,
    configured_default: Optional[Identifier] = None,
    ref_of: Optional[Callable[[T], EntityRef]] = None,
) -> ResolutionResult[T]:
    """Resolve an entity from an explicit id or name, or a configured default.

    Args:
        kind: Entity family being resolved.
        lookup: Direct lookup treating the identifier as a primary key.
        candidate_provider: Lists the full candidate set for the name scan.
        name_of: Display name of a candidate.
        explicit_id: Identifier supplied by the caller as an id.
        explicit_name: Identifier supplied by the caller as a name.
        configured_default: Fallback when the caller supplied neither.
        ref_of: Builds the ``EntityRef`` recorded for each scanned candidate.

    Returns:
        A ``ResolutionResult``. ``AMBIGUOUS_DEFAULT_MISSING`` means no identifier
        was available at all, and in that case no backend call was made.
    """
    if _present(explicit_id):
        ref = EntityRef(kind=kind, id=first_present(explicit_id))
    elif _present(explicit_name):
        ref = EntityRef(kind=kind, name=str(first_present(explicit_name)))
    elif _present(configured_default):
        default = first_present(configured_default)
        ref = EntityRef(kind=kind, id=default) if isinstance(default, int) else EntityRef(kind=kind, name=default)
    else:
        return ResolutionResult(ref=EntityRef(kind=kind), outcome=ResolutionOutcome.AMBIGUOUS_DEFAULT_MISSING)

    identifier = ref.id if ref.id is not None else ref.name
    searched: List[EntityRef] = []

    try:
        entity = lookup(identifier)
    except RECOVERABLE_LOOKUP_ERRORS as exc:
        logger.debug(
            "Direct lookup failed; falling back to name scan",
            extra={"entity_kind": kind.value, "identifier": identifier, "error": str(exc)},
        )
        entity = None

    if entity is not None:
        return ResolutionResult(ref=ref, entity=entity, searched_candidates=searched, outcome=ResolutionOutcome.FOUND)

    wanted = str(identifier).strip().lower()
    for candidate in candidate_provider():
        candidate_name = name_of(candidate) or ""
        searched.append(ref_of(candidate) if ref_of else EntityRef(kind=kind, name=candidate_name))
        if candidate_name.lower() == wanted:
            return ResolutionResult(
                ref=ref,
                entity=candidate,
                searched_candidates=searched,
                outcome=ResolutionOutcome.FOUND,
            )

    logger.debug(
        "Identifier did not match any candidate",
        extra={"entity_kind": kind.value, "identifier": identifier, "candidates": len(searched)},
    )
    return ResolutionResult(ref=ref, searched_candidates=searched, outcome=ResolutionOutcome.NOT_FOUND)


def _repository_ref(repository: Repository) -> EntityRef:
    return EntityRef(kind=EntityKind.REPOSITORY, id=repository.id, name=repository.name)


def resolve_repository(
    client: AdoClient,
    project: str,
    explicit: Optional[str],
    default: Optional[str],
) -> ResolutionResult[Repository]:
    """Resolve a repository given as a GUID or a display name."""
    return resolve(
        EntityKind.REPOSITORY,
        lookup=lambda identifier: client.get_repository(project, str(identifier)),
        candidate_provider=lambda: client.list_repositories(project),
        name_of=lambda repository: repository.name,
        explicit_name=explicit,
        configured_default=default,
        ref_of=_repository_ref,
    )


def find_pull_request(
    client: AdoClient,
    project: str,
    pull_request_id: int,
    repository: Optional[str] = None,
) -> ResolutionResult[PullRequest]:
    """Locate a pull request, scanning every repository when none is named.

    With ``repository`` set, exactly one direct lookup is made. Otherwise the
    project's repositories are tried in listing order and the first repository
    containing the pull request wins. Per-repository not-found and invalid
    errors are swallowed; anything else propagates immediately.
    """
    ref = EntityRef(kind=EntityKind.PULL_REQUEST, id=pull_request_id)
    searched: List[EntityRef] = []

    if _present(repository):
        candidates: Iterable[EntityRef] = [EntityRef(kind=EntityKind.REPOSITORY, id=str(repository).strip())]
    else:
        candidates = (_repository_ref(repo) for repo in client.list_repositories(project))

    for candidate in candidates:
        searched.append(candidate)
        try:
            pull_request = client.get_pull_request(project, str(candidate.id), pull_request_id)
        except RECOVERABLE_LOOKUP_ERRORS:
            logger.debug(
                "Pull request not found in repository",
                extra={"pull_request_id": pull_request_id, "repository": candidate.label},
            )
            continue

        if pull_request.pullRequestId == pull_request_id:
            return ResolutionResult(
                ref=ref,
                entity=pull_request,
                searched_candidates=searched,
                outcome=ResolutionOutcome.FOUND,
            )

    return ResolutionResult(ref=ref, searched_candidates=searched, outcome=ResolutionOutcome.NOT_FOUND)
