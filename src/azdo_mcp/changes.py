"""Grouping and browser-link helpers for pull request change entries."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Union
from urllib.parse import quote

from .models import ChangeEntry, ChangeType

SUMMARY_TYPES = (ChangeType.ADD, ChangeType.EDIT, ChangeType.DELETE, ChangeType.RENAME)

# VersionControlChangeType flag values used by older API responses.
_FLAG_TYPES = {
    1: ChangeType.ADD,
    2: ChangeType.EDIT,
    8: ChangeType.RENAME,
    16: ChangeType.DELETE,
}


def parse_change_type(raw: Optional[Union[str, int]]) -> ChangeType:
    """Map an Azure DevOps change type onto ``ChangeType``.

    Combined values such as ``"edit, rename"`` map to their first recognised
    flag. Anything else is ``UNKNOWN``.
    """
    if raw is None:
        return ChangeType.UNKNOWN

    if isinstance(raw, int):
        for flag, change_type in _FLAG_TYPES.items():
            if raw & flag:
                return change_type
        return ChangeType.UNKNOWN

    for token in str(raw).split(","):
        try:
            change_type = ChangeType(token.strip().lower())
        except ValueError:
            continue
        if change_type is not ChangeType.UNKNOWN:
            return change_type
    return ChangeType.UNKNOWN


def group_changes(entries: Sequence[ChangeEntry]) -> Dict[ChangeType, List[ChangeEntry]]:
    """Partition change entries by type, keeping backend order within each group."""
    groups: Dict[ChangeType, List[ChangeEntry]] = {change_type: [] for change_type in ChangeType}
    for entry in entries:
        groups[entry.changeType].append(entry)
    return groups


def change_summary(entries: Sequence[ChangeEntry]) -> Dict[ChangeType, int]:
    """Return Add/Edit/Delete/Rename group sizes for the diff summary."""
    groups = group_changes(entries)
    return {change_type: len(groups[change_type]) for change_type in SUMMARY_TYPES}


def build_change_link(web_url: Optional[str], commit_id: Optional[str], path: Optional[str]) -> str:
    """Build a browser link to a changed file, or ``""`` when one cannot be built."""
    if not web_url or not path:
        return ""

    encoded_path = quote(path, safe="")
    if commit_id:
        return f"{web_url}/commit/{commit_id}?path={encoded_path}&_a=contents"
    return f"{web_url}?path={encoded_path}&_a=contents"
