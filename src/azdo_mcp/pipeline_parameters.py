"""Best-effort recovery of pipeline template parameters from YAML text.

The extractor does not use a YAML parser. It pattern-matches the common
``parameters:`` list convention::

    parameters:
    - name: environment
      displayName: Target environment
      type: string
      default: staging

Anything it cannot recognise is skipped, so malformed input degrades to an
empty schema instead of an error.

Known limitation: ``default:`` with no value and a missing ``default:`` key both
capture ``""``, so both are classified as required.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Set

from .models import ParameterSchemaEntry, Pipeline

logger = logging.getLogger(__name__)

_PARAMETERS_KEY = re.compile(r"^parameters:[ \t]*(?:#.*)?$", re.MULTILINE)
_TOP_LEVEL_KEY = re.compile(r"^[A-Za-z_$][\w.$-]*[ \t]*:", re.MULTILINE)
_FIRST_CONTENT_LINE = re.compile(r"^[ \t]*[^\s#].*$", re.MULTILINE)
_ITEM_START = re.compile(r"^[ \t]*-[ \t]*name:[ \t]*(.*)$", re.MULTILINE)
_TYPE_FIELD = re.compile(r"^[ \t]*type:[ \t]*(.*)$", re.MULTILINE)
_DEFAULT_FIELD = re.compile(r"^[ \t]*default:[ \t]*(.*)$", re.MULTILINE)
_DISPLAY_NAME_FIELD = re.compile(r"^[ \t]*displayName:[ \t]*(.*)$", re.MULTILINE)


def is_yaml_pipeline(pipeline: Pipeline) -> bool:
    return (pipeline.configurationType or "").lower() == "yaml"


def _parameters_block(raw_text: str) -> Optional[str]:
    start_match = _PARAMETERS_KEY.search(raw_text)
    if start_match is None:
        # A template fragment may be nothing but the parameter list itself.
        first = _FIRST_CONTENT_LINE.search(raw_text)
        if first is not None and _ITEM_START.match(first.group(0)):
            return raw_text
        return None

    start = start_match.end()
    end_match = _TOP_LEVEL_KEY.search(raw_text, start)
    end = end_match.start() if end_match else len(raw_text)
    return raw_text[start:end]


def _field(pattern: re.Pattern, span: str) -> Optional[str]:
    match = pattern.search(span)
    if match is None:
        return None
    return match.group(1).strip()


def extract_parameter_schema(raw_text: Optional[str]) -> List[ParameterSchemaEntry]:
    """Extract the template parameter schema from pipeline YAML text.

    Args:
        raw_text: Raw contents of the pipeline definition file.

    Returns:
        Parameters in declaration order. Names are unique; when a name repeats,
        the first declaration wins. Returns an empty list when the text has no
        top-level ``parameters:`` block and is not itself a parameter list.
    """
    if not raw_text:
        return []

    block = _parameters_block(raw_text.replace("\r\n", "\n"))
    if not block:
        return []

    items = list(_ITEM_START.finditer(block))
    entries: List[ParameterSchemaEntry] = []
    seen: Set[str] = set()

    for index, item in enumerate(items):
        name = item.group(1).strip()
        if not name or name in seen:
            continue
        seen.add(name)

        span_end = items[index + 1].start() if index + 1 < len(items) else len(block)
        span = block[item.end():span_end]

        entries.append(
            ParameterSchemaEntry(
                name=name,
                type=_field(_TYPE_FIELD, span) or "string",
                default=_field(_DEFAULT_FIELD, span) or "",
                displayName=_field(_DISPLAY_NAME_FIELD, span) or name,
            )
        )

    logger.debug("Extracted pipeline parameter schema", extra={"parameter_count": len(entries)})
    return entries
