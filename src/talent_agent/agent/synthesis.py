"""Build one structured result from a turn's text and tool outputs."""

import logging
import math
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from talent_agent.agent.models import (
    DetailedProfile,
    DetailResult,
    ProfileSummary,
    SearchResult,
)

logger = logging.getLogger(__name__)

DETAIL_TOOL = "getProfileDetails"
SEARCH_TOOL = "searchProfiles"
TABLE_SEARCH_TOOL = "searchInTable"

NO_RESULTS_SUMMARY = "No results found."


def build_result(
    session_id: str,
    query: str,
    text: str,
    tool_outputs: Sequence[tuple[str, Any]],
) -> SearchResult | DetailResult:
    """Pick the result for a turn.

    Priority: a successful ``getProfileDetails`` output, then
    ``searchProfiles``, then ``searchInTable``, then a text-only search
    result with no profiles. The first output of a kind wins. A detail
    output without ``success`` and ``profile`` falls through to the next
    tier.
    """
    detail = _first(tool_outputs, DETAIL_TOOL)
    if detail is not None and detail.get("success") and detail.get("profile"):
        try:
            profile = DetailedProfile.model_validate(detail["profile"])
        except ValidationError as exc:
            logger.warning("Ignoring unparsable profile detail: %s", exc)
        else:
            return DetailResult(session=session_id, profile=profile, summary=text)

    search = _first(tool_outputs, SEARCH_TOOL)
    if search is not None:
        return SearchResult(
            session=session_id,
            query=query,
            profiles=_profiles(search.get("profiles")),
            total_matches=_count(search.get("totalMatches")),
            summary=text,
            applied_filters=_mapping(search.get("appliedFilters")),
        )

    table = _first(tool_outputs, TABLE_SEARCH_TOOL)
    if table is not None:
        return SearchResult(
            session=session_id,
            query=query,
            profiles=_profiles(table.get("profiles")),
            total_matches=_count(table.get("matchCount")),
            summary=text,
        )

    return SearchResult(
        session=session_id,
        query=query,
        summary=text or NO_RESULTS_SUMMARY,
    )


def _first(tool_outputs: Sequence[tuple[str, Any]], name: str) -> dict[str, Any] | None:
    for tool_name, output in tool_outputs:
        if tool_name == name:
            return output if isinstance(output, dict) else {}
    return None


def _profiles(raw: Any) -> list[ProfileSummary]:
    if not isinstance(raw, list):
        return []
    profiles = []
    for item in raw:
        try:
            profiles.append(ProfileSummary.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping unparsable profile summary: %s", exc)
    return profiles


def _count(raw: Any) -> int:
    """A non-negative match count; anything unusable counts as 0."""
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return max(raw, 0)
    if isinstance(raw, float) and math.isfinite(raw):
        return max(int(raw), 0)
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return 0


def _mapping(raw: Any) -> dict[str, Any]:
    return raw if isinstance(raw, dict) else {}
