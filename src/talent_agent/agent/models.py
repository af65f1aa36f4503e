"""Conversation, profile and result models.

Everything here is serialized with camelCase keys, which is what the
Talent Pro backend speaks and what the JSON envelopes expose.
"""

from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from talent_agent.errors import ErrorCode


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LooseModel(CamelModel):
    """Backend record that keeps unknown keys and tolerates numeric ids."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow", coerce_numbers_to_str=True
    )


# ── Message parts ────────────────────────────────────────────────


class TextPart(CamelModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallPart(CamelModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: Any = None


class ToolResultPart(CamelModel):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    state: str = "output-available"
    output: Any = None


Part = Annotated[Union[TextPart, ToolCallPart, ToolResultPart], Field(discriminator="type")]


class Message(CamelModel):
    id: str | None = None
    role: Literal["user", "assistant", "system"]
    parts: list[Part] = Field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(id=uuid4().hex[:12], role="user", parts=[TextPart(text=text)])

    @classmethod
    def assistant(cls, text: str) -> "Message":
        parts = [TextPart(text=text)] if text else []
        return cls(id=uuid4().hex[:12], role="assistant", parts=parts)

    def text_only(self) -> "Message":
        """Copy of this message keeping only its text parts."""
        return self.model_copy(
            update={"parts": [p for p in self.parts if isinstance(p, TextPart)]}
        )


# ── Profiles ─────────────────────────────────────────────────────


class ProfileSummary(LooseModel):
    """Profile summary as returned by the search tools."""

    id: str
    display_name: str | None = None
    name: str | None = None
    bio: str | None = None
    main_role: str | None = None
    location: str | None = None
    tags: list[str] | None = None
    github_top_languages: str | list[str] | None = None
    github_top_frameworks: str | list[str] | None = None
    github_expertise_level: str | None = None
    github_recently_active: bool | None = None
    linkedin_current_title: str | None = None
    linkedin_current_company: str | None = None
    linkedin_years_experience: float | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.name or self.id


class WorkExperience(LooseModel):
    title: str = ""
    company: str = ""
    description: str = ""
    duration_months: int | None = None
    start_date: str | None = None
    end_date: str | None = None
    is_current: bool = False
    location: str | None = None


class Education(LooseModel):
    degree: str = ""
    field_of_study: str = ""
    school: str = ""
    start_year: int | None = None
    end_year: int | None = None
    description: str | None = None


class DetailedProfile(LooseModel):
    """Full profile as returned by the detail tool or endpoint."""

    id: str
    display_name: str | None = None
    name: str | None = None
    bio: str | None = None
    image_url: str | None = None
    main_role: str | None = None
    location: str | None = None
    human_checkmark: bool | None = None
    open_to: str | None = None
    tags: list[str] | None = None
    github: dict[str, Any] | None = None
    work_experience: list[WorkExperience] | None = None
    education: list[Education] | None = None
    linkedin: dict[str, Any] | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.name or self.id


# ── Results ──────────────────────────────────────────────────────


class SearchResult(CamelModel):
    type: Literal["search"] = "search"
    session: str
    query: str
    profiles: list[ProfileSummary] = Field(default_factory=list)
    total_matches: int = 0
    summary: str = ""
    applied_filters: dict[str, Any] = Field(default_factory=dict)


class DetailResult(CamelModel):
    type: Literal["detail"] = "detail"
    session: str
    profile: DetailedProfile
    summary: str = ""


class ErrorResult(CamelModel):
    type: Literal["error"] = "error"
    session: str
    error: str
    code: ErrorCode | None = None


AgentResult = Annotated[Union[SearchResult, DetailResult, ErrorResult], Field(discriminator="type")]


class AgentMeta(CamelModel):
    duration_ms: int = 0
    tokens_used: int = 0
    tools_called: list[str] = Field(default_factory=list)


@dataclass
class QueryResponse:
    result: SearchResult | DetailResult | ErrorResult
    meta: AgentMeta = field(default_factory=AgentMeta)

    def to_dict(self) -> dict[str, Any]:
        """Result fields plus a ``meta`` key, as served over MCP."""
        return {**self.result.to_dict(), "meta": self.meta.to_dict()}


# ── Sessions ─────────────────────────────────────────────────────


class Session(CamelModel):
    """Conversation history keyed by id, plus the last result produced in it."""

    id: str
    messages: list[Message] = Field(default_factory=list)
    last_result: AgentResult | None = None

    def to_dict(self) -> dict[str, Any]:
        # lastResult is always written, null included
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        data["lastResult"] = self.last_result.to_dict() if self.last_result else None
        return data


class SessionSummary(LooseModel):
    id: str
    title: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
