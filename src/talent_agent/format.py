"""Terminal rendering of results with rich."""

import json

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from talent_agent.agent.models import AgentMeta, DetailResult, ErrorResult, SearchResult


def _join(value: str | list[str] | None) -> str:
    if not value:
        return ""
    return ", ".join(value) if isinstance(value, list) else value


def render_search(result: SearchResult) -> Group:
    header = Text.assemble(("Search: ", "bold cyan"), result.query)
    counts = Text(
        f"{result.total_matches} total matches. Showing {len(result.profiles)}.\n"
        f"Session: {result.session}",
        style="dim",
    )

    if not result.profiles:
        parts = [header, counts, Text("No profiles found.", style="dim")]
        if result.summary:
            parts.append(Text(result.summary))
        return Group(*parts)

    table = Table(show_edge=False, header_style="bold")
    table.add_column("#", style="yellow", justify="right")
    table.add_column("Name", style="green", max_width=24)
    table.add_column("Role", max_width=24)
    table.add_column("Location", style="dim", max_width=20)
    table.add_column("Languages", style="magenta", max_width=22)

    for i, p in enumerate(result.profiles):
        table.add_row(
            str(i),
            p.display_name or p.name or "Unknown",
            p.main_role or p.linkedin_current_title or "",
            p.location or "",
            _join(p.github_top_languages),
        )

    hint = Text(
        f"Use --session {result.session} to refine. "
        f"Use 'talent-agent detail {result.session} <index>' to view a profile.",
        style="dim",
    )
    parts = [header, counts, table]
    if result.summary:
        parts.append(Text(result.summary, style="dim"))
    parts.append(hint)
    return Group(*parts)


def render_detail(result: DetailResult) -> Panel:
    p = result.profile
    body = Table.grid(padding=(0, 2))
    body.add_column(style="bold")
    body.add_column()

    body.add_row("Name", p.label)
    if p.main_role:
        body.add_row("Role", p.main_role)
    if p.location:
        body.add_row("Location", p.location)
    if p.open_to:
        body.add_row("Open to", p.open_to)
    if p.tags:
        body.add_row("Tags", ", ".join(p.tags))
    if p.bio:
        body.add_row("Bio", p.bio)

    if p.github:
        for key, label in (
            ("topLanguages", "Languages"),
            ("topFrameworks", "Frameworks"),
            ("expertiseLevel", "Expertise"),
            ("totalContributions", "Contributions"),
        ):
            if p.github.get(key) not in (None, ""):
                body.add_row(f"GitHub {label}", str(p.github[key]))

    if p.linkedin:
        title = p.linkedin.get("currentTitle")
        company = p.linkedin.get("currentCompany")
        if title or company:
            body.add_row("Current", " at ".join(x for x in (title, company) if x))
        years = p.linkedin.get("totalYearsExperience")
        if years is not None:
            body.add_row("Experience", f"{years} years")

    for job in (p.work_experience or [])[:5]:
        when = "current" if job.is_current else (job.end_date or "")
        body.add_row("Work", f"{job.title} @ {job.company} {when}".strip())

    for edu in (p.education or [])[:3]:
        body.add_row("Education", f"{edu.degree} {edu.field_of_study}, {edu.school}".strip())

    if result.summary:
        body.add_row("", "")
        body.add_row("Summary", Text(result.summary, style="dim"))

    return Panel(body, title="Profile Detail", border_style="cyan")


def render_error(result: ErrorResult) -> Text:
    text = Text.assemble(("Error: ", "bold red"), result.error)
    if result.session:
        text.append(f"\nSession: {result.session}", style="dim")
    return text


def print_result(console: Console, result: SearchResult | DetailResult | ErrorResult) -> None:
    if isinstance(result, SearchResult):
        console.print(render_search(result))
    elif isinstance(result, DetailResult):
        console.print(render_detail(result))
    else:
        console.print(render_error(result))


def success_envelope(result: SearchResult | DetailResult, meta: AgentMeta) -> dict:
    return {"success": True, "data": result.to_dict(), "meta": meta.to_dict()}


def error_envelope(message: str, code: str) -> dict:
    return {"success": False, "error": message, "code": code}


def to_json(envelope: dict, indent: int | None = 2) -> str:
    return json.dumps(envelope, indent=indent)
