"""Talent Agent CLI - search talent profiles in natural language."""

import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table

from talent_agent import __version__
from talent_agent.agent.models import ErrorResult, QueryResponse
from talent_agent.agent.orchestrator import Agent, QueryOptions, create_agent
from talent_agent.agent.sessions import RemoteSessionManager
from talent_agent.auth.models import AuthMethod
from talent_agent.auth.store import CredentialStore, is_token_expired, to_epoch_ms
from talent_agent.config import configure_logging, ensure_dirs, get_settings
from talent_agent.errors import (
    EXIT_AUTH_ERROR,
    ConfigError,
    ErrorCode,
    TalentAgentError,
    exit_code_for_error,
    to_friendly_error,
)
from talent_agent.format import error_envelope, print_result, success_envelope, to_json

app = typer.Typer(
    name="talent-agent",
    help="Search for talent profiles using natural language.",
    no_args_is_help=True,
)
session_app = typer.Typer(help="Save, load and list search sessions.")
app.add_typer(session_app, name="session")

console = Console()
err_console = Console(stderr=True)

SessionOpt = Annotated[
    Optional[str],
    typer.Option("--session", "-s", envvar="TALENT_CLI_SESSION", help="Session ID to continue"),
]
JsonOpt = Annotated[bool, typer.Option("--json", "-j", help="Output a JSON envelope")]
DebugOpt = Annotated[bool, typer.Option("--debug", "-D", help="Log diagnostics to stderr")]
LoadOpt = Annotated[
    Optional[Path], typer.Option("--load", help="Load a saved session file first")
]
SaveOpt = Annotated[
    Optional[Path], typer.Option("--save", help="Save the session to this file afterwards")
]


def version_callback(value: bool) -> None:
    if value:
        console.print(f"talent-agent {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """Talent Agent - conversational talent search from the terminal."""
    ensure_dirs()
    configure_logging(get_settings().log_level)


def _fail(message: str, code: ErrorCode, json_output: bool = False) -> None:
    if json_output:
        typer.echo(to_json(error_envelope(message, code.value)))
    else:
        err_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(exit_code_for_error(code))


def _build_agent(json_output: bool = False) -> Agent:
    try:
        return create_agent()
    except ConfigError as exc:
        _fail(str(exc), ErrorCode.UNKNOWN_ERROR, json_output)


def _emit(response: QueryResponse, json_output: bool) -> None:
    result = response.result
    if isinstance(result, ErrorResult):
        code = result.code or to_friendly_error(result.error).code
        _fail(result.error, code, json_output)
    if json_output:
        typer.echo(to_json(success_envelope(result, response.meta)))
    else:
        print_result(console, result)


def _json_mode(flag: bool) -> bool:
    # Piping stdout into another program implies JSON
    return flag or not sys.stdout.isatty()


def _load_session(agent: Agent, path: Optional[Path], json_output: bool) -> None:
    if path is None:
        return
    try:
        agent.sessions.load(path)
    except (OSError, ValueError) as exc:
        _fail(f"Could not load session from {path}: {exc}", ErrorCode.VALIDATION_ERROR, json_output)


def _save_session(agent: Agent, session_id: str, path: Optional[Path]) -> None:
    if path is None or not session_id:
        return
    try:
        agent.sessions.save(session_id, path)
    except (OSError, TalentAgentError) as exc:
        err_console.print(f"[yellow]Could not save session:[/yellow] {exc}")


# ── Search commands ──────────────────────────────────────────────


@app.command()
def search(
    query: Annotated[list[str], typer.Argument(help="Natural language query")],
    session: SessionOpt = None,
    json_output: JsonOpt = False,
    debug: DebugOpt = False,
    load: LoadOpt = None,
    save: SaveOpt = None,
) -> None:
    """Search for profiles, or refine a previous search with --session."""
    json_output = _json_mode(json_output)
    if debug:
        configure_logging(debug=True)
    agent = _build_agent(json_output)
    _load_session(agent, load, json_output)

    response = asyncio.run(agent.query(" ".join(query), session, QueryOptions(debug=debug)))
    _save_session(agent, response.result.session, save)
    _emit(response, json_output)


@app.command()
def detail(
    session: Annotated[str, typer.Argument(help="Session ID of a previous search")],
    index: Annotated[int, typer.Argument(help="Zero-based index in the last search results")],
    json_output: JsonOpt = False,
    debug: DebugOpt = False,
    load: LoadOpt = None,
    save: SaveOpt = None,
) -> None:
    """Show the full profile at INDEX of the session's last search."""
    json_output = _json_mode(json_output)
    if debug:
        configure_logging(debug=True)
    agent = _build_agent(json_output)
    _load_session(agent, load, json_output)

    response = asyncio.run(agent.get_detail(session, index, QueryOptions(debug=debug)))
    _save_session(agent, session, save)
    _emit(response, json_output)


@app.command()
def profile(
    profile_id: Annotated[str, typer.Argument(help="Profile ID")],
    json_output: JsonOpt = False,
) -> None:
    """Fetch a profile directly by ID."""
    json_output = _json_mode(json_output)
    agent = _build_agent(json_output)
    _emit(asyncio.run(agent.get_profile(profile_id)), json_output)


@app.command()
def pipe(debug: DebugOpt = False) -> None:
    """JSONL mode: read requests from stdin, write envelopes to stdout."""
    from talent_agent.pipe import run_pipe

    if debug:
        configure_logging(debug=True)
    agent = _build_agent(json_output=True)
    asyncio.run(run_pipe(agent, sys.stdin, sys.stdout, debug))


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from talent_agent.mcp import server

    server.agent = _build_agent()
    server.mcp.run()


# ── Session commands ─────────────────────────────────────────────


@session_app.command("save")
def session_save(
    session_id: Annotated[str, typer.Argument(help="Session ID")],
    path: Annotated[Path, typer.Argument(help="Destination file")],
) -> None:
    """Save a session to a JSON file."""
    agent = _build_agent()
    if isinstance(agent.sessions, RemoteSessionManager):
        token = asyncio.run(agent.credentials.get_valid_token())
        if not token:
            _fail("Not authenticated. Run 'talent-agent login' first.", ErrorCode.AUTH_ERROR)
        try:
            asyncio.run(agent.sessions.resolve(session_id, token))
        except (TalentAgentError, httpx.HTTPError) as exc:
            friendly = to_friendly_error(exc)
            _fail(friendly.message, friendly.code)

    try:
        agent.sessions.save(session_id, path)
    except (OSError, TalentAgentError) as exc:
        _fail(str(exc), ErrorCode.SESSION_NOT_FOUND)
    console.print(f'[green]Session "{session_id}" saved to[/green] {path}')


@session_app.command("load")
def session_load(
    path: Annotated[Path, typer.Argument(help="Session file to load")],
) -> None:
    """Load a session from a JSON file and print its ID."""
    agent = _build_agent()
    try:
        session_id = agent.sessions.load(path)
    except (OSError, ValueError) as exc:
        _fail(f"Could not load session from {path}: {exc}", ErrorCode.VALIDATION_ERROR)
    console.print(f'[green]Session "{session_id}" loaded from[/green] {path}')


@session_app.command("list")
def session_list(
    page: Annotated[int, typer.Option("--page", help="Page number")] = 1,
    per_page: Annotated[int, typer.Option("--per-page", help="Sessions per page")] = 20,
) -> None:
    """List recent server-side sessions."""
    agent = _build_agent()
    if not isinstance(agent.sessions, RemoteSessionManager):
        _fail(
            "Session listing needs server-backed sessions (TALENT_SESSION_MODE=remote).",
            ErrorCode.VALIDATION_ERROR,
        )
    token = asyncio.run(agent.credentials.get_valid_token())
    if not token:
        _fail("Not authenticated. Run 'talent-agent login' first.", ErrorCode.AUTH_ERROR)

    try:
        sessions = asyncio.run(agent.sessions.list_recent(token, page=page, per_page=per_page))
    except (TalentAgentError, httpx.HTTPError) as exc:
        friendly = to_friendly_error(exc)
        _fail(friendly.message, friendly.code)

    if not sessions:
        console.print("[dim]No sessions yet.[/dim]")
        return

    table = Table(title="Recent Sessions")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Updated", style="dim")
    for s in sessions:
        table.add_row(s.id, s.title or "", s.updated_at or s.created_at or "")
    console.print(table)


# ── Auth commands ────────────────────────────────────────────────


@app.command()
def login(
    method: Annotated[
        AuthMethod, typer.Option("--method", "-m", help="Authentication method")
    ] = AuthMethod.EMAIL,
) -> None:
    """Sign in and store credentials."""
    from talent_agent.auth.client import AuthClient
    from talent_agent.auth.flows import run_login

    settings = get_settings()
    try:
        settings.require("api_url", "api_key")
    except ConfigError as exc:
        _fail(str(exc), ErrorCode.UNKNOWN_ERROR)

    client = AuthClient(settings.api_url, settings.api_key)
    try:
        asyncio.run(run_login(method, client, CredentialStore()))
    except TalentAgentError as exc:
        err_console.print(f"[red]Login failed:[/red] {exc}")
        raise typer.Exit(EXIT_AUTH_ERROR)
    except httpx.HTTPError as exc:
        friendly = to_friendly_error(exc)
        err_console.print(f"[red]Login failed:[/red] {friendly.message}")
        raise typer.Exit(exit_code_for_error(friendly.code))


@app.command()
def logout() -> None:
    """Clear stored credentials."""
    CredentialStore().clear()
    console.print("Logged out. Credentials cleared.")


@app.command()
def whoami() -> None:
    """Show the current authentication status."""
    creds = CredentialStore().load()
    if creds is None:
        console.print("Not authenticated. Run 'talent-agent login' to sign in.")
        return

    expired = is_token_expired(creds.expires_at)
    expires = datetime.fromtimestamp(to_epoch_ms(creds.expires_at) / 1000)

    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Auth method", creds.auth_method.value)
    if creds.email:
        table.add_row("Email", creds.email)
    if creds.address:
        table.add_row("Address", creds.address)
    table.add_row("Token", "[red]EXPIRED[/red]" if expired else "[green]valid[/green]")
    table.add_row("Expires", expires.strftime("%Y-%m-%d %H:%M:%S"))
    console.print(table)
