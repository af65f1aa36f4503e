"""MCP server exposing talent search tools over stdio."""

from mcp.server.fastmcp import FastMCP

from talent_agent.agent.orchestrator import Agent, create_agent

mcp = FastMCP("talent-agent")
agent: Agent | None = None


def get_agent() -> Agent:
    global agent
    if agent is None:
        agent = create_agent()
    return agent


@mcp.tool()
async def talent_search(query: str, session: str | None = None) -> dict:
    """Search for talent profiles using natural language.

    Returns matching profiles with a summary, plus a session id that can be
    passed back to refine the search or to fetch profile details.

    Args:
        query: Natural language search query, e.g. "Find React developers in Berlin"
        session: Optional - session ID to continue a previous search conversation
    """
    response = await get_agent().query(query, session)
    return response.to_dict()


@mcp.tool()
async def talent_detail(session: str, index: int) -> dict:
    """Get detailed profile information for a candidate from the last search.

    Args:
        session: Session ID from a previous search
        index: Zero-based index of the profile in the last search results
    """
    response = await get_agent().get_detail(session, index)
    return response.to_dict()


@mcp.tool()
async def talent_refine(session: str, query: str) -> dict:
    """Refine an existing search with additional criteria.

    Continues the conversation in the given session.

    Args:
        session: Session ID from a previous search to refine
        query: Additional criteria, e.g. "Only show seniors" or "Filter by Berlin location"
    """
    response = await get_agent().query(query, session)
    return response.to_dict()
