"""MCP Tools for line-mcp-server.

Tools read the caller's identity (Props) from the HTTP request, which the
auth middleware fills in. Replace `hello` with your own tools.
"""

import json
import logging
from typing import Optional

from fastmcp import FastMCP
from fastmcp.server.dependencies import get_http_request

from oauth.errors import OAuthError
from oauth.identity import SupabaseIdentityExchange
from oauth.models import Props

logger = logging.getLogger(__name__)


def current_props() -> Optional[Props]:
    """Identity payload of the request being served, if any."""
    try:
        request = get_http_request()
    except RuntimeError:
        return None
    return getattr(request.state, "props", None)


async def greet(props: Optional[Props], identity: SupabaseIdentityExchange) -> str:
    if props is None:
        return "Auth error: no authenticated user"

    try:
        # Re-authenticate per call; the client is scoped to this user
        client, account_id = await identity.sign_in(props.line_user_id)
    except OAuthError:
        return "Auth error: Failed to sign in to Supabase"

    # Query your own tables here, e.g.
    # client.table("your_table").select("*").eq("user_id", account_id).execute()
    return json.dumps(
        {
            "message": f"Hello {props.display_name}!",
            "supabase_user_id": account_id,
            "line_user_id": props.line_user_id,
        },
        indent=2,
        ensure_ascii=False,
    )


def create_mcp(identity: SupabaseIdentityExchange) -> FastMCP:
    """Create the FastMCP server instance with all tools registered."""
    mcp = FastMCP("line-mcp-server")

    @mcp.tool()
    async def hello() -> str:
        """Returns a greeting with the authenticated user's info."""
        logger.info("[TOOL] hello invoked")
        return await greet(current_props(), identity)

    return mcp
