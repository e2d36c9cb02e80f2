"""LINE MCP Server.

It handles:
- MCP tools via Streamable HTTP (/mcp), protected by Bearer tokens
- LINE Login authorization flow for MCP clients (/authorize, /callback)
- OAuth provider endpoints (/register, /token, /.well-known/*)

Run with `python main.py` or `uvicorn main:create_app --factory`.
"""
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware import Middleware
from supabase import create_client

from config import Config, load_config
from logging_config import setup_logging
from oauth.endpoints import AuthorizationFlow, build_router
from oauth.identity import SupabaseIdentityExchange
from oauth.line import LineClient
from oauth.middleware import DevPropsMiddleware, MCPOAuthMiddleware
from oauth.provider import OAuthProvider, build_provider_router
from oauth.stores import KeyValueStore, MemoryKeyValueStore, StateStore, SupabaseKeyValueStore
from tools import create_mcp

logger = logging.getLogger(__name__)

VERSION = "1.0.0"
PUBLIC_ENV = Path(__file__).parent / ".env.public"


def load_environment(env_file: Path = Path(".env"), public_env: Path = PUBLIC_ENV) -> Optional[Path]:
    """Load .env (local override) or the bundled .env.public defaults.

    Returns the file that was loaded, if any.
    """
    for candidate in (env_file, public_env):
        if candidate.exists():
            load_dotenv(candidate)
            return candidate
    return None


def create_store(config: Config, supabase_client) -> KeyValueStore:
    if config.store_backend == "supabase":
        if supabase_client is None:
            raise RuntimeError("STORE_BACKEND=supabase requires SUPABASE_URL and SUPABASE_ANON_KEY")
        return SupabaseKeyValueStore(supabase_client)
    return MemoryKeyValueStore()


def create_app(
    config: Config = None,
    supabase_client=None,
    kv: KeyValueStore = None,
    line: LineClient = None,
    identity: SupabaseIdentityExchange = None,
) -> FastAPI:
    """Assemble the application.

    Collaborators default to the real implementations; tests pass fakes.
    """
    if config is None:
        load_environment()
        config = load_config()
        if config.supabase_url and config.supabase_anon_key:
            supabase_client = create_client(config.supabase_url, config.supabase_anon_key)
        setup_logging(server_name=config.server_name, supabase_client=supabase_client)

    missing = config.missing()
    if missing and config.enable_oauth:
        logger.error(f"[STARTUP] OAuth enabled but settings are missing: {', '.join(missing)}")
        raise RuntimeError(f"Missing required settings: {', '.join(missing)}")
    if missing:
        logger.warning(f"[STARTUP] Missing settings: {', '.join(missing)}")

    server_url = config.server_url or f"http://localhost:{config.port}"
    logger.info(f"[STARTUP] SERVER_URL: {server_url}")
    logger.info(f"[STARTUP] OAuth enabled: {config.enable_oauth}")

    kv = kv or create_store(config, supabase_client)
    identity = identity or SupabaseIdentityExchange(
        config.supabase_url,
        config.supabase_anon_key,
        config.common_password_prefix,
    )
    mcp = create_mcp(identity)

    if config.enable_oauth:
        mcp_middleware = [Middleware(MCPOAuthMiddleware, server_url=server_url, jwt_secret=config.jwt_secret)]
    elif config.dev_line_user_id:
        logger.warning(f"[STARTUP] OAuth disabled, tools run as LINE user {config.dev_line_user_id}")
        mcp_middleware = [Middleware(DevPropsMiddleware, identity=identity, line_user_id=config.dev_line_user_id)]
    else:
        mcp_middleware = []

    mcp_http_app = mcp.http_app(path="/", transport="streamable-http", middleware=mcp_middleware)

    app = FastAPI(
        title="LINE MCP Server",
        description="MCP server with LINE Login OAuth",
        version=VERSION,
        lifespan=mcp_http_app.lifespan,  # Required for FastMCP task group initialization
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount("/mcp", mcp_http_app)

    if config.enable_oauth:
        provider = OAuthProvider(kv, server_url=server_url, jwt_secret=config.jwt_secret)
        flow = AuthorizationFlow(
            config=config,
            provider=provider,
            state_store=StateStore(kv),
            line=line or LineClient(timeout=config.line_http_timeout),
            identity=identity,
        )
        app.include_router(build_router(flow))
        app.include_router(build_provider_router(provider))

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "line-mcp-server"}

    @app.get("/")
    async def root():
        """Server info."""
        response = {
            "name": config.server_name,
            "version": VERSION,
            "endpoints": {"streamable_http": "/mcp"},
            "tools": ["hello"],
            "oauth_enabled": config.enable_oauth,
        }
        if config.enable_oauth:
            response["oauth"] = {
                "protected_resource": f"{server_url}/.well-known/oauth-protected-resource",
                "authorization_server": f"{server_url}/.well-known/oauth-authorization-server",
            }
        return response

    return app


def run():
    """Console entry point."""
    import uvicorn

    load_environment()
    settings = load_config()
    logger.info(f"Starting MCP server on {settings.host}:{settings.port}")
    uvicorn.run("main:create_app", factory=True, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
