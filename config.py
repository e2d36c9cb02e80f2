"""Config management for line-mcp-server.

Settings come from environment variables (main.py loads .env first). The
resulting Config is passed to each component at construction time.
"""
import os
from typing import Mapping, Optional


REQUIRED_FIELDS = (
    "LINE_CHANNEL_ID",
    "LINE_CHANNEL_SECRET",
    "COOKIE_ENCRYPTION_KEY",
    "JWT_SECRET",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
)

DEFAULTS = {
    "SERVER_NAME": "LINE MCP Server",
    "SERVER_DESCRIPTION": "MCP server with LINE Login",
    "COMMON_PASSWORD_PREFIX": "",
    "OAUTH_STATE_TTL": "600",
    "ENABLE_OAUTH": "true",
    "STORE_BACKEND": "memory",
    "MCP_HOST": "0.0.0.0",
    "MCP_PORT": "8788",
}


class Config:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = {**DEFAULTS, **(data or {})}

    def _get(self, key: str) -> Optional[str]:
        return self.data.get(key) or None

    @property
    def server_url(self) -> Optional[str]:
        url = self._get("SERVER_URL")
        return url.rstrip("/") if url else None

    @property
    def server_name(self) -> str:
        return self.data["SERVER_NAME"]

    @property
    def server_description(self) -> str:
        return self.data["SERVER_DESCRIPTION"]

    @property
    def server_logo(self) -> Optional[str]:
        return self._get("SERVER_LOGO")

    @property
    def line_channel_id(self) -> Optional[str]:
        return self._get("LINE_CHANNEL_ID")

    @property
    def line_channel_secret(self) -> Optional[str]:
        return self._get("LINE_CHANNEL_SECRET")

    @property
    def line_http_timeout(self) -> Optional[float]:
        value = self._get("LINE_HTTP_TIMEOUT")
        return float(value) if value else None

    @property
    def cookie_encryption_key(self) -> Optional[str]:
        return self._get("COOKIE_ENCRYPTION_KEY")

    @property
    def jwt_secret(self) -> Optional[str]:
        return self._get("JWT_SECRET")

    @property
    def supabase_url(self) -> Optional[str]:
        return self._get("SUPABASE_URL")

    @property
    def supabase_anon_key(self) -> Optional[str]:
        return self._get("SUPABASE_ANON_KEY")

    @property
    def common_password_prefix(self) -> str:
        return self.data.get("COMMON_PASSWORD_PREFIX") or ""

    @property
    def state_ttl(self) -> int:
        return int(self.data["OAUTH_STATE_TTL"])

    @property
    def enable_oauth(self) -> bool:
        return str(self.data["ENABLE_OAUTH"]).lower() == "true"

    @property
    def dev_line_user_id(self) -> Optional[str]:
        return self._get("DEV_LINE_USER_ID")

    @property
    def store_backend(self) -> str:
        return self.data["STORE_BACKEND"].lower()

    @property
    def host(self) -> str:
        return self.data["MCP_HOST"]

    @property
    def port(self) -> int:
        return int(self.data["MCP_PORT"])

    def missing(self) -> list[str]:
        """Names of required settings that are unset."""
        return [key for key in REQUIRED_FIELDS if not self._get(key)]

    def is_valid(self) -> bool:
        """Check if config has required fields."""
        return not self.missing()


def load_config(environ: Mapping[str, str] = None) -> Config:
    """Load config from environment variables."""
    environ = os.environ if environ is None else environ
    keys = set(REQUIRED_FIELDS) | set(DEFAULTS) | {
        "SERVER_URL", "SERVER_LOGO", "LINE_HTTP_TIMEOUT", "DEV_LINE_USER_ID",
    }
    return Config({key: environ[key] for key in keys if key in environ})
