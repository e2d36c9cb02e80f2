"""Data models shared by the broker and the OAuth provider."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthRequest(BaseModel):
    """An MCP client's authorization request, captured at /authorize.

    Stored verbatim while the user is away at LINE and needed again at
    /callback to issue the grant.
    """

    model_config = ConfigDict(extra="allow")

    response_type: str = "code"
    client_id: str = ""
    redirect_uri: str = ""
    scope: list[str] = Field(default_factory=list)
    state: str = ""
    code_challenge: str = ""
    code_challenge_method: str = "S256"
    resource: Optional[str] = None


class ClientInfo(BaseModel):
    """A dynamically registered OAuth client (RFC 7591)."""

    client_id: str
    client_secret: Optional[str] = None
    client_name: Optional[str] = None
    redirect_uris: list[str] = Field(default_factory=list)
    grant_types: list[str] = Field(default_factory=lambda: ["authorization_code", "refresh_token"])
    response_types: list[str] = Field(default_factory=lambda: ["code"])
    token_endpoint_auth_method: str = "none"
    created_at: int = 0


class LineProfile(BaseModel):
    user_id: str = Field(alias="userId")
    display_name: str = Field(default="", alias="displayName")
    picture_url: Optional[str] = Field(default=None, alias="pictureUrl")

    model_config = ConfigDict(populate_by_name=True)


class Props(BaseModel):
    """Identity payload embedded in issued tokens and handed to tools."""

    model_config = ConfigDict(frozen=True)

    line_user_id: str
    supabase_user_id: str
    display_name: str = ""
