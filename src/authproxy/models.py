"""Data model shared by the proxy components."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuthorizationRequest(BaseModel):
    """The original caller's authorization request.

    Immutable once parsed. It travels through the upstream redirect inside the
    `state` parameter and comes back verbatim on /callback.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    response_type: str = "code"
    client_id: str
    redirect_uri: str
    scope: list[str] = Field(default_factory=list)
    state: str = ""
    code_challenge: str | None = None
    code_challenge_method: str | None = None

    @field_validator("client_id")
    @classmethod
    def _client_id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("client_id must not be empty")
        return value


class ClientMetadata(BaseModel):
    """A client registered with the authorization server."""

    client_id: str
    client_name: str | None = None
    redirect_uris: list[str] = Field(default_factory=list)
    logo_uri: str | None = None
    client_uri: str | None = None
    policy_uri: str | None = None
    tos_uri: str | None = None
    contacts: list[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.client_name or self.client_id


class ServerInfo(BaseModel):
    """How this proxy presents itself on the consent page."""

    name: str
    description: str | None = None
    logo: str | None = None


class EmailEntry(BaseModel):
    """One entry of the upstream /user/emails list."""

    model_config = ConfigDict(extra="ignore")

    email: str
    primary: bool = False
    verified: bool = False
    visibility: str | None = None


class ResolvedIdentity(BaseModel):
    """Minimal stable identity recovered from the upstream provider."""

    model_config = ConfigDict(frozen=True)

    handle: str
    display_name: str | None = None
    email: str | None = None

    @property
    def label(self) -> str:
        """Name shown in grant listings: display name, falling back to handle."""
        return self.display_name or self.handle


class Props(BaseModel):
    """Payload attached to the grant issued by this proxy.

    Consumed later by the resource server; opaque to the proxy once handed over.
    """

    model_config = ConfigDict(frozen=True)

    login: str
    name: str | None = None
    email: str | None = None
    access_token: str


class Grant(BaseModel):
    """A completed authorization held by the in-memory authorization server."""

    code: str
    client_id: str
    user_id: str
    scope: list[str]
    metadata: dict[str, Any]
    props: Props
    request: AuthorizationRequest
