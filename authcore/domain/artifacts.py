"""Protocol artifact kinds and their typed payloads.

Every kind shares one storage table; the payload model for a kind is chosen
from ``PAYLOAD_MODELS`` when a row is written or read back. Unknown fields
are preserved so an authorization server can store its own claims.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ArtifactType(str, Enum):
    SESSION = "Session"
    INTERACTION = "Interaction"
    ACCESS_TOKEN = "AccessToken"
    AUTHORIZATION_CODE = "AuthorizationCode"
    REFRESH_TOKEN = "RefreshToken"
    DEVICE_CODE = "DeviceCode"
    CLIENT_CREDENTIALS = "ClientCredentials"
    CLIENT = "Client"
    INITIAL_ACCESS_TOKEN = "InitialAccessToken"
    REGISTRATION_ACCESS_TOKEN = "RegistrationAccessToken"
    REPLAY_DETECTION = "ReplayDetection"
    PUSHED_AUTHORIZATION_REQUEST = "PushedAuthorizationRequest"
    GRANT = "Grant"
    BACKCHANNEL_AUTHENTICATION_REQUEST = "BackchannelAuthenticationRequest"


class ArtifactPayload(BaseModel):
    """Fields common to every artifact kind.

    ``uid``, ``user_code`` and ``grant_id`` double as secondary lookup keys.
    ``consumed_at`` is filled on read from the row; it is never written
    into the stored payload.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    jti: Optional[str] = None
    kind: Optional[str] = None
    uid: Optional[str] = None
    user_code: Optional[str] = Field(default=None, alias="userCode")
    grant_id: Optional[str] = Field(default=None, alias="grantId")
    account_id: Optional[str] = Field(default=None, alias="accountId")
    client_id: Optional[str] = Field(default=None, alias="clientId")
    iat: Optional[int] = None
    exp: Optional[int] = None
    consumed_at: Optional[datetime] = Field(default=None, exclude=True)

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SessionPayload(ArtifactPayload):
    uid: str
    login_ts: Optional[int] = Field(default=None, alias="loginTs")
    amr: list[str] = Field(default_factory=list)


class InteractionPayload(ArtifactPayload):
    uid: str
    prompt: Optional[dict[str, Any]] = None
    params: dict[str, Any] = Field(default_factory=dict)
    return_to: Optional[str] = Field(default=None, alias="returnTo")


class GrantPayload(ArtifactPayload):
    account_id: str = Field(alias="accountId")
    client_id: str = Field(alias="clientId")
    openid: Optional[dict[str, Any]] = None
    resources: dict[str, str] = Field(default_factory=dict)


class TokenPayload(ArtifactPayload):
    """Access tokens, refresh tokens, authorization codes, client credentials."""

    scope: Optional[str] = None
    resource: Optional[str] = None


class DeviceCodePayload(TokenPayload):
    user_code: str = Field(alias="userCode")


PAYLOAD_MODELS: dict[ArtifactType, type[ArtifactPayload]] = {
    ArtifactType.SESSION: SessionPayload,
    ArtifactType.INTERACTION: InteractionPayload,
    ArtifactType.GRANT: GrantPayload,
    ArtifactType.ACCESS_TOKEN: TokenPayload,
    ArtifactType.AUTHORIZATION_CODE: TokenPayload,
    ArtifactType.REFRESH_TOKEN: TokenPayload,
    ArtifactType.CLIENT_CREDENTIALS: TokenPayload,
    ArtifactType.DEVICE_CODE: DeviceCodePayload,
}


def payload_model(artifact_type: ArtifactType) -> type[ArtifactPayload]:
    return PAYLOAD_MODELS.get(artifact_type, ArtifactPayload)
