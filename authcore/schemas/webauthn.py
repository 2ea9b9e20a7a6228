"""Pydantic schemas for passkey ceremonies."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    """Browser payloads use camelCase; accept both spellings."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AttestationResponse(_WireModel):
    client_data_json: str = Field(alias="clientDataJSON", min_length=1)
    attestation_object: str = Field(alias="attestationObject", min_length=1)
    transports: list[str] = Field(default_factory=list)


class AssertionResponse(_WireModel):
    client_data_json: str = Field(alias="clientDataJSON", min_length=1)
    authenticator_data: str = Field(alias="authenticatorData", min_length=1)
    signature: str = Field(min_length=1)
    user_handle: Optional[str] = Field(default=None, alias="userHandle")


class RegistrationResponse(_WireModel):
    """Output of ``navigator.credentials.create`` serialized to JSON."""

    id: str = Field(min_length=1)
    raw_id: str = Field(alias="rawId", min_length=1)
    type: Literal["public-key"] = "public-key"
    response: AttestationResponse
    authenticator_attachment: Optional[str] = Field(default=None, alias="authenticatorAttachment")
    client_extension_results: dict[str, Any] = Field(
        default_factory=dict, alias="clientExtensionResults"
    )


class AuthenticationResponse(_WireModel):
    """Output of ``navigator.credentials.get`` serialized to JSON."""

    id: str = Field(min_length=1)
    raw_id: str = Field(alias="rawId", min_length=1)
    type: Literal["public-key"] = "public-key"
    response: AssertionResponse
    authenticator_attachment: Optional[str] = Field(default=None, alias="authenticatorAttachment")
    client_extension_results: dict[str, Any] = Field(
        default_factory=dict, alias="clientExtensionResults"
    )


# Requests


class RegistrationOptionsRequest(BaseModel):
    # Only read for first-passkey enrolment; signed-in callers register for themselves
    principal_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class RegistrationVerifyRequest(BaseModel):
    principal_id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    credential: dict[str, Any]


class AuthenticationOptionsRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)
    session_key: Optional[str] = Field(default=None, max_length=128)


class AuthenticationVerifyRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)
    session_key: Optional[str] = Field(default=None, max_length=128)
    credential: dict[str, Any]


# Responses


class CeremonyOptionsResponse(BaseModel):
    """Browser-ready ``publicKey`` options."""

    public_key: dict[str, Any] = Field(serialization_alias="publicKey")


class CredentialRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    credential_id: str
    device_type: str
    attachment: Optional[str] = None
    backed_up: bool
    transports: list[str]
    aaguid: Optional[str] = None
    sign_count: int
    created_at: datetime
    last_used_at: Optional[datetime] = None


class RegistrationVerifyResponse(BaseModel):
    verified: bool
    credential: CredentialRead


class AuthenticationVerifyResponse(BaseModel):
    verified: bool
    principal_id: str
    session_id: str
    expires_at: Optional[datetime] = None
