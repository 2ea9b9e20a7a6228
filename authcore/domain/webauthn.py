"""WebAuthn value types validated at the wire boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from authcore.domain.exceptions import MalformedResponse


class DeviceType(str, Enum):
    SINGLE_DEVICE = "single_device"
    MULTI_DEVICE = "multi_device"


class AuthenticatorAttachment(str, Enum):
    PLATFORM = "platform"
    CROSS_PLATFORM = "cross-platform"


class Transport(str, Enum):
    USB = "usb"
    NFC = "nfc"
    BLE = "ble"
    INTERNAL = "internal"
    HYBRID = "hybrid"
    CABLE = "cable"
    SMART_CARD = "smart-card"


class PrincipalKind(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


def parse_transports(values: Optional[Iterable[Any]]) -> list[Transport]:
    """Validate transport hints into the closed enumeration.

    Unknown hints are rejected instead of being stored untyped.
    """
    transports: list[Transport] = []
    for value in values or []:
        try:
            transport = Transport(value)
        except ValueError as exc:
            raise MalformedResponse(f"Unrecognized transport hint: {value!r}") from exc
        if transport not in transports:
            transports.append(transport)
    return transports


def parse_attachment(value: Optional[str]) -> Optional[AuthenticatorAttachment]:
    if value is None:
        return None
    try:
        return AuthenticatorAttachment(value)
    except ValueError as exc:
        raise MalformedResponse(f"Unrecognized authenticator attachment: {value!r}") from exc


def parse_device_type(value: Any) -> DeviceType:
    # py_webauthn reports CredentialDeviceType enums; accept their values too
    raw = getattr(value, "value", value)
    try:
        return DeviceType(raw)
    except ValueError as exc:
        raise MalformedResponse(f"Unrecognized credential device type: {raw!r}") from exc


@dataclass
class RegistrationOptions:
    """Options bundle for ``navigator.credentials.create``."""

    challenge: str
    rp_id: str
    rp_name: str
    principal_id: str
    principal_name: str
    principal_display_name: str
    exclude_credential_ids: list[str]
    algorithm_preferences: list[int]
    public_key: dict[str, Any] = field(default_factory=dict)


@dataclass
class AuthenticationOptions:
    """Options bundle for ``navigator.credentials.get``.

    ``allow_credential_ids`` is ``None`` for hint-less (discoverable) flows.
    """

    challenge: str
    rp_id: str
    allow_credential_ids: Optional[list[str]]
    public_key: dict[str, Any] = field(default_factory=dict)


@dataclass
class NewCredential:
    """Verified registration output, ready to persist."""

    credential_id: str
    public_key: bytes
    sign_count: int
    device_type: DeviceType
    backed_up: bool
    transports: list[Transport]
    attachment: Optional[AuthenticatorAttachment] = None
    aaguid: Optional[str] = None


@dataclass
class RegistrationVerification:
    verified: bool
    credential: Optional[Any] = None


@dataclass
class AuthenticationVerification:
    verified: bool
    principal: Optional[Any] = None
    credential_id: Optional[str] = None
    new_sign_count: Optional[int] = None
    authenticated_at: Optional[datetime] = None
