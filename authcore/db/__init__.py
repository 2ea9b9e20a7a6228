"""Database module initialization."""

from .models import (
    Base,
    Consent,
    Principal,
    ProtocolArtifact,
    RelatedOrigin,
    RevokedGrant,
    WebAuthnChallenge,
    WebAuthnCredential,
)
from .session import SessionLocal, engine, get_db

__all__ = [
    "Base",
    "Consent",
    "Principal",
    "ProtocolArtifact",
    "RelatedOrigin",
    "RevokedGrant",
    "WebAuthnChallenge",
    "WebAuthnCredential",
    "get_db",
    "engine",
    "SessionLocal",
]
