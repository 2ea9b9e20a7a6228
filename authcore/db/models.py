"""Database models."""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from authcore.core.time import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Principal(Base):
    """An entity that can authenticate (admin or customer)."""

    __tablename__ = "principals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="customer")
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    credentials: Mapped[list["WebAuthnCredential"]] = relationship(
        "WebAuthnCredential",
        back_populates="principal",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WebAuthnCredential.created_at",
    )


class WebAuthnCredential(Base):
    """One registered authenticator (passkey)."""

    __tablename__ = "webauthn_credentials"
    __table_args__ = (Index("ix_webauthn_credentials_principal_id", "principal_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    credential_id: Mapped[str] = mapped_column(String(1024), unique=True, nullable=False)
    principal_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("principals.id", ondelete="CASCADE"), nullable=False
    )
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    sign_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    device_type: Mapped[str] = mapped_column(String(20), nullable=False, default="single_device")
    attachment: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    backed_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    transports: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    aaguid: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    principal: Mapped["Principal"] = relationship("Principal", back_populates="credentials")


class WebAuthnChallenge(Base):
    """Outstanding ceremony challenge; at most one per key."""

    __tablename__ = "webauthn_challenges"

    key: Mapped[str] = mapped_column(String(320), primary_key=True)
    value: Mapped[str] = mapped_column(String(128), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class ProtocolArtifact(Base):
    """Type-tagged session/code/token/grant record keyed by (type, id)."""

    __tablename__ = "protocol_artifacts"
    __table_args__ = (
        Index("ix_protocol_artifacts_uid", "uid"),
        Index("ix_protocol_artifacts_user_code", "user_code"),
        Index("ix_protocol_artifacts_grant_id", "grant_id"),
        Index("ix_protocol_artifacts_expires_at", "expires_at"),
    )

    type: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    uid: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_code: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    grant_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class RevokedGrant(Base):
    """Marks a grant whose token family is revoked; blocks new issuance."""

    __tablename__ = "revoked_grants"

    grant_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    revoked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Consent(Base):
    """A subject's authorization for a client; history is retained."""

    __tablename__ = "consents"
    __table_args__ = (
        Index("ix_consents_subject_client", "subject_id", "client_id"),
        # At most one current (non-superseded) record per pair
        Index(
            "uq_consents_current_pair",
            "subject_id",
            "client_id",
            unique=True,
            postgresql_where=text("superseded_at IS NULL"),
            sqlite_where=text("superseded_at IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    grant_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    client_id: Mapped[str] = mapped_column(String(255), nullable=False)
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    resource_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    superseded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class RelatedOrigin(Base):
    """Additional WebAuthn origin accepted for this relying party."""

    __tablename__ = "webauthn_related_origins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    origin: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
