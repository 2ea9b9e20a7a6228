from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "principals",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("kind", sa.String(length=20), nullable=False, server_default="customer"),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_principals_email", "principals", ["email"], unique=True)

    op.create_table(
        "webauthn_credentials",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("credential_id", sa.String(length=1024), nullable=False, unique=True),
        sa.Column(
            "principal_id",
            sa.String(length=64),
            sa.ForeignKey("principals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("public_key", sa.LargeBinary(), nullable=False),
        sa.Column("sign_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("device_type", sa.String(length=20), nullable=False, server_default="single_device"),
        sa.Column("attachment", sa.String(length=20)),
        sa.Column("backed_up", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("transports", sa.JSON(), nullable=False),
        sa.Column("aaguid", sa.String(length=36)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_used_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_webauthn_credentials_principal_id", "webauthn_credentials", ["principal_id"])

    op.create_table(
        "webauthn_challenges",
        sa.Column("key", sa.String(length=320), primary_key=True),
        sa.Column("value", sa.String(length=128), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_webauthn_challenges_expires_at", "webauthn_challenges", ["expires_at"])

    op.create_table(
        "protocol_artifacts",
        sa.Column("type", sa.String(length=64), primary_key=True),
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("uid", sa.String(length=255)),
        sa.Column("user_code", sa.String(length=255)),
        sa.Column("grant_id", sa.String(length=255)),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("consumed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_protocol_artifacts_uid", "protocol_artifacts", ["uid"])
    op.create_index("ix_protocol_artifacts_user_code", "protocol_artifacts", ["user_code"])
    op.create_index("ix_protocol_artifacts_grant_id", "protocol_artifacts", ["grant_id"])
    op.create_index("ix_protocol_artifacts_expires_at", "protocol_artifacts", ["expires_at"])

    op.create_table(
        "revoked_grants",
        sa.Column("grant_id", sa.String(length=255), primary_key=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "consents",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("grant_id", sa.String(length=255), unique=True),
        sa.Column("subject_id", sa.String(length=64), nullable=False),
        sa.Column("client_id", sa.String(length=255), nullable=False),
        sa.Column("scopes", sa.JSON(), nullable=False),
        sa.Column("resource_ids", sa.JSON(), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        sa.Column("revoked_at", sa.DateTime(timezone=True)),
        sa.Column("superseded_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_consents_subject_client", "consents", ["subject_id", "client_id"])
    op.create_index(
        "uq_consents_current_pair",
        "consents",
        ["subject_id", "client_id"],
        unique=True,
        postgresql_where=sa.text("superseded_at IS NULL"),
        sqlite_where=sa.text("superseded_at IS NULL"),
    )

    op.create_table(
        "webauthn_related_origins",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("origin", sa.String(length=255), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table("webauthn_related_origins")
    op.drop_index("uq_consents_current_pair", table_name="consents")
    op.drop_index("ix_consents_subject_client", table_name="consents")
    op.drop_table("consents")
    op.drop_table("revoked_grants")
    op.drop_table("protocol_artifacts")
    op.drop_table("webauthn_challenges")
    op.drop_table("webauthn_credentials")
    op.drop_table("principals")
