"""create user and verification tables

Revision ID: 3f1c9a7e2b40
Revises:
Create Date: 2026-10-18 09:12:31.408112

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f1c9a7e2b40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "user",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("hashed_password", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default=sa.text("'USER'")),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )
    op.create_index("ix_user_email", "user", ["email"], unique=True)

    # Invitations live here as identifier "invitation:<email>"; value is the SHA-256 hex of the token.
    op.create_table(
        "verification",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("identifier", sa.String(length=320), nullable=False),
        sa.Column("value", sa.String(length=128), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )
    op.create_index("ix_verification_identifier", "verification", ["identifier"], unique=False)
    op.create_index("ix_verification_expires_at", "verification", ["expires_at"], unique=False)

    # Newest-per-identifier lookups
    op.create_index(
        "ix_verification_identifier_created",
        "verification",
        ["identifier", "created_at"],
        unique=False,
    )


def downgrade():
    op.drop_index("ix_verification_identifier_created", table_name="verification")
    op.drop_index("ix_verification_expires_at", table_name="verification")
    op.drop_index("ix_verification_identifier", table_name="verification")
    op.drop_table("verification")

    op.drop_index("ix_user_email", table_name="user")
    op.drop_table("user")
