"""Documents and users tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-12

Tables:
- documents: compliance artifacts with derived status, JSONB validation
  result, append-only JSONB notification log, and an optimistic-concurrency
  version column
- users: notification recipients and their channel preferences
"""

from alembic import op

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create documents and users tables."""

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL DEFAULT 'USER'
                CHECK (role IN ('ADMIN', 'REVIEWER', 'USER')),
            is_active BOOLEAN NOT NULL DEFAULT true,
            notification_preferences JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """
    )

    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_users_role_active
        ON users (role, is_active)
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS documents (
            document_id TEXT PRIMARY KEY,
            merchant_name TEXT NOT NULL,
            merchant_id TEXT,
            document_type TEXT NOT NULL,
            pci_version TEXT NOT NULL DEFAULT '',
            compliance_level TEXT NOT NULL DEFAULT 'NOT_APPLICABLE',
            evaluator_name TEXT,
            evaluator_company TEXT,
            is_signed BOOLEAN NOT NULL DEFAULT false,
            file_name TEXT,
            issue_date TIMESTAMPTZ NOT NULL,
            expiration_date TIMESTAMPTZ NOT NULL,
            status TEXT NOT NULL
                CHECK (status IN ('PENDING_REVIEW', 'VALID', 'EXPIRING_SOON', 'EXPIRED', 'INVALID')),
            validation_result JSONB,
            notifications JSONB NOT NULL DEFAULT '[]'::jsonb,
            notification_claim JSONB,
            assigned_to TEXT REFERENCES users(user_id) ON DELETE SET NULL,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT ck_documents_date_order CHECK (expiration_date > issue_date)
        )
        """
    )

    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_documents_expiration_date
        ON documents (expiration_date)
        """
    )

    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_documents_status
        ON documents (status)
        """
    )


def downgrade() -> None:
    """Drop documents and users tables."""
    op.execute("DROP TABLE IF EXISTS documents")
    op.execute("DROP TABLE IF EXISTS users")
