"""Seed the platform account.

Revision ID: 002_seed_platform_account
Revises: 001_initial
Create Date: 2026-06-02

Creates the user and wallet that receive commission and platform fees.
The id must match the PLATFORM_ACCOUNT_ID setting.
"""

import uuid
from typing import Sequence

from alembic import op
from sqlalchemy import Integer, String, column, table
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers
revision: str = "002_seed_platform_account"
down_revision: str = "001_initial"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

PLATFORM_ACCOUNT_ID = "00000000-0000-0000-0000-000000000001"
PLATFORM_EMAIL = "platform@3wloc.com"


def upgrade() -> None:
    """Insert the platform user and its empty wallet."""
    users_table = table(
        "users",
        column("id", UUID(as_uuid=True)),
        column("email", String),
        column("role", String),
        column("first_name", String),
    )
    wallets_table = table(
        "wallets",
        column("id", UUID(as_uuid=True)),
        column("user_id", UUID(as_uuid=True)),
        column("balance", Integer),
        column("currency", String),
    )

    op.bulk_insert(
        users_table,
        [{"id": uuid.UUID(PLATFORM_ACCOUNT_ID), "email": PLATFORM_EMAIL, "role": "platform", "first_name": "3W-LOC"}],
    )
    op.bulk_insert(
        wallets_table,
        [{"id": uuid.uuid4(), "user_id": uuid.UUID(PLATFORM_ACCOUNT_ID), "balance": 0, "currency": "XOF"}],
    )


def downgrade() -> None:
    """Remove the platform wallet and user."""
    op.execute(f"DELETE FROM wallets WHERE user_id = '{PLATFORM_ACCOUNT_ID}'")
    op.execute(f"DELETE FROM users WHERE id = '{PLATFORM_ACCOUNT_ID}'")
