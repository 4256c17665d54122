"""Initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261019_0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial tables."""
    # Accounts verified as belonging to a Discord user
    op.create_table(
        'verified_connections',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('connection_type', sa.String(), nullable=False),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('removed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_verified_connections_user_id', 'verified_connections', ['user_id'])

    # Roles granted by hand, never removed by the sync loop
    op.create_table(
        'manual_role_assignments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('role_id', sa.BigInteger(), nullable=False),
        sa.Column('assigned_on', sa.DateTime(), nullable=False),
        sa.Column('note', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_manual_role_assignments_user_id', 'manual_role_assignments', ['user_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('ix_manual_role_assignments_user_id', 'manual_role_assignments')
    op.drop_table('manual_role_assignments')
    op.drop_index('ix_verified_connections_user_id', 'verified_connections')
    op.drop_table('verified_connections')
