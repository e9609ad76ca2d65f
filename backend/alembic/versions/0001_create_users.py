"""Create users table

Revision ID: 0001
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_create_users'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users table with the embedded subscription record."""

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(), nullable=False),

        # Profile
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('age', sa.Integer, nullable=False),
        sa.Column('gender', sa.String(20), nullable=False),
        sa.Column('university', sa.String(200), nullable=False),
        sa.Column('profile_status', sa.String(50), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('looking_for', sa.String(200), nullable=False),
        sa.Column('guardian_email', sa.String(255)),
        sa.Column('guardian_phone', sa.String(50)),
        sa.Column('is_admin', sa.Boolean, server_default=sa.false(), nullable=False),

        # Subscription record (JSON) and its mirrored columns
        sa.Column('subscription', sa.JSON(), nullable=False),
        sa.Column('subscription_status', sa.String(30), server_default='trial', nullable=False),
        sa.Column('subscription_revision', sa.Integer, server_default='0', nullable=False),
        sa.Column('has_active_subscription', sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column('provider_reference_id', sa.String(255), nullable=True),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_subscription_status', 'users', ['subscription_status'])
    op.create_index('ix_users_provider_reference_id', 'users', ['provider_reference_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_users_provider_reference_id', table_name='users')
    op.drop_index('ix_users_subscription_status', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
