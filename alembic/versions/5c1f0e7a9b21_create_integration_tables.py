"""Create integration_connections and repo_integrations tables

Revision ID: 5c1f0e7a9b21
Revises:
Create Date: 2026-10-19 09:12:44.318502

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5c1f0e7a9b21'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'integration_connections',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        # Serialized AES-256-GCM payloads: {"ciphertext", "iv", "tag"}
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_integration_connections_user_id', 'integration_connections', ['user_id'], unique=False
    )
    op.create_index(
        'ix_integration_connection_lookup',
        'integration_connections',
        ['user_id', 'provider'],
        unique=True,
    )

    op.create_table(
        'repo_integrations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('repo_full_name', sa.String(length=255), nullable=False),
        sa.Column('vercel_project_id', sa.String(length=255), nullable=True),
        sa.Column('vercel_project_name', sa.String(length=255), nullable=True),
        sa.Column('supabase_project_ref', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_repo_integrations_user_id', 'repo_integrations', ['user_id'], unique=False
    )
    op.create_index(
        'ix_repo_integration_lookup',
        'repo_integrations',
        ['user_id', 'repo_full_name'],
        unique=True,
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_repo_integration_lookup', table_name='repo_integrations')
    op.drop_index('ix_repo_integrations_user_id', table_name='repo_integrations')
    op.drop_table('repo_integrations')
    op.drop_index('ix_integration_connection_lookup', table_name='integration_connections')
    op.drop_index('ix_integration_connections_user_id', table_name='integration_connections')
    op.drop_table('integration_connections')
