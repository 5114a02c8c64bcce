"""Initial schema: app_user, team, team_member, preview_manifest, manifest_submission, ai_context_preference

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the context retrieval tables with indexes and constraints."""

    # PostgreSQL gets native UUID/JSONB; SQLite stores strings and JSON text
    bind = op.get_bind()
    is_postgresql = bind.dialect.name == 'postgresql'

    if is_postgresql:
        uuid_type = postgresql.UUID(as_uuid=True)
        json_type = postgresql.JSONB()
    else:
        uuid_type = sa.String(36)
        json_type = sa.JSON()

    op.create_table(
        'app_user',
        sa.Column('user_id', uuid_type, primary_key=True),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('email', name='uq_app_user_email'),
    )

    op.create_table(
        'team',
        sa.Column('team_id', uuid_type, primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'team_member',
        sa.Column('member_id', uuid_type, primary_key=True),
        sa.Column('team_id', uuid_type, nullable=False),
        sa.Column('user_id', uuid_type, nullable=False),
        sa.Column('role', sa.Text(), nullable=False, server_default='member'),
        sa.ForeignKeyConstraint(['team_id'], ['team.team_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['app_user.user_id'], ondelete='CASCADE'),
        sa.UniqueConstraint('team_id', 'user_id', name='uq_team_member'),
    )
    op.create_index('idx_team_member_user', 'team_member', ['user_id'])

    # One row per (user, team, type) scope; NULLs compare equal so the
    # global scope is unique too (PostgreSQL 15+)
    scope_unique_kwargs = {'postgresql_nulls_not_distinct': True} if is_postgresql else {}
    op.create_table(
        'preview_manifest',
        sa.Column('manifest_id', uuid_type, primary_key=True),
        sa.Column('user_id', uuid_type, nullable=True),
        sa.Column('team_id', uuid_type, nullable=True),
        sa.Column('manifest_type', sa.String(100), nullable=False),
        sa.Column('content', json_type, nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['app_user.user_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['team_id'], ['team.team_id'], ondelete='CASCADE'),
        sa.UniqueConstraint(
            'user_id', 'team_id', 'manifest_type',
            name='uq_preview_manifest_scope_type',
            **scope_unique_kwargs,
        ),
    )
    op.create_index('idx_preview_manifest_user', 'preview_manifest', ['user_id'])
    op.create_index('idx_preview_manifest_team', 'preview_manifest', ['team_id'])
    op.create_index('idx_preview_manifest_type', 'preview_manifest', ['manifest_type'])

    op.create_table(
        'manifest_submission',
        sa.Column('submission_id', uuid_type, primary_key=True),
        sa.Column('user_id', uuid_type, nullable=False),
        sa.Column('team_id', uuid_type, nullable=True),
        sa.Column('manifest_type', sa.String(100), nullable=False),
        sa.Column('item_id', sa.String(255), nullable=False),
        sa.Column('item_data', json_type, nullable=False),
        sa.Column('edited_item_data', json_type, nullable=True),
        sa.Column('was_edited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(50), nullable=False, server_default='pending'),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['app_user.user_id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['team_id'], ['team.team_id'], ondelete='SET NULL'),
    )
    op.create_index(
        'idx_submission_type_status', 'manifest_submission', ['manifest_type', 'status']
    )
    op.create_index('idx_submission_item', 'manifest_submission', ['manifest_type', 'item_id'])

    op.create_table(
        'ai_context_preference',
        sa.Column('preference_id', uuid_type, primary_key=True),
        sa.Column('user_id', uuid_type, nullable=False),
        sa.Column('use_own_preview', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('use_cdn_content', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('use_team_preview', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            'use_all_submissions', sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column('max_context_items', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('prefer_recent', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['app_user.user_id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', name='uq_ai_context_preference_user'),
        sa.CheckConstraint('max_context_items > 0', name='ck_context_max_items_positive'),
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('ai_context_preference')
    op.drop_index('idx_submission_item', table_name='manifest_submission')
    op.drop_index('idx_submission_type_status', table_name='manifest_submission')
    op.drop_table('manifest_submission')
    op.drop_index('idx_preview_manifest_type', table_name='preview_manifest')
    op.drop_index('idx_preview_manifest_team', table_name='preview_manifest')
    op.drop_index('idx_preview_manifest_user', table_name='preview_manifest')
    op.drop_table('preview_manifest')
    op.drop_index('idx_team_member_user', table_name='team_member')
    op.drop_table('team_member')
    op.drop_table('team')
    op.drop_table('app_user')
