"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _org_fk() -> sa.Column:
    return sa.Column(
        'organization_id',
        sa.String(36),
        sa.ForeignKey('organizations.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('domain', sa.String(255), nullable=True),
        sa.Column('auto_assignment_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_assignment_strategy', sa.String(32), nullable=False, server_default='round_robin'),
        sa.Column('fb_app_secret', sa.String(255), nullable=True),
        sa.Column('fb_verify_token', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_organizations_domain', 'organizations', ['domain'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'members',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='agent'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_members_org_user'),
    )

    op.create_table(
        'channels',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('kind', sa.String(32), nullable=False, index=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('external_instance_id', sa.String(255), nullable=True),
        sa.Column('webhook_secret', sa.String(255), nullable=True),
        sa.Column('api_key', sa.String(255), nullable=True),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_channels_external_instance_id', 'channels', ['external_instance_id'], unique=True)
    op.create_index('ix_channels_api_key', 'channels', ['api_key'], unique=True)

    op.create_table(
        'contacts',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('channel_id', sa.String(36), sa.ForeignKey('channels.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('external_id', sa.String(255), nullable=True, index=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True, index=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('avatar_url', sa.String(1024), nullable=True),
        sa.Column('conv_status', sa.String(20), nullable=True),
        sa.Column('assigned_to_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('organization_id', 'channel_id', 'external_id', name='uq_contacts_org_channel_external'),
    )
    op.create_index('ix_contacts_org_updated', 'contacts', ['organization_id', 'updated_at'])

    op.create_table(
        'messages',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('contact_id', sa.String(36), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('channel_id', sa.String(36), sa.ForeignKey('channels.id', ondelete='SET NULL'), nullable=True),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('type', sa.String(20), nullable=False, server_default='text'),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(32), nullable=False, server_default='sent'),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('sender_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('organization_id', 'external_id', name='uq_messages_org_external'),
    )
    op.create_index('ix_messages_contact_created', 'messages', ['contact_id', 'created_at'])

    op.create_table(
        'tags',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('color', sa.String(16), nullable=False, server_default='#6366f1'),
        sa.Column('wa_label_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'contact_tags',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('contact_id', sa.String(36), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('tag_id', sa.String(36), sa.ForeignKey('tags.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('contact_id', 'tag_id', name='uq_contact_tags_contact_tag'),
    )

    op.create_table(
        'campaigns',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('fb_page_id', sa.String(64), nullable=True, index=True),
        sa.Column('fb_page_token', sa.String(1024), nullable=True),
        sa.Column('fb_form_ids', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'campaign_leads',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('campaign_id', sa.String(36), sa.ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('contact_id', sa.String(36), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('fb_lead_id', sa.String(64), nullable=True, unique=True),
        sa.Column('form_name', sa.String(255), nullable=True),
        sa.Column('source', sa.String(32), nullable=False, server_default='facebook'),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'assignment_rules',
        sa.Column('id', sa.String(36), primary_key=True),
        _org_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('condition_type', sa.String(20), nullable=False, server_default='always'),
        sa.Column('condition_value', sa.JSON(), nullable=False),
        sa.Column('assign_to', sa.String(20), nullable=False, server_default='all_agents'),
        sa.Column('assignee_ids', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('assignment_rules')
    op.drop_table('campaign_leads')
    op.drop_table('campaigns')
    op.drop_table('contact_tags')
    op.drop_table('tags')
    op.drop_index('ix_messages_contact_created', table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_contacts_org_updated', table_name='contacts')
    op.drop_table('contacts')
    op.drop_index('ix_channels_api_key', table_name='channels')
    op.drop_index('ix_channels_external_instance_id', table_name='channels')
    op.drop_table('channels')
    op.drop_table('members')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    op.drop_index('ix_organizations_domain', table_name='organizations')
    op.drop_table('organizations')
