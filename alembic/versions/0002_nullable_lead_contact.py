"""leads without contact data

Revision ID: 0002_nullable_lead_contact
Revises: 0001_initial_schema
Create Date: 2026-10-19 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_nullable_lead_contact'
down_revision: Union[str, None] = '0001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.alter_column('campaign_leads', 'contact_id', existing_type=sa.String(36), nullable=True)


def downgrade() -> None:
    op.execute('DELETE FROM campaign_leads WHERE contact_id IS NULL')
    op.alter_column('campaign_leads', 'contact_id', existing_type=sa.String(36), nullable=False)
