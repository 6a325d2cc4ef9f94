"""add_alarm_point_external_seq

Revision ID: b2d5f8a31c47
Revises: a1c4e7f20b13
Create Date: 2025-04-10 09:30:00.000000

alarm_points.external_seq: catalog OBJECT_SEQ, the key DELETE entries carry.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'b2d5f8a31c47'
down_revision: Union[str, None] = 'a1c4e7f20b13'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('alarm_points', sa.Column('external_seq', sa.BigInteger(), nullable=True))
    op.create_index('ix_alarm_points_external_seq', 'alarm_points', ['external_seq'])


def downgrade() -> None:
    op.drop_index('ix_alarm_points_external_seq', table_name='alarm_points')
    op.drop_column('alarm_points', 'external_seq')
