"""add_message_groups_and_alarm_points

Revision ID: a1c4e7f20b13
Revises:
Create Date: 2025-04-03 10:00:00.000000

Internal registry for the alarm point sync: message_groups + alarm_points.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'a1c4e7f20b13'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'message_groups',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_message_groups')),
    )

    op.create_table(
        'alarm_points',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('condition', sa.String(200), nullable=True),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('external_id', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_alarm_points')),
        sa.ForeignKeyConstraint(
            ['group_id'], ['message_groups.id'],
            name=op.f('fk_alarm_points_group_id_message_groups'),
            ondelete='RESTRICT',
        ),
    )
    # Names are unique case-insensitively
    op.create_index(
        'uq_alarm_points_name_lower', 'alarm_points',
        [sa.text('lower(name)')], unique=True,
    )
    op.create_index('ix_alarm_points_external_id', 'alarm_points', ['external_id'])
    op.create_index('ix_alarm_points_group_id', 'alarm_points', ['group_id'])


def downgrade() -> None:
    op.drop_index('ix_alarm_points_group_id', table_name='alarm_points')
    op.drop_index('ix_alarm_points_external_id', table_name='alarm_points')
    op.drop_index('uq_alarm_points_name_lower', table_name='alarm_points')
    op.drop_table('alarm_points')
    op.drop_table('message_groups')
