"""Generation lifecycle tables

Revision ID: 4f1c2a9d7e30
Revises: 
Create Date: 2026-10-19 10:12:41.518203

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


revision: str = '4f1c2a9d7e30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def upgrade() -> None:
    op.create_table('profiles',
    sa.Column('email', sa.String(length=255), nullable=True),
    sa.Column('is_legacy_user', sa.Boolean(), nullable=False),
    sa.Column('credits_remaining', sa.DECIMAL(precision=12, scale=4), nullable=False),
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint('credits_remaining >= 0', name='ck_profiles_credits_non_negative'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_table('credit_reservations',
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('amount', sa.DECIMAL(precision=12, scale=4), nullable=False),
    sa.Column('operation_type', sa.String(length=30), nullable=False),
    sa.Column('model_identifier', sa.String(length=100), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('is_legacy', sa.Boolean(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('settled_at', sa.DateTime(), nullable=True),
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_credit_reservations_user_status', 'credit_reservations', ['user_id', 'status'], unique=False)
    op.create_table('usage_records',
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('operation_type', sa.String(length=30), nullable=False),
    sa.Column('model_identifier', sa.String(length=100), nullable=False),
    sa.Column('cost_charged', sa.DECIMAL(precision=12, scale=4), nullable=False),
    sa.Column('provider_cost_usd', sa.DECIMAL(precision=10, scale=6), nullable=True),
    sa.Column('input_description', sa.Text(), nullable=True),
    sa.Column('is_legacy', sa.Boolean(), nullable=False),
    sa.Column('reservation_id', sa.Uuid(), nullable=True),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.ForeignKeyConstraint(['reservation_id'], ['credit_reservations.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_usage_records_user_created', 'usage_records', ['user_id', 'created_at'], unique=False)
    op.create_table('user_images',
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('storage_path', sa.String(length=500), nullable=False),
    sa.Column('public_url', sa.String(length=1000), nullable=False),
    sa.Column('prompt', sa.Text(), nullable=True),
    sa.Column('width', sa.Integer(), nullable=True),
    sa.Column('height', sa.Integer(), nullable=True),
    sa.Column('format', sa.String(length=10), nullable=False),
    sa.Column('media_type', sa.String(length=10), nullable=False),
    sa.Column('model_identifier', sa.String(length=100), nullable=True),
    sa.Column('visibility', sa.String(length=10), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('storage_path')
    )
    op.create_index('ix_user_images_user_created', 'user_images', ['user_id', 'created_at'], unique=False)
    op.create_table('generation_tasks',
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('reservation_id', sa.Uuid(), nullable=True),
    sa.Column('provider', sa.String(length=50), nullable=False),
    sa.Column('operation_type', sa.String(length=30), nullable=False),
    sa.Column('model_identifier', sa.String(length=100), nullable=False),
    sa.Column('external_task_id', sa.String(length=100), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('prompt', sa.Text(), nullable=True),
    sa.Column('width', sa.Integer(), nullable=True),
    sa.Column('height', sa.Integer(), nullable=True),
    sa.Column('output_format', sa.String(length=10), nullable=True),
    sa.Column('poll_count', sa.Integer(), nullable=False),
    sa.Column('result_url', sa.String(length=1000), nullable=True),
    sa.Column('artifact_id', sa.Uuid(), nullable=True),
    sa.Column('error_code', sa.String(length=50), nullable=True),
    sa.Column('error_message', sa.Text(), nullable=True),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['artifact_id'], ['user_images.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['reservation_id'], ['credit_reservations.id'], ondelete='SET NULL'),
    sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_generation_tasks_user_created', 'generation_tasks', ['user_id', 'created_at'], unique=False)
    op.create_index('ix_generation_tasks_external', 'generation_tasks', ['external_task_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_generation_tasks_external', table_name='generation_tasks')
    op.drop_index('ix_generation_tasks_user_created', table_name='generation_tasks')
    op.drop_table('generation_tasks')
    op.drop_index('ix_user_images_user_created', table_name='user_images')
    op.drop_table('user_images')
    op.drop_index('ix_usage_records_user_created', table_name='usage_records')
    op.drop_table('usage_records')
    op.drop_index('ix_credit_reservations_user_status', table_name='credit_reservations')
    op.drop_table('credit_reservations')
    op.drop_table('profiles')
