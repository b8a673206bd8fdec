"""create_cookplan_tables

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b901'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'meals',
        sa.Column('meal_id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('serve_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('guest_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        'meal_recipes',
        sa.Column('meal_recipe_id', sa.String(), primary_key=True),
        sa.Column('meal_id', sa.String(), sa.ForeignKey('meals.meal_id', ondelete='CASCADE'), nullable=False),
        sa.Column('recipe_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('serving_size', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('target_servings', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('scale_multiplier', sa.Float(), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('prep_time_minutes', sa.Integer(), nullable=True),
        sa.Column('cook_time_minutes', sa.Integer(), nullable=True),
        sa.Column('ingredients', sa.JSON(), nullable=True),
        sa.Column('instructions', sa.JSON(), nullable=True),
    )
    op.create_table(
        'timelines',
        sa.Column('timeline_id', sa.String(), primary_key=True),
        sa.Column('meal_id', sa.String(), sa.ForeignKey('meals.meal_id', ondelete='CASCADE'),
                  nullable=False, unique=True),
        sa.Column('has_conflicts', sa.Boolean(), nullable=True),
        sa.Column('conflicts', sa.JSON(), nullable=True),
        sa.Column('is_running', sa.Boolean(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_task_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        'timeline_tasks',
        sa.Column('task_id', sa.String(), primary_key=True),
        sa.Column('timeline_id', sa.String(), sa.ForeignKey('timelines.timeline_id', ondelete='CASCADE'),
                  nullable=False),
        sa.Column('meal_id', sa.String(), nullable=False),
        sa.Column('recipe_id', sa.String(), nullable=False),
        sa.Column('instruction_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_time_minutes', sa.Integer(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('end_time_minutes', sa.Integer(), nullable=False),
        sa.Column('requires_oven', sa.Boolean(), nullable=True),
        sa.Column('oven_temp', sa.Integer(), nullable=True),
        sa.Column('depends_on', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_valid', sa.Boolean(), nullable=True),
        sa.Column('validation_errors', sa.JSON(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_timeline_tasks_timeline_sort', 'timeline_tasks', ['timeline_id', 'sort_order'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_timeline_tasks_timeline_sort', table_name='timeline_tasks')
    op.drop_table('timeline_tasks')
    op.drop_table('timelines')
    op.drop_table('meal_recipes')
    op.drop_table('meals')
