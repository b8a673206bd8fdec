"""timeline_tasks_composite_key

Revision ID: b4d6f8a0c213
Revises: a1c3e5f7b901
Create Date: 2026-10-19 16:40:00.000000

"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = 'b4d6f8a0c213'
down_revision: Union[str, Sequence[str], None] = 'a1c3e5f7b901'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.drop_constraint('timeline_tasks_pkey', 'timeline_tasks', type_='primary')
    op.create_primary_key('timeline_tasks_pkey', 'timeline_tasks', ['timeline_id', 'task_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_constraint('timeline_tasks_pkey', 'timeline_tasks', type_='primary')
    op.create_primary_key('timeline_tasks_pkey', 'timeline_tasks', ['task_id'])
