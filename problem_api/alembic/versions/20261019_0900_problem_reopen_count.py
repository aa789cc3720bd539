"""problem reopen counter

Revision ID: problems_reopen_count_002
Revises: problems_initial_001
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'problems_reopen_count_002'
down_revision: Union[str, None] = 'problems_initial_001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'problems',
        sa.Column('reopen_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
    )


def downgrade() -> None:
    op.drop_column('problems', 'reopen_count')
