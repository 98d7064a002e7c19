"""create acoustid_last_check table

Revision ID: 0003_last_check
Revises: 0002_path_mbid
Create Date: 2026-01-10 10:10:00.000000

When did we last ask AcoustID about a library row? Loose first version: library_id is
nullable and not unique, nothing cascades. 0004 tightens all of that.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0003_last_check'
down_revision = '0002_path_mbid'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'acoustid_last_check',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('library_id', sa.Integer(), nullable=True),
        sa.Column('last_check', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['library_id'], ['library.id'], name='fk_acoustid_last_check_library_id'
        ),
    )


def downgrade() -> None:
    op.drop_table('acoustid_last_check')
