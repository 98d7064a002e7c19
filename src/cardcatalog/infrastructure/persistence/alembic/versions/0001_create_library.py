"""create library table

Revision ID: 0001_library
Revises:
Create Date: 2026-01-10 10:00:00.000000

Hey future me - this is the FIRST catalog schema: tags and duration only, no path yet.
sqlite_autoincrement from day one so ids of deleted rows are never reused (the search
index keys its documents by this id).
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_library'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'library',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('artist', sa.String(), nullable=True),
        sa.Column('album', sa.String(), nullable=True),
        sa.Column('track', sa.String(), nullable=True),
        sa.Column('track_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='0'),
        sqlite_autoincrement=True,
    )


def downgrade() -> None:
    op.drop_table('library')
