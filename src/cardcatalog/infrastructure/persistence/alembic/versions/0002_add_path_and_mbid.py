"""add path and mbid to library

Revision ID: 0002_path_mbid
Revises: 0001_library
Create Date: 2026-01-10 10:05:00.000000

Hey future me - path becomes THE reconciliation key (unique). It stays nullable here
because rows from 0001 have none; 0004 drops those rows and makes it NOT NULL.
mbid = AcoustID/MusicBrainz recording id, indexed for the audit join.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_path_mbid'
down_revision = '0001_library'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # SQLite can't ADD CONSTRAINT - batch mode recreates the table.
    # table_kwargs keeps AUTOINCREMENT on the recreated table.
    with op.batch_alter_table('library', table_kwargs={'sqlite_autoincrement': True}) as batch_op:
        batch_op.add_column(sa.Column('path', sa.String(), nullable=True))
        batch_op.add_column(sa.Column('mbid', sa.String(36), nullable=True))
        batch_op.create_unique_constraint('uq_library_path', ['path'])

    op.create_index('library_mbid', 'library', ['mbid'])


def downgrade() -> None:
    op.drop_index('library_mbid', table_name='library')
    with op.batch_alter_table('library', table_kwargs={'sqlite_autoincrement': True}) as batch_op:
        batch_op.drop_constraint('uq_library_path', type_='unique')
        batch_op.drop_column('mbid')
        batch_op.drop_column('path')
