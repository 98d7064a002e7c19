"""tighten checkpoint ownership, add mbid_confidence and timestamps

Revision ID: 0004_checkpoint_fk
Revises: 0003_last_check
Create Date: 2026-01-10 10:15:00.000000

Hey future me - this makes the library row OWN its checkpoint:

1. library rows without a path can never be reconciled or pruned -> deleted
2. checkpoints pointing nowhere (NULL or deleted library_id) -> deleted
3. duplicate checkpoints per library_id collapse into one, keeping the LATEST last_check
4. library_id becomes NOT NULL + UNIQUE + ON DELETE CASCADE
5. library gets mbid_confidence (no-downgrade rule), created_at/updated_at and
   CHECKs for the non-negative numbers

acoustid_last_check is rebuilt by hand (create new, copy, drop, rename) instead of batch
mode: SQLite doesn't report FK names, so batch mode can't drop the old FK by name.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0004_checkpoint_fk'
down_revision = '0003_last_check'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # === 1 + 2: cleanup ===
    op.execute(
        "DELETE FROM acoustid_last_check "
        "WHERE library_id IN (SELECT id FROM library WHERE path IS NULL)"
    )
    op.execute("DELETE FROM library WHERE path IS NULL")
    op.execute(
        "DELETE FROM acoustid_last_check "
        "WHERE library_id IS NULL OR library_id NOT IN (SELECT id FROM library)"
    )

    # === 3: one checkpoint per entry ===
    op.execute(
        "UPDATE acoustid_last_check SET last_check = ("
        "SELECT MAX(b.last_check) FROM acoustid_last_check b "
        "WHERE b.library_id = acoustid_last_check.library_id)"
    )
    op.execute(
        "DELETE FROM acoustid_last_check WHERE id NOT IN ("
        "SELECT MAX(id) FROM acoustid_last_check GROUP BY library_id)"
    )

    # === 5: library columns ===
    with op.batch_alter_table('library', table_kwargs={'sqlite_autoincrement': True}) as batch_op:
        batch_op.add_column(sa.Column('mbid_confidence', sa.Float(), nullable=True))
        batch_op.add_column(sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ))
        batch_op.add_column(sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ))
        batch_op.alter_column('path', existing_type=sa.String(), nullable=False)
        batch_op.create_check_constraint(
            'ck_library_track_number_non_negative', 'track_number >= 0'
        )
        batch_op.create_check_constraint(
            'ck_library_duration_non_negative', 'duration >= 0'
        )

    # === 4: rebuild acoustid_last_check ===
    op.create_table(
        'acoustid_last_check_new',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('library_id', sa.Integer(), nullable=False),
        sa.Column('last_check', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['library_id'],
            ['library.id'],
            name='fk_acoustid_last_check_library_id',
            ondelete='CASCADE',
        ),
        sa.UniqueConstraint('library_id', name='uq_acoustid_last_check_library_id'),
    )
    # ids are not copied: nothing references them, and explicit ids would leave a
    # PostgreSQL SERIAL sequence behind MAX(id)
    op.execute(
        "INSERT INTO acoustid_last_check_new (library_id, last_check) "
        "SELECT library_id, COALESCE(last_check, CURRENT_TIMESTAMP) "
        "FROM acoustid_last_check"
    )
    op.drop_table('acoustid_last_check')
    op.rename_table('acoustid_last_check_new', 'acoustid_last_check')


def downgrade() -> None:
    op.create_table(
        'acoustid_last_check_old',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('library_id', sa.Integer(), nullable=True),
        sa.Column('last_check', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ['library_id'], ['library.id'], name='fk_acoustid_last_check_library_id_old'
        ),
    )
    op.execute(
        "INSERT INTO acoustid_last_check_old (library_id, last_check) "
        "SELECT library_id, last_check FROM acoustid_last_check"
    )
    op.drop_table('acoustid_last_check')
    op.rename_table('acoustid_last_check_old', 'acoustid_last_check')

    with op.batch_alter_table('library', table_kwargs={'sqlite_autoincrement': True}) as batch_op:
        batch_op.drop_constraint('ck_library_duration_non_negative', type_='check')
        batch_op.drop_constraint('ck_library_track_number_non_negative', type_='check')
        batch_op.alter_column('path', existing_type=sa.String(), nullable=True)
        batch_op.drop_column('updated_at')
        batch_op.drop_column('created_at')
        batch_op.drop_column('mbid_confidence')
