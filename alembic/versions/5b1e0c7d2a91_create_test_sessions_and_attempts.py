# Plantilla de archivos de versión (migraciones)

"""create_test_sessions_and_attempts

Revision ID: 5b1e0c7d2a91
Revises:
Create Date: 2025-11-03 10:12:40.118204

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '5b1e0c7d2a91'
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        'test_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('subject', sa.String(length=120), nullable=True),
        sa.Column('classroom_id', sa.String(length=64), nullable=False),
        sa.Column('roster', sa.JSON(), nullable=False),
        sa.Column('paper_snapshot', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='draft'),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_test_sessions'),
    )
    op.create_index('ix_test_sessions_classroom_id', 'test_sessions', ['classroom_id'])
    op.create_index('ix_test_sessions_created_by', 'test_sessions', ['created_by'])
    op.create_index('ix_test_sessions_status_ends_at', 'test_sessions', ['status', 'ends_at'])

    op.create_table(
        'attempts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='in_progress'),
        sa.Column('answers', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_time_taken', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_attempts'),
        sa.ForeignKeyConstraint(['session_id'], ['test_sessions.id'], ondelete='CASCADE',
                                name='fk_attempts_session_id_test_sessions'),
        sa.UniqueConstraint('session_id', 'student_id', name='uq_attempt_session_student'),
    )
    op.create_index('ix_attempts_session_id', 'attempts', ['session_id'])
    op.create_index('ix_attempts_student_id', 'attempts', ['student_id'])
    op.create_index('ix_attempts_session_status', 'attempts', ['session_id', 'status'])


def downgrade() -> None:
    op.drop_index('ix_attempts_session_status', table_name='attempts')
    op.drop_index('ix_attempts_student_id', table_name='attempts')
    op.drop_index('ix_attempts_session_id', table_name='attempts')
    op.drop_table('attempts')
    op.drop_index('ix_test_sessions_status_ends_at', table_name='test_sessions')
    op.drop_index('ix_test_sessions_created_by', table_name='test_sessions')
    op.drop_index('ix_test_sessions_classroom_id', table_name='test_sessions')
    op.drop_table('test_sessions')
