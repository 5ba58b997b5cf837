# Plantilla de archivos de versión (migraciones)

"""create_score_cards

Revision ID: c83f4a6e9d10
Revises: 5b1e0c7d2a91
Create Date: 2025-11-05 18:31:02.447615

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'c83f4a6e9d10'
down_revision = '5b1e0c7d2a91'
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        'score_cards',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('attempt_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.String(length=64), nullable=False),
        sa.Column('available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('attempted_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_answers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('wrong_answers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pending_review', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('accuracy', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_time_taken', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('avg_time_per_question', sa.Float(), nullable=False, server_default='0'),
        sa.Column('question_results', sa.JSON(), nullable=False),
        sa.Column('breakdown', sa.JSON(), nullable=False),
        sa.Column('mistakes', sa.JSON(), nullable=False),
        sa.Column('terminal_status', sa.String(length=16), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_score_cards'),
        sa.ForeignKeyConstraint(['attempt_id'], ['attempts.id'], ondelete='CASCADE',
                                name='fk_score_cards_attempt_id_attempts'),
        sa.ForeignKeyConstraint(['session_id'], ['test_sessions.id'], ondelete='CASCADE',
                                name='fk_score_cards_session_id_test_sessions'),
        # un solo ScoreCard por intento: segunda línea de defensa del submit exactly-once
        sa.UniqueConstraint('attempt_id', name='uq_score_cards_attempt_id'),
    )
    op.create_index('ix_score_cards_session_id', 'score_cards', ['session_id'])
    op.create_index('ix_score_cards_student_id', 'score_cards', ['student_id'])


def downgrade() -> None:
    op.drop_index('ix_score_cards_student_id', table_name='score_cards')
    op.drop_index('ix_score_cards_session_id', table_name='score_cards')
    op.drop_table('score_cards')
