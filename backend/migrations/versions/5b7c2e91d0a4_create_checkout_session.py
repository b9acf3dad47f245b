"""create checkout_session

Revision ID: 5b7c2e91d0a4
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b7c2e91d0a4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'checkout_session' in insp.get_table_names():
        return
    op.create_table(
        'checkout_session',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(length=255), nullable=False),
        sa.Column('room_id', sa.String(length=64), nullable=False),
        sa.Column('player_name', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('paid_at', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('checkout_session') as batch_op:
        batch_op.create_index('ix_checkout_session_session_id', ['session_id'], unique=True)
        batch_op.create_index('ix_checkout_session_room_id', ['room_id'], unique=False)


def downgrade():
    with op.batch_alter_table('checkout_session') as batch_op:
        batch_op.drop_index('ix_checkout_session_room_id')
        batch_op.drop_index('ix_checkout_session_session_id')
    op.drop_table('checkout_session')
