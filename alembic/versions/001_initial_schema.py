"""Initial schema with academic cycles

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='TEACHER'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_id', 'users', ['id'], unique=False)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create academic_cycles table
    op.create_table(
        'academic_cycles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('state', sa.String(20), nullable=False, server_default='PREPARATION'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('semester', sa.String(50), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('real_close_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('configuration', sa.JSON(), nullable=True),
        sa.Column('state_configuration', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('closed_by', sa.Integer(), nullable=True),
        sa.Column('initialized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verification_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.ForeignKeyConstraint(['closed_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_academic_cycles_id', 'academic_cycles', ['id'], unique=False)
    op.create_index('ix_academic_cycles_name', 'academic_cycles', ['name'], unique=True)
    op.create_index('ix_academic_cycles_state', 'academic_cycles', ['state'], unique=False)
    op.create_index('ix_academic_cycles_start_date', 'academic_cycles', ['start_date'], unique=False)
    op.create_index('ix_academic_cycles_semester_year', 'academic_cycles', ['semester', 'year'], unique=False)
    # At most one ACTIVE and one VERIFICATION cycle
    for name, state in (
        ('uq_academic_cycles_single_active', 'ACTIVE'),
        ('uq_academic_cycles_single_verification', 'VERIFICATION'),
    ):
        predicate = sa.text(f"state = '{state}'")
        op.create_index(
            name,
            'academic_cycles',
            ['state'],
            unique=True,
            postgresql_where=predicate,
            sqlite_where=predicate,
        )


def downgrade() -> None:
    op.drop_index('uq_academic_cycles_single_verification', table_name='academic_cycles')
    op.drop_index('uq_academic_cycles_single_active', table_name='academic_cycles')
    op.drop_index('ix_academic_cycles_semester_year', table_name='academic_cycles')
    op.drop_index('ix_academic_cycles_start_date', table_name='academic_cycles')
    op.drop_index('ix_academic_cycles_state', table_name='academic_cycles')
    op.drop_index('ix_academic_cycles_name', table_name='academic_cycles')
    op.drop_index('ix_academic_cycles_id', table_name='academic_cycles')
    op.drop_table('academic_cycles')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
