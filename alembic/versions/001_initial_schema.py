"""Initial migration - users, tokens, permissions and movies

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tables and seed permission codes."""
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('username', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('password_hash', sa.LargeBinary(), nullable=False),
        sa.Column('activated', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sa.UniqueConstraint('email', name=op.f('uq_users_email')),
    )

    op.create_table(
        'tokens',
        sa.Column('hash', sa.LargeBinary(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('expiry', sa.DateTime(timezone=True), nullable=False),
        sa.Column('scope', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('hash', name=op.f('pk_tokens')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_tokens_user_id_users'), ondelete='CASCADE'),
    )

    permissions = op.create_table(
        'permissions',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('code', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_permissions')),
        sa.UniqueConstraint('code', name=op.f('uq_permissions_code')),
    )

    op.create_table(
        'users_permissions',
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('permission_id', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('user_id', 'permission_id', name=op.f('pk_users_permissions')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_users_permissions_user_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], name=op.f('fk_users_permissions_permission_id_permissions'), ondelete='CASCADE'),
    )

    op.bulk_insert(permissions, [{'code': 'movies:read'}, {'code': 'movies:write'}])

    op.create_table(
        'movies',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('runtime', sa.Integer(), nullable=False),
        sa.Column('genres', postgresql.ARRAY(sa.Text()), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_movies')),
        sa.CheckConstraint('runtime >= 0', name=op.f('ck_movies_runtime_check')),
        sa.CheckConstraint("year BETWEEN 1888 AND date_part('year', now())", name=op.f('ck_movies_year_check')),
        sa.CheckConstraint('array_length(genres, 1) BETWEEN 1 AND 5', name=op.f('ck_movies_genres_length_check')),
    )
    op.create_index(op.f('ix_movies_genres'), 'movies', ['genres'], unique=False, postgresql_using='gin')


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index(op.f('ix_movies_genres'), table_name='movies')
    op.drop_table('movies')
    op.drop_table('users_permissions')
    op.drop_table('permissions')
    op.drop_table('tokens')
    op.drop_table('users')
