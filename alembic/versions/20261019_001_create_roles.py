"""Create roles table

Revision ID: 20261019_001
Revises:
Create Date: 2026-10-19

One row per role per (business_id, year) scope:
- Natural key (business_id, year, role_id) is unique; upserts conflict on it
- parent_role_id references role_id within the same scope (null = root)
- No foreign key on parent_role_id; the engine enforces references
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'roles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('business_id', sa.String(64), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.String(128), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('color', sa.String(32), nullable=False),
        sa.Column('participates_in_rd', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('parent_role_id', sa.String(128), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.UniqueConstraint('business_id', 'year', 'role_id', name='uq_roles_business_year_role'),
    )

    op.create_index('ix_roles_business_id', 'roles', ['business_id'])
    op.create_index('ix_roles_scope_parent', 'roles', ['business_id', 'year', 'parent_role_id'])


def downgrade():
    op.drop_index('ix_roles_scope_parent', table_name='roles')
    op.drop_index('ix_roles_business_id', table_name='roles')
    op.drop_table('roles')
