"""initial portal schema: users, residents, profile status, officials, footer

Revision ID: 20261001_portal
Revises:
Create Date: 2026-10-01

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261001_portal'
down_revision = None
branch_labels = None
depends_on = None


def _official_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('position', sa.String(length=100), nullable=False),
        sa.Column('official_type', sa.String(length=100), nullable=False),
        sa.Column('start_year', sa.Integer(), nullable=True),
        sa.Column('end_year', sa.Integer(), nullable=True),
        sa.Column('is_current', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('image_url', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='resident'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'residents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('household', sa.Text(), nullable=True),
        sa.Column('spouse', sa.Text(), nullable=True),
        sa.Column('household_composition', sa.Text(), nullable=True),
        sa.Column('census', sa.Text(), nullable=True),
        sa.Column('children_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('number_of_household_members', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('image_url', sa.String(length=255), nullable=True),
        sa.Column('valid_id_url', sa.String(length=255), nullable=True),
        sa.Column('zone_cert_url', sa.String(length=255), nullable=True),
        sa.Column('spouse_valid_id_url', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
    )

    op.create_table(
        'resident_profile_status',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('resident_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['resident_id'], ['residents.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('resident_id'),
    )
    op.create_index('idx_resident_profile_status_status', 'resident_profile_status', ['status'])

    op.create_table('barangay_officials', *_official_columns())
    op.create_table('sk_officials', *_official_columns())

    op.create_table(
        'footer_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('left_info', sa.JSON(), nullable=True),
        sa.Column('center_info', sa.JSON(), nullable=True),
        sa.Column('right_info', sa.JSON(), nullable=True),
        sa.Column('logosize', sa.Integer(), nullable=False, server_default='16'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('footer_config')
    op.drop_table('sk_officials')
    op.drop_table('barangay_officials')
    op.drop_index('idx_resident_profile_status_status', table_name='resident_profile_status')
    op.drop_table('resident_profile_status')
    op.drop_table('residents')
    op.drop_table('users')
