"""Create vehicles and fueling_records tables

Revision ID: 4c2f9a81d3e7
Revises: 
Create Date: 2026-10-19 09:12:44.318201

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2f9a81d3e7'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('vehicles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('plate_number', sa.String(length=20), nullable=False),
        sa.Column('brand', sa.String(length=50), nullable=False),
        sa.Column('model', sa.String(length=50), nullable=False),
        sa.Column('year', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='Activo'),
        sa.Column('current_mileage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('plate_number')
    )
    op.create_table('fueling_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('vehicle_id', sa.Integer(), nullable=False),
        sa.Column('vehicle_plate_number', sa.String(length=20), nullable=True),
        sa.Column('fueling_date', sa.Date(), nullable=False),
        sa.Column('mileage_at_fueling', sa.Integer(), nullable=False),
        sa.Column('quantity_liters', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('cost_per_liter', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('total_cost', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('station', sa.String(length=100), nullable=False),
        sa.Column('responsible', sa.String(length=100), nullable=False),
        sa.Column('image_url', sa.String(length=255), nullable=True),
        sa.Column('fuel_efficiency', sa.Numeric(precision=10, scale=1), nullable=True),
        sa.Column('insertion_seq', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['vehicle_id'], ['vehicles.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_fueling_records_vehicle_order', 'fueling_records',
                    ['vehicle_id', 'fueling_date', 'insertion_seq', 'id'])


def downgrade():
    op.drop_index('ix_fueling_records_vehicle_order', table_name='fueling_records')
    op.drop_table('fueling_records')
    op.drop_table('vehicles')
