"""Lost and found item report tables

Revision ID: 0001_item_reports
Revises:
Create Date: 2026-10-19

Both tables share every column except the report date.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_item_reports'
down_revision = None
branch_labels = None
depends_on = None

CATEGORIES = "'Books', 'ID Card', 'Electronics', 'Accessories', 'Other'"
STATUSES = "'Pending', 'Claimed', 'Resolved'"


def _report_table(name: str, date_column: str):
    op.create_table(name,
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('item_name', sa.String(255), nullable=False),
        sa.Column('category', sa.String(32), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column(date_column, sa.Date, nullable=False),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('image', sa.String(500)),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('posted_by', sa.String(64), nullable=False),
        sa.Column('contact_email', sa.String(255), nullable=False),
        sa.Column('contact_phone', sa.String(64)),
        sa.Column('views', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
        sa.CheckConstraint(f"category IN ({CATEGORIES})", name=f'ck_{name}_category'),
        sa.CheckConstraint(f"status IN ({STATUSES})", name=f'ck_{name}_status'),
        sa.CheckConstraint('views >= 0', name=f'ck_{name}_views_positive'),
    )
    op.create_index(f'idx_{name}_category', name, ['category'])
    op.create_index(f'idx_{name}_status_date', name, ['status', date_column])


def upgrade():
    _report_table('lost_items', 'date_lost')
    _report_table('found_items', 'date_found')


def downgrade():
    op.drop_index('idx_found_items_status_date', table_name='found_items')
    op.drop_index('idx_found_items_category', table_name='found_items')
    op.drop_table('found_items')
    op.drop_index('idx_lost_items_status_date', table_name='lost_items')
    op.drop_index('idx_lost_items_category', table_name='lost_items')
    op.drop_table('lost_items')
