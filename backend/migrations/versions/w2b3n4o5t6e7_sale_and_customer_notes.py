"""sale and customer notes

Revision ID: w2b3n4o5t6e7
Revises: w1a2t3c4h5f6
Create Date: 2026-10-19 12:00:00.000000

Adds append-only note tables for sales and customers, shaped like
service_notes.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'w2b3n4o5t6e7'
down_revision = 'w1a2t3c4h5f6'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'sale_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('note', sa.Text(), nullable=False),
        sa.Column('added_by_user_id', sa.Integer(), nullable=True),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'],
                                name='fk_sale_notes_sale_id_sales'),
        sa.PrimaryKeyConstraint('id', name='pk_sale_notes'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_notes_sale_id', 'sale_notes', ['sale_id'])

    op.create_table(
        'customer_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('note', sa.Text(), nullable=False),
        sa.Column('added_by_user_id', sa.Integer(), nullable=True),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'],
                                name='fk_customer_notes_customer_id_customers'),
        sa.PrimaryKeyConstraint('id', name='pk_customer_notes'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customer_notes_customer_id', 'customer_notes', ['customer_id'])


def downgrade():
    op.drop_index('ix_customer_notes_customer_id', table_name='customer_notes')
    op.drop_table('customer_notes')
    op.drop_index('ix_sale_notes_sale_id', table_name='sale_notes')
    op.drop_table('sale_notes')
