"""batch receipt order and sale creator foreign key

Revision ID: c0nd0002
Revises: c0nd0001
Create Date: 2026-10-19 12:00:00.000000

- batches.receipt_seq: per-product receipt order, FEFO tie-break for equal
  expiry dates (existing rows numbered by created_at, then id)
- sales.created_by_id: now a foreign key to residents, nulled when the
  resident is deleted
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c0nd0002'
down_revision = 'c0nd0001'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('batches', schema=None) as batch_op:
        batch_op.add_column(sa.Column('receipt_seq', sa.Integer(), nullable=False, server_default='0'))

    op.execute(
        """
        UPDATE batches SET receipt_seq = (
            SELECT COUNT(*) FROM batches AS earlier
            WHERE earlier.product_id = batches.product_id
              AND (earlier.created_at < batches.created_at
                   OR (earlier.created_at = batches.created_at AND earlier.id <= batches.id))
        )
        """
    )

    # Creators that no longer exist would violate the new constraint
    op.execute(
        "UPDATE sales SET created_by_id = NULL "
        "WHERE created_by_id IS NOT NULL "
        "AND created_by_id NOT IN (SELECT id FROM residents)"
    )

    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_created_by_id', ['created_by_id'])
        batch_op.create_foreign_key('fk_sales_created_by_id_residents', 'residents', ['created_by_id'], ['id'])


def downgrade():
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.drop_constraint('fk_sales_created_by_id_residents', type_='foreignkey')
        batch_op.drop_index('ix_sales_created_by_id')

    with op.batch_alter_table('batches', schema=None) as batch_op:
        batch_op.drop_column('receipt_seq')
