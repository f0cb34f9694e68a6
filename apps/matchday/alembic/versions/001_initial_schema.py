"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 12:00:00.000000

Creates the replicated store tables (store_documents, store_idempotency)
and the photo blob table (user_photos).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_VALUE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        'store_documents',
        sa.Column('key', sa.String(length=255), primary_key=True),
        sa.Column('value', JSON_VALUE, nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        'store_idempotency',
        sa.Column('key', sa.String(length=255), primary_key=True),
        sa.Column('result', JSON_VALUE, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        'user_photos',
        sa.Column('user_id', sa.String(length=64), primary_key=True),
        sa.Column('content_type', sa.String(length=50), nullable=False),
        sa.Column('data', sa.LargeBinary(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('user_photos')
    op.drop_table('store_idempotency')
    op.drop_table('store_documents')
