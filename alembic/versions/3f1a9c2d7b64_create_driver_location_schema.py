"""create driver location schema

Revision ID: 3f1a9c2d7b64
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7b64'
down_revision: Union[str, Sequence[str], None] = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('drivers',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('phone_number', sa.String(), nullable=False),
    sa.Column('name', sa.String(), nullable=True),
    sa.Column('company_name', sa.String(), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('opted_out', sa.Boolean(), server_default=sa.false(), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('phone_number')
    )
    op.create_table('locations',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(), nullable=False, comment="Canonical name, e.g. 'Miami, FL'"),
    sa.Column('city', sa.String(), nullable=True),
    sa.Column('state', sa.String(length=2), nullable=True),
    sa.Column('zip_code', sa.String(length=10), nullable=True),
    sa.Column('auction_name', sa.String(), nullable=True),
    sa.Column('auction_type', sa.String(), nullable=True, comment='COPART or IAAI'),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('name')
    )
    op.create_table('loads',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('vin', sa.String(), nullable=False),
    sa.Column('load_id', sa.String(length=6), nullable=False, comment='Last 6 characters of the VIN, upper-cased'),
    sa.Column('pickup_location', sa.Text(), nullable=True),
    sa.Column('delivery_location', sa.Text(), nullable=True),
    sa.Column('status', sa.String(), nullable=True),
    sa.Column('driver_phone', sa.String(), nullable=True),
    sa.Column('sheet_row_number', sa.Integer(), nullable=True),
    sa.Column('driver_id', sa.UUID(), nullable=True),
    sa.Column('synced_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['driver_id'], ['drivers.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('vin')
    )
    op.create_index(op.f('ix_loads_load_id'), 'loads', ['load_id'], unique=False)
    op.create_table('location_aliases',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('alias', sa.String(), nullable=False),
    sa.Column('location_id', sa.UUID(), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('alias')
    )
    op.create_table('driver_locations',
    sa.Column('driver_id', sa.UUID(), nullable=False),
    sa.Column('location_id', sa.UUID(), nullable=False),
    sa.Column('source', sa.String(), nullable=False),
    sa.Column('match_count', sa.Integer(), server_default='1', nullable=False),
    sa.Column('last_seen_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.ForeignKeyConstraint(['driver_id'], ['drivers.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('driver_id', 'location_id')
    )
    op.create_table('unknown_drivers',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('phone_number', sa.String(), nullable=False),
    sa.Column('load_ids', sa.JSON(), nullable=False),
    sa.Column('raw_location', sa.Text(), nullable=True),
    sa.Column('matched', sa.Boolean(), server_default=sa.false(), nullable=False),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_unknown_drivers_phone_number'), 'unknown_drivers', ['phone_number'], unique=False)
    op.create_table('conversations',
    sa.Column('id', sa.String(), nullable=False, comment='Conversation id assigned by the messaging transport'),
    sa.Column('phone_number', sa.String(), nullable=True),
    sa.Column('participants', sa.JSON(), nullable=True),
    sa.Column('last_activity_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('last_parsed_at', sa.TIMESTAMP(timezone=True), nullable=True, comment='Watermark of the last extraction run'),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_conversations_phone_number'), 'conversations', ['phone_number'], unique=False)
    op.create_table('messages',
    sa.Column('id', sa.String(), nullable=False),
    sa.Column('conversation_id', sa.String(), nullable=False),
    sa.Column('direction', sa.String(), nullable=False, comment='incoming or outgoing'),
    sa.Column('from_number', sa.String(), nullable=True),
    sa.Column('text', sa.Text(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
    sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_messages_conversation_id'), 'messages', ['conversation_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_messages_conversation_id'), table_name='messages')
    op.drop_table('messages')
    op.drop_index(op.f('ix_conversations_phone_number'), table_name='conversations')
    op.drop_table('conversations')
    op.drop_index(op.f('ix_unknown_drivers_phone_number'), table_name='unknown_drivers')
    op.drop_table('unknown_drivers')
    op.drop_table('driver_locations')
    op.drop_table('location_aliases')
    op.drop_index(op.f('ix_loads_load_id'), table_name='loads')
    op.drop_table('loads')
    op.drop_table('locations')
    op.drop_table('drivers')
