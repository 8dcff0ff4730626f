from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from driver_locator.database.models import Conversation, Message
from driver_locator.repositories.base_repository import BaseRepository
from driver_locator.schemas.matching import MessagePayload


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for mirrored conversations and their messages."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Conversation)

    async def upsert(
        self,
        conversation_id: str,
        phone_number: Optional[str],
        participants: Optional[list] = None,
        last_activity_at: Optional[datetime] = None,
    ) -> Conversation:
        """Create the conversation or refresh its activity timestamp.

        The parse watermark is never touched here.
        """
        conversation = await self.get_by_id(conversation_id)
        if conversation is None:
            conversation, created = await self.create_or_get(
                lambda: self.get_by_id(conversation_id),
                id=conversation_id,
                phone_number=phone_number,
                participants=participants,
                last_activity_at=last_activity_at,
            )
            if created:
                return conversation

        if phone_number:
            conversation.phone_number = phone_number
        if participants is not None:
            conversation.participants = participants
        if last_activity_at is not None:
            conversation.last_activity_at = last_activity_at
        await self.session.flush()
        return conversation

    async def add_messages(self, conversation_id: str, messages: Sequence[MessagePayload]) -> int:
        """Insert messages, ignoring ones already stored (idempotent)."""
        if not messages:
            return 0

        stmt = insert(Message).values([
            {
                "id": message.id,
                "conversation_id": conversation_id,
                "direction": message.direction,
                "from_number": message.from_number,
                "text": message.text,
                "created_at": message.timestamp,
            }
            for message in messages
        ]).on_conflict_do_nothing(index_elements=["id"])
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount or 0

    async def get_messages(self, conversation_id: str, limit: int = 100) -> list[Message]:
        """Get the most recent messages in chronological order."""
        query = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(reversed(result.scalars().all()))

    async def mark_parsed(self, conversation: Conversation, parsed_at: datetime) -> None:
        """Advance the extraction watermark."""
        conversation.last_parsed_at = parsed_at
        await self.session.flush()
