"""Unit tests for conversation sync and the parse watermark."""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from driver_locator.schemas.matching import ConversationPayload, MessagePayload
from driver_locator.services.matching.conversation_service import (
    FAILED,
    PARSED,
    SKIPPED,
    ConversationSyncService,
    watermark_expired,
)

PHONE = "+15551234567"
T0 = datetime(2024, 3, 2, 14, 0, tzinfo=timezone.utc)


def conversation(last_activity_at=T0, phone_number=PHONE, conversation_id="conv-1"):
    return ConversationPayload(
        id=conversation_id,
        phone_number=phone_number,
        participants=[PHONE],
        last_activity_at=last_activity_at,
    )


def message(message_id, text, direction="incoming", at=T0):
    return MessagePayload(id=message_id, direction=direction, text=text, timestamp=at)


class FakeTransport:
    def __init__(self, conversations=(), messages=None):
        self.conversations = list(conversations)
        self.messages = messages or {}
        self.list_messages_calls = 0

    async def list_conversations(self):
        return self.conversations

    async def list_messages(self, conversation, limit):
        self.list_messages_calls += 1
        result = self.messages.get(conversation.id, [])
        if isinstance(result, Exception):
            raise result
        return result[-limit:]


class TestWatermarkExpired:

    def test_never_parsed(self):
        assert watermark_expired(None, None) is True
        assert watermark_expired(None, T0) is True

    def test_newer_activity(self):
        assert watermark_expired(T0, T0 + timedelta(seconds=1)) is True

    def test_no_new_activity(self):
        assert watermark_expired(T0, T0) is False
        assert watermark_expired(T0, T0 - timedelta(minutes=5)) is False

    def test_unknown_activity_after_parse(self):
        assert watermark_expired(T0, None) is False


class TestSyncConversation:

    @pytest.mark.asyncio
    async def test_first_sync_parses_and_sets_watermark(self, conversation_service_factory, store):
        store.loads.add("1HGCM82633A17641A", delivery_location="Miami, FL")
        transport = FakeTransport(messages={"conv-1": [message("m1", "Load 17641A delivered")]})

        outcome = await conversation_service_factory().sync_conversation(conversation(), transport)

        assert outcome == PARSED
        stored = store.conversations.conversations["conv-1"]
        assert stored.last_parsed_at is not None
        assert stored.last_parsed_at >= T0
        assert "m1" in store.conversations.messages
        assert len(store.edges.edges) == 1

    @pytest.mark.asyncio
    async def test_unchanged_conversation_is_skipped(self, conversation_service_factory, store):
        store.loads.add("1HGCM82633A17641A", delivery_location="Miami, FL")
        transport = FakeTransport(messages={"conv-1": [message("m1", "Load 17641A delivered")]})
        service = conversation_service_factory()
        await service.sync_conversation(conversation(), transport)

        outcome = await service.sync_conversation(conversation(), transport)

        assert outcome == SKIPPED
        # Messages are still ingested on every sync
        assert transport.list_messages_calls == 2
        edge = next(iter(store.edges.edges.values()))
        assert edge.match_count == 1

    @pytest.mark.asyncio
    async def test_new_activity_is_parsed_again(self, conversation_service_factory, store):
        store.loads.add("1HGCM82633A17641A", delivery_location="Miami, FL")
        service = conversation_service_factory()
        await service.sync_conversation(
            conversation(), FakeTransport(messages={"conv-1": [message("m1", "Load 17641A delivered")]})
        )
        store.conversations.conversations["conv-1"].last_parsed_at = T0

        later = T0 + timedelta(hours=1)
        transport = FakeTransport(messages={"conv-1": [
            message("m1", "Load 17641A delivered"),
            message("m2", "back at the yard", at=later),
        ]})
        outcome = await service.sync_conversation(conversation(last_activity_at=later), transport)

        assert outcome == PARSED
        assert "m2" in store.conversations.messages
        edge = next(iter(store.edges.edges.values()))
        assert edge.match_count == 2

    @pytest.mark.asyncio
    async def test_fetch_failure(self, conversation_service_factory, store):
        transport = FakeTransport(messages={"conv-1": ConnectionError("provider down")})

        outcome = await conversation_service_factory().sync_conversation(conversation(), transport)

        assert outcome == FAILED
        assert store.conversations.conversations == {}

    @pytest.mark.asyncio
    async def test_failed_parse_keeps_watermark(self, conversation_service_factory, store, mock_session):
        transport = FakeTransport(messages={"conv-1": [message("m1", "Load ZZ9999 picked up")]})
        service = conversation_service_factory()
        service.unknown_drivers.save_unknown_driver = AsyncMock(
            side_effect=OperationalError("INSERT", {}, Exception("connection reset"))
        )

        outcome = await service.sync_conversation(conversation(), transport)

        assert outcome == FAILED
        assert store.conversations.conversations["conv-1"].last_parsed_at is None
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_in_fetched_messages_opts_out(self, conversation_service_factory, store):
        transport = FakeTransport(messages={"conv-1": [message("m1", "/STOP")]})
        service = conversation_service_factory()

        await service.sync_conversation(conversation(), transport)

        assert store.drivers.drivers[PHONE].opted_out is True

    @pytest.mark.asyncio
    async def test_conversation_without_phone_is_skipped(self, conversation_service_factory, store):
        payload = ConversationPayload(id="conv-2", participants=[], last_activity_at=T0)
        transport = FakeTransport(messages={"conv-2": [message("m9", "Load 17641A delivered")]})

        outcome = await conversation_service_factory().sync_conversation(payload, transport)

        assert outcome == SKIPPED
        assert "m9" in store.conversations.messages

    @pytest.mark.asyncio
    async def test_participant_is_used_when_phone_missing(self, conversation_service_factory, store):
        payload = ConversationPayload(id="conv-3", participants=[PHONE], last_activity_at=T0)
        transport = FakeTransport(messages={"conv-3": [message("m1", "/STOP")]})

        await conversation_service_factory().sync_conversation(payload, transport)

        assert store.conversations.conversations["conv-3"].phone_number == PHONE
        assert store.drivers.drivers[PHONE].opted_out is True


class TestConversationSyncService:

    @pytest.mark.asyncio
    async def test_sync_all_counts_outcomes(self, conversation_service_factory, store, mock_session, monkeypatch):
        store.loads.add("1HGCM82633A17641A", delivery_location="Miami, FL")
        transport = FakeTransport(
            conversations=[
                conversation(conversation_id="conv-1"),
                conversation(conversation_id="conv-2", phone_number="+15550000002"),
                conversation(conversation_id="conv-3", phone_number="+15550000003"),
            ],
            messages={
                "conv-1": [message("a1", "Load 17641A delivered")],
                "conv-2": [message("b1", "see you")],
                "conv-3": ConnectionError("provider down"),
            },
        )

        @asynccontextmanager
        async def session_factory():
            yield mock_session

        sync_service = ConversationSyncService(session_factory, concurrency=2)
        service = conversation_service_factory()
        monkeypatch.setattr(sync_service, "_service", lambda session: service)

        summary = await sync_service.sync_all(transport)

        assert summary.processed == 3
        assert summary.parsed == 2
        assert summary.failed == 1
        assert summary.skipped == 0
