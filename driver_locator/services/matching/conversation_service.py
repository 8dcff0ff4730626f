"""
Conversation orchestration.

``ConversationService.process_conversation`` runs the per-conversation
pipeline: opt-out check, regex load id extraction, load registry lookup,
graph upsert, and, when nothing resolves, the AI fallback whose ids are staged
for the batch matcher.

``ConversationSyncService`` mirrors conversations from the messaging
transport, always ingests messages, and only re-runs the pipeline when a
conversation has activity newer than its parse watermark.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from driver_locator.core.ai_client import AIFallbackClient, format_conversation_for_ai
from driver_locator.core.exceptions import AppError
from driver_locator.database.models import Conversation
from driver_locator.repositories.conversation_repository import ConversationRepository
from driver_locator.repositories.driver_repository import DriverRepository
from driver_locator.repositories.load_repository import LoadRepository
from driver_locator.schemas.matching import (
    AIParseResult,
    ConversationPayload,
    LinkSource,
    MatchResult,
    MessagePayload,
    SyncSummary,
)
from driver_locator.services.extraction.load_id_extractor import extract_load_ids
from driver_locator.services.extraction.opt_out_detector import has_stop_command
from driver_locator.services.location.auction_location_matcher import AuctionLocationMatcher
from driver_locator.services.matching.ai_dispatcher import AIDispatcher
from driver_locator.services.matching.driver_location_service import DriverLocationService
from driver_locator.services.matching.unknown_driver_service import UnknownDriverService
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

REASON_NO_MESSAGES = "No messages found in conversation"
REASON_OPTED_OUT = "Driver has opted out"
REASON_NO_LOAD_IDS = "No load IDs found in conversation"

PARSED = "parsed"
SKIPPED = "skipped"
FAILED = "failed"


def watermark_expired(
    last_parsed_at: Optional[datetime], last_activity_at: Optional[datetime]
) -> bool:
    """True when the conversation was never parsed or has newer activity."""
    if last_parsed_at is None:
        return True
    if last_activity_at is None:
        return False
    return last_activity_at > last_parsed_at


class MessagingTransport(Protocol):
    """External client that reads conversations from the SMS provider."""

    async def list_conversations(self) -> Sequence[ConversationPayload]: ...

    async def list_messages(
        self, conversation: ConversationPayload, limit: int
    ) -> Sequence[MessagePayload]: ...


class ConversationService:
    """Runs the matching pipeline for one conversation inside one session."""

    def __init__(
        self,
        session: AsyncSession,
        ai_client: Optional[AIFallbackClient] = None,
        dispatcher: Optional[AIDispatcher] = None,
        matcher: Optional[AuctionLocationMatcher] = None,
        message_limit: int = 100,
    ):
        self.session = session
        self.ai_client = ai_client
        self.dispatcher = dispatcher
        self.message_limit = message_limit

        self.conversation_repo = ConversationRepository(session)
        self.driver_repo = DriverRepository(session)
        self.load_repo = LoadRepository(session)
        self.graph = DriverLocationService(session, matcher=matcher, driver_repo=self.driver_repo)
        self.unknown_drivers = UnknownDriverService(
            session, load_repo=self.load_repo, graph=self.graph
        )

    async def process_conversation(self, conversation_id: str, phone_number: str) -> MatchResult:
        """Try to place the driver of a conversation at a location.

        Transient failures come back as ``failed=True`` after a rollback;
        nothing is raised.
        """
        try:
            result = await self._run_pipeline(conversation_id, phone_number)
            await self.session.commit()
            return result
        except (AppError, SQLAlchemyError) as e:
            await self.session.rollback()
            LOGGER.warning(
                "Failed to process conversation",
                exc_info=True,
                extra={"conversation_id": conversation_id, "phone": phone_number, "error": str(e)},
            )
            return MatchResult(matched=False, failed=True, reason=f"Error: {e}")

    async def _run_pipeline(self, conversation_id: str, phone_number: str) -> MatchResult:
        messages = await self.conversation_repo.get_messages(conversation_id, limit=self.message_limit)
        if not messages:
            return MatchResult(matched=False, reason=REASON_NO_MESSAGES)

        if has_stop_command(messages):
            driver, changed = await self.driver_repo.mark_opted_out(phone_number)
            if changed:
                LOGGER.info(
                    "Driver opted out",
                    extra={"phone": phone_number, "driver_id": str(driver.id)},
                )
            return MatchResult(matched=False, driver_id=driver.id, reason=REASON_OPTED_OUT)

        driver = await self.driver_repo.get_by_phone(phone_number)
        if driver is not None and driver.is_opted_out:
            return MatchResult(matched=False, driver_id=driver.id, reason=REASON_OPTED_OUT)

        text = " ".join(message.text for message in messages if message.text)
        candidates = sorted(extract_load_ids(text))

        for load_id in candidates:
            result = await self._resolve_candidate(phone_number, load_id)
            if result is not None:
                return result

        ai_result: Optional[AIParseResult] = None
        if self.ai_client is not None and self.dispatcher is not None:
            LOGGER.info(
                "No load resolved from regex candidates, trying AI fallback",
                extra={"phone": phone_number, "candidates": len(candidates)},
            )
            conversation_text = format_conversation_for_ai(messages)
            ai_result = await self.dispatcher.submit(
                lambda: self.ai_client.parse_conversation(conversation_text, phone_number)
            )

        staged = list(candidates)
        for load_id in (ai_result.load_ids if ai_result else []):
            if load_id not in staged:
                staged.append(load_id)

        if not staged:
            return MatchResult(matched=False, reason=REASON_NO_LOAD_IDS)

        await self.unknown_drivers.save_unknown_driver(
            phone_number, staged, ai_result.location if ai_result else None
        )
        return MatchResult(
            matched=False,
            reason=f"Staged {len(staged)} load IDs for batch matching",
        )

    async def _resolve_candidate(self, phone_number: str, load_id: str) -> Optional[MatchResult]:
        load = await self.load_repo.get_by_load_id(load_id)
        if load is None:
            LOGGER.debug("Load not found", extra={"load_id": load_id})
            return None

        raw_location = load.delivery_location or load.pickup_location
        if not raw_location:
            LOGGER.warning("Load has no location data", extra={"load_id": load_id, "vin": load.vin})
            return None

        outcome = await self.graph.link(
            phone_number, raw_location, LinkSource.CONVERSATION, load_id=load_id
        )
        if not outcome.linked:
            return MatchResult(matched=False, driver_id=outcome.driver_id, reason=REASON_OPTED_OUT)

        await self.load_repo.set_driver([load_id], outcome.driver_id)
        LOGGER.info(
            "Matched driver to location",
            extra={"phone": phone_number, "load_id": load_id, "location_id": str(outcome.location_id)},
        )
        return MatchResult(
            matched=True,
            driver_id=outcome.driver_id,
            location_id=outcome.location_id,
            load_id=load_id,
        )

    async def sync_conversation(
        self, payload: ConversationPayload, transport: MessagingTransport
    ) -> str:
        """Ingest one conversation and run the pipeline if it has new activity.

        Returns:
            "parsed", "skipped" or "failed"
        """
        phone_number = payload.phone_number or (payload.participants[0] if payload.participants else None)

        existing = await self.conversation_repo.get_by_id(payload.id)
        needs_parsing = watermark_expired(
            existing.last_parsed_at if existing else None, payload.last_activity_at
        )

        try:
            messages = await transport.list_messages(payload, self.message_limit)
        except Exception as e:
            LOGGER.warning(
                "Failed to fetch messages for conversation",
                extra={"conversation_id": payload.id, "error": str(e)},
            )
            return FAILED

        try:
            conversation = await self.conversation_repo.upsert(
                payload.id,
                phone_number,
                participants=payload.participants,
                last_activity_at=payload.last_activity_at,
            )
            await self.conversation_repo.add_messages(payload.id, messages)

            if phone_number and has_stop_command(messages):
                await self.driver_repo.mark_opted_out(phone_number)

            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                "Failed to store conversation",
                exc_info=True,
                extra={"conversation_id": payload.id, "error": str(e)},
            )
            return FAILED

        if not needs_parsing:
            LOGGER.debug("Skipped parsing, no new activity", extra={"conversation_id": payload.id})
            return SKIPPED

        if not phone_number:
            LOGGER.warning("Conversation has no phone number", extra={"conversation_id": payload.id})
            return SKIPPED

        result = await self.process_conversation(payload.id, phone_number)
        if result.failed:
            return FAILED

        await self.conversation_repo.mark_parsed(conversation, datetime.now(timezone.utc))
        await self.session.commit()
        return PARSED

    async def process_recent(self, days_since: int = 7) -> dict:
        """Re-run the pipeline for every conversation active in the last N days."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_since)
        query = select(Conversation.id, Conversation.phone_number).where(
            Conversation.last_activity_at >= cutoff
        )
        rows = (await self.session.execute(query)).all()

        counts = {"processed": 0, "matched": 0, "unmatched": 0, "failed": 0}
        for conversation_id, phone_number in rows:
            if not phone_number:
                continue
            result = await self.process_conversation(conversation_id, phone_number)
            counts["processed"] += 1
            if result.failed:
                counts["failed"] += 1
            elif result.matched:
                counts["matched"] += 1
            else:
                counts["unmatched"] += 1

        LOGGER.info("Recent conversation reprocessing completed", extra=counts)
        return counts


class ConversationSyncService:
    """Syncs every conversation from the transport, one session each."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        ai_client: Optional[AIFallbackClient] = None,
        dispatcher: Optional[AIDispatcher] = None,
        matcher: Optional[AuctionLocationMatcher] = None,
        message_limit: int = 100,
        concurrency: int = 5,
    ):
        self.session_factory = session_factory
        self.ai_client = ai_client
        self.dispatcher = dispatcher
        self.matcher = matcher
        self.message_limit = message_limit
        self.concurrency = concurrency

    def _service(self, session: AsyncSession) -> ConversationService:
        return ConversationService(
            session,
            ai_client=self.ai_client,
            dispatcher=self.dispatcher,
            matcher=self.matcher,
            message_limit=self.message_limit,
        )

    async def sync_all(self, transport: MessagingTransport) -> SyncSummary:
        conversations = await transport.list_conversations()
        LOGGER.info("Starting conversation sync", extra={"count": len(conversations)})

        semaphore = asyncio.Semaphore(self.concurrency)

        async def sync_one(payload: ConversationPayload) -> str:
            async with semaphore:
                async with self.session_factory() as session:
                    try:
                        return await self._service(session).sync_conversation(payload, transport)
                    except Exception:
                        LOGGER.error(
                            "Unexpected error syncing conversation",
                            exc_info=True,
                            extra={"conversation_id": payload.id},
                        )
                        return FAILED

        outcomes = await asyncio.gather(*(sync_one(payload) for payload in conversations))

        summary = SyncSummary(
            processed=len(outcomes),
            parsed=outcomes.count(PARSED),
            skipped=outcomes.count(SKIPPED),
            failed=outcomes.count(FAILED),
        )
        LOGGER.info("Conversation sync completed", extra=summary.model_dump())
        return summary
