"""Driver to location matching services."""

from driver_locator.services.matching.ai_dispatcher import AIDispatcher
from driver_locator.services.matching.conversation_service import (
    ConversationService,
    ConversationSyncService,
)
from driver_locator.services.matching.driver_location_service import DriverLocationService
from driver_locator.services.matching.load_sync_service import LoadSyncService
from driver_locator.services.matching.unknown_driver_service import UnknownDriverService

__all__ = [
    "AIDispatcher",
    "ConversationService",
    "ConversationSyncService",
    "DriverLocationService",
    "LoadSyncService",
    "UnknownDriverService",
]
