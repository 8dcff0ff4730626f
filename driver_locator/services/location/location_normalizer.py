"""
Location normalization against canonical locations and aliases.

Resolution order, first hit wins:
1. alias lookup on the lower-cased raw string
2. exact canonical name
3. structural "City, ST" normalization, then canonical lookup
4. fuzzy city/name substring search ranked with rapidfuzz
5. the normalized string itself, for the caller to create

Steps 3 and 4 record an alias for the raw string so the next lookup is
answered at step 1.
"""

import re
from typing import Optional

from rapidfuzz import fuzz
from sqlalchemy.ext.asyncio import AsyncSession

from driver_locator.repositories.location_repository import LocationRepository
from driver_locator.services.location.state_codes import bare_state_code, to_state_code
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

ZIP_PATTERN = re.compile(r"^\d{5}(?:-\d{4})?$")
TRAILING_ZIP_PATTERN = re.compile(r"[\s,]+\d{5}(?:-\d{4})?$")
MIN_FUZZY_TERM_LENGTH = 3


def capitalize_words(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in value.lower().split())


def _split_trailing_state(words: list[str]) -> tuple[list[str], Optional[str]]:
    """Peel a one- or two-word state name off the end of a word list."""
    for size in (2, 1):
        if len(words) > size:
            state = to_state_code(" ".join(words[-size:]))
            if state:
                return words[:-size], state
    return words, None


def parse_and_normalize(location: str) -> str:
    """Canonicalize a raw location to "City, ST", "ST", a zip or a city.

    Examples:
        "miami florida" -> "Miami, FL"
        "Newark, New Jersey" -> "Newark, NJ"
        "nj" -> "NJ"
        "Miami, FL 33101" -> "Miami, FL"
    """
    cleaned = " ".join((location or "").split())
    if not cleaned:
        return ""

    if ZIP_PATTERN.match(cleaned):
        return cleaned

    cleaned = TRAILING_ZIP_PATTERN.sub("", cleaned).strip(" ,")

    if "," in cleaned:
        parts = [part.strip() for part in cleaned.split(",")]
        city = capitalize_words(parts[0])
        raw_state = parts[1] if len(parts) > 1 else ""
        state = to_state_code(raw_state)
        if state:
            return f"{city}, {state}" if city else state
        if raw_state:
            return f"{city}, {raw_state.upper()}"
        return city

    as_state = bare_state_code(cleaned)
    if as_state:
        return as_state

    words = cleaned.split(" ")
    city_words, state = _split_trailing_state(words)
    if state:
        return f"{capitalize_words(' '.join(city_words))}, {state}"

    return capitalize_words(cleaned)


class LocationNormalizer:
    """Resolves raw location text to canonical location names."""

    def __init__(self, session: AsyncSession, location_repo: Optional[LocationRepository] = None):
        self.session = session
        self.location_repo = location_repo or LocationRepository(session)

    async def normalize(self, raw_location: str) -> str:
        """Resolve a raw location string.

        Never raises on odd input; an empty string comes back unchanged.
        """
        if not raw_location or not raw_location.strip():
            return raw_location

        cleaned = " ".join(raw_location.split())
        alias_key = cleaned.lower()

        location = await self.location_repo.get_by_alias(alias_key)
        if location:
            LOGGER.debug(
                "Location matched via alias",
                extra={"raw": raw_location, "normalized": location.name},
            )
            return location.name

        location = await self.location_repo.get_by_name(cleaned)
        if location:
            return location.name

        normalized = parse_and_normalize(cleaned)

        location = await self.location_repo.get_by_name(normalized)
        if location:
            await self._remember(alias_key, location)
            return location.name

        location = await self._fuzzy_match(normalized)
        if location:
            LOGGER.debug(
                "Location matched via fuzzy search",
                extra={"raw": raw_location, "normalized": location.name},
            )
            await self._remember(alias_key, location)
            return location.name

        LOGGER.debug(
            "No existing location found, using normalized format",
            extra={"raw": raw_location, "normalized": normalized},
        )
        return normalized

    async def _fuzzy_match(self, normalized: str):
        """Best substring hit on the city token, state permitting."""
        parts = [part.strip() for part in normalized.split(",")]
        city = parts[0]
        state = parts[1] if len(parts) > 1 else None

        # A bare state or zip has no city token to search on
        if bare_state_code(city) or ZIP_PATTERN.match(city):
            return None
        if len(city) < MIN_FUZZY_TERM_LENGTH:
            return None

        candidates = await self.location_repo.search_by_city_or_name(city)
        if state:
            candidates = [c for c in candidates if not c.state or c.state == state]
        if not candidates:
            return None

        return max(candidates, key=lambda c: fuzz.ratio(normalized.lower(), c.name.lower()))

    async def _remember(self, alias: str, location) -> None:
        if alias == location.name.lower():
            return
        created = await self.location_repo.add_alias(alias, location.id)
        if created:
            LOGGER.info(
                "Created location alias",
                extra={"alias": alias, "location_id": str(location.id)},
            )

    async def add_alias(self, alias: str, canonical_name: str) -> bool:
        """Map an alias onto an existing canonical location.

        Returns:
            False when no location has that canonical name
        """
        location = await self.location_repo.get_by_name(canonical_name)
        if location is None:
            LOGGER.warning(
                "Cannot create alias, location not found",
                extra={"alias": alias, "canonical_name": canonical_name},
            )
            return False

        await self.location_repo.add_alias(alias.strip().lower(), location.id)
        return True
