"""
Matching of free-text addresses to auction yards.

Two datasets are searched in a fixed order (IAAI, then Copart). Against each
dataset the tiers below run in order and the first hit wins:

1. zip     - exact zip equality
2. state_city - same state and city equal or contained either way
3. state_address - same state and the address mentions the yard's city
4. city_in_address - address mentions the yard's city (longer than 3 chars)
5. street_overlap - two or more significant street words shared

Tiers 4 and 5 reject yards in another state whenever the address names a
state, otherwise common city names match across states.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from driver_locator.schemas.matching import AuctionLocationResult, AuctionType
from driver_locator.services.location.gazetteer import GazetteerEntry, load_gazetteer
from driver_locator.services.location.state_codes import KNOWN_REGION_CODES, to_state_code
from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

ZIP_PATTERN = re.compile(r"\b(\d{5})(?:-\d{4})?\b")
WORD_PATTERN = re.compile(r"[A-Z0-9]+")

STREET_STOPWORDS = frozenset({
    "STREET", "ST", "ROAD", "RD", "AVENUE", "AVE", "BLVD", "DRIVE", "DR",
    "LANE", "LN", "WAY", "HIGHWAY", "HWY",
})

MAX_CITY_WORDS = 3
MIN_CITY_LENGTH = 4
MIN_SHARED_WORDS = 2


@dataclass(frozen=True)
class ParsedAddress:
    """Address components guessed from free text."""

    text: str
    words: frozenset[str]
    zip_code: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None


def contains_phrase(haystack: str, needle: str) -> bool:
    """Word-boundary containment, so "YORK" is not found in "YORKTOWN"."""
    if not needle:
        return False
    pattern = r"(?<![A-Z0-9])" + re.escape(needle) + r"(?![A-Z0-9])"
    return re.search(pattern, haystack) is not None


def _city_before(before: str) -> Optional[str]:
    # Only the comma segment right before the state can hold the city
    segment = before.rstrip(" ,").rsplit(",", 1)[-1]
    words = WORD_PATTERN.findall(segment)
    city_words: list[str] = []
    for word in reversed(words):
        if len(city_words) == MAX_CITY_WORDS:
            break
        if not word.isdigit() and len(word) > 1:
            city_words.insert(0, word)
        elif city_words:
            break
    return " ".join(city_words) or None


def parse_address(full_address: str, known_states: Iterable[str] = KNOWN_REGION_CODES) -> ParsedAddress:
    """Split an address into zip, state and city guesses.

    The state is the last known 2-letter code, or a full state name
    filling the last comma segment ("Mesa, Washington 98001").
    """
    upper = " ".join(full_address.upper().split())
    tokens = list(WORD_PATTERN.finditer(upper))
    states = frozenset(known_states)

    zip_match = ZIP_PATTERN.search(upper)
    zip_code = zip_match.group(1) if zip_match else None

    state = None
    city = None
    for token in reversed(tokens):
        value = token.group(0)
        if len(value) == 2 and value.isalpha() and value in states:
            state = value
            city = _city_before(upper[:token.start()])
            break

    if state is None and "," in upper:
        head, _, tail = upper.rpartition(",")
        code = to_state_code(ZIP_PATTERN.sub("", tail).strip())
        if code in states:
            state = code
            city = _city_before(head)

    return ParsedAddress(
        text=upper,
        words=frozenset(token.group(0) for token in tokens),
        zip_code=zip_code,
        state=state,
        city=city,
    )


def _state_allows(parsed: ParsedAddress, entry: GazetteerEntry) -> bool:
    return parsed.state is None or parsed.state == entry.state


def _significant_words(address: str) -> set[str]:
    return {
        word for word in WORD_PATTERN.findall(address.upper())
        if len(word) > 3 and not word.isdigit() and word not in STREET_STOPWORDS
    }


def match_zip(parsed: ParsedAddress, entries: Sequence[GazetteerEntry]) -> Optional[GazetteerEntry]:
    if not parsed.zip_code:
        return None
    return next((e for e in entries if e.zip_code == parsed.zip_code), None)


def match_state_city(parsed: ParsedAddress, entries: Sequence[GazetteerEntry]) -> Optional[GazetteerEntry]:
    if not parsed.state or not parsed.city:
        return None
    for entry in entries:
        if entry.state != parsed.state or not entry.city:
            continue
        city = entry.city_upper
        if city == parsed.city or contains_phrase(city, parsed.city) or contains_phrase(parsed.city, city):
            return entry
    return None


def match_state_address(parsed: ParsedAddress, entries: Sequence[GazetteerEntry]) -> Optional[GazetteerEntry]:
    if not parsed.state:
        return None
    for entry in entries:
        if entry.state == parsed.state and contains_phrase(parsed.text, entry.city_upper):
            return entry
    return None


def match_city_in_address(parsed: ParsedAddress, entries: Sequence[GazetteerEntry]) -> Optional[GazetteerEntry]:
    for entry in entries:
        if len(entry.city) < MIN_CITY_LENGTH or not _state_allows(parsed, entry):
            continue
        if contains_phrase(parsed.text, entry.city_upper):
            return entry
    return None


def match_street_overlap(parsed: ParsedAddress, entries: Sequence[GazetteerEntry]) -> Optional[GazetteerEntry]:
    for entry in entries:
        if not _state_allows(parsed, entry):
            continue
        shared = _significant_words(entry.address) & parsed.words
        if len(shared) >= MIN_SHARED_WORDS:
            return entry
    return None


MatchTier = Callable[[ParsedAddress, Sequence[GazetteerEntry]], Optional[GazetteerEntry]]

MATCH_TIERS: tuple[tuple[str, MatchTier], ...] = (
    ("zip", match_zip),
    ("state_city", match_state_city),
    ("state_address", match_state_address),
    ("city_in_address", match_city_in_address),
    ("street_overlap", match_street_overlap),
)


def find_match(
    parsed: ParsedAddress, entries: Sequence[GazetteerEntry]
) -> Optional[tuple[str, GazetteerEntry]]:
    """Run the tiers against one dataset; first hit wins."""
    for name, tier in MATCH_TIERS:
        entry = tier(parsed, entries)
        if entry is not None:
            return name, entry
    return None


class AuctionLocationMatcher:
    """Matches addresses against the IAAI and Copart yard lists."""

    def __init__(self, primary: Sequence[GazetteerEntry], secondary: Sequence[GazetteerEntry]):
        """Initialize with flattened datasets.

        Args:
            primary: Entries checked first (IAAI)
            secondary: Entries checked second (Copart)
        """
        self.datasets = (list(primary), list(secondary))
        self.known_states = KNOWN_REGION_CODES | {
            entry.state for dataset in self.datasets for entry in dataset
        }

    @classmethod
    def from_files(cls, primary_path: Path, secondary_path: Path) -> "AuctionLocationMatcher":
        primary = load_gazetteer(primary_path, AuctionType.IAAI)
        secondary = load_gazetteer(secondary_path, AuctionType.COPART)
        LOGGER.info(
            "Auction location matcher initialized",
            extra={"iaai_count": len(primary), "copart_count": len(secondary)},
        )
        return cls(primary, secondary)

    def match_address(self, full_address: str) -> Optional[AuctionLocationResult]:
        """Match an address to a yard, or None when nothing fits."""
        if not full_address or not full_address.strip():
            return None

        parsed = parse_address(full_address, self.known_states)

        for dataset in self.datasets:
            hit = find_match(parsed, dataset)
            if hit is None:
                continue

            strategy, entry = hit
            LOGGER.debug(
                "Auction location matched",
                extra={
                    "address": full_address,
                    "auction_name": entry.formatted_name,
                    "strategy": strategy,
                },
            )
            return AuctionLocationResult(
                auction_type=entry.auction_type,
                name=entry.formatted_name,
                state=entry.state,
                city=entry.city,
                address=entry.address or None,
                zip_code=entry.zip_code or None,
                strategy=strategy,
            )

        return None
