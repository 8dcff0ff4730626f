"""
Load ID extraction from conversation text.

A load id is the last 6 characters of a VIN. Candidates come from several
independent heuristics whose results are unioned:
- standalone 6-character alphanumeric tokens containing a digit
- tokens after "load", "load id:" and similar phrases
- tokens after "vin" or "last 6"
- standalone 5-digit numbers, padded with a leading zero

Nothing is ranked here; callers try every candidate against the load registry.
"""

import re

from driver_locator.utils.logging import get_logger

LOGGER = get_logger(__name__)

LOAD_ID_LENGTH = 6

# 6-char alphanumeric with at least one digit
CORE_PATTERN = re.compile(r"\b(?=[A-Z0-9]*\d)[A-Z0-9]{6}\b", re.IGNORECASE)

# "load 17641A", "load id: 17641A", "load:17641A"
LOAD_PHRASE_PATTERN = re.compile(r"load\s*(?:id)?[:#\s]*([A-Z0-9]{4,6})\b", re.IGNORECASE)

# "vin 17641A", "VIN: 17641A", "last 6 17641A"
VIN_PHRASE_PATTERN = re.compile(r"(?:vin|last\s*6)[:#\s]*([A-Z0-9]{6})\b", re.IGNORECASE)

# Truncated ids where a leading zero was dropped
FIVE_DIGIT_PATTERN = re.compile(r"\b(\d{5})\b")

_DIGIT = re.compile(r"\d")


def _has_digit(token: str) -> bool:
    return bool(_DIGIT.search(token))


def extract_load_ids(text: str) -> set[str]:
    """Extract candidate load ids from free text.

    Args:
        text: Conversation transcript or a single message

    Returns:
        Set of upper-cased candidates, empty when nothing looks like a load id
    """
    if not text:
        return set()

    load_ids: set[str] = set()

    for match in CORE_PATTERN.finditer(text):
        load_ids.add(match.group(0).upper())

    for match in LOAD_PHRASE_PATTERN.finditer(text):
        captured = match.group(1)
        if len(captured) == LOAD_ID_LENGTH and _has_digit(captured):
            load_ids.add(captured.upper())

    for match in VIN_PHRASE_PATTERN.finditer(text):
        captured = match.group(1)
        if _has_digit(captured):
            load_ids.add(captured.upper())

    # NOTE: also fires on zip codes, prices and extensions; the registry
    # lookup is the only filter
    for match in FIVE_DIGIT_PATTERN.finditer(text):
        load_ids.add("0" + match.group(1))

    if load_ids:
        LOGGER.debug(
            "Extracted load id candidates",
            extra={"count": len(load_ids), "load_ids": sorted(load_ids)[:10]},
        )

    return load_ids
