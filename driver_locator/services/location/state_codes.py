"""US state names and postal codes."""

STATE_NAME_TO_CODE: dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY",
}

STATE_CODES: frozenset[str] = frozenset(STATE_NAME_TO_CODE.values())

# Codes that appear in addresses but are not among the 50 states
EXTRA_REGION_CODES: frozenset[str] = frozenset({"DC", "PR"})

KNOWN_REGION_CODES: frozenset[str] = STATE_CODES | EXTRA_REGION_CODES

# Full state names that, standing alone, usually mean the city
CITY_NAMED_STATES: frozenset[str] = frozenset({"new york", "washington"})


def to_state_code(value: str) -> str | None:
    """Map a state name or code to its 2-letter code.

    Returns None for anything that is not a known state, so callers can
    tell a city word apart from a state.
    """
    if not value:
        return None

    lowered = " ".join(value.lower().split())
    if len(lowered) == 2 and lowered.upper() in KNOWN_REGION_CODES:
        return lowered.upper()

    return STATE_NAME_TO_CODE.get(lowered)


def bare_state_code(value: str) -> str | None:
    """State code for text that names only a state, like "NJ" or "New Jersey".

    State names that are also big-city names ("New York", "Washington")
    read as the city when they stand alone.
    """
    if not value or " ".join(value.lower().split()) in CITY_NAMED_STATES:
        return None
    return to_state_code(value)
